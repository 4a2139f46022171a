"""Chronological rating engine.

Walks completed games in (season, week, kickoff, id) order, applies the
blended PPA/margin Elo update to each pair of teams, and writes one snapshot
per team per processed week into an injected :class:`RatingStore`.

Point-in-time reads
-------------------
:meth:`RatingEngine.prior_rating` is the only way anything outside the
engine should ask "what was this team's rating going into week N".  It
reads the latest snapshot strictly before ``(season, N)`` and, if that
snapshot belongs to an earlier season, regresses it toward the mean.  The
projection job and the backtester both use it, which is what makes
backtests free of look-ahead.

Week numbering
--------------
Week 0 holds the preseason prior.  Games the feed labels week 0 (early
season openers) are rated together with week 1, so their results land in
the week-1 snapshot and never overwrite the prior.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from itertools import groupby
from typing import Dict, Iterable, List, Optional

from college_edge.core import elo, opponent_adjustment as oa
from college_edge.core.batch import BatchSummary
from college_edge.core.sport_config import SportConfig
from college_edge.services.rating_store import RatingSnapshot, RatingStore

logger = logging.getLogger(__name__)

PRESEASON_WEEK = 0


def rating_week(week: int) -> int:
    """Snapshot week a game's result is recorded under."""
    return max(week, 1)


@dataclass(frozen=True, slots=True)
class TeamEfficiency:
    offense_ppa: Optional[float]
    defense_ppa: Optional[float]

    @property
    def complete(self) -> bool:
        return self.offense_ppa is not None and self.defense_ppa is not None


@dataclass(frozen=True)
class GameResult:
    """A game as the rating engine sees it."""

    game_id: int
    season: int
    week: int
    home_id: int
    away_id: int
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    start_date: datetime = field(default_factory=lambda: datetime(1970, 1, 1))
    neutral: bool = False
    status: str = "final"
    home_eff: Optional[TeamEfficiency] = None
    away_eff: Optional[TeamEfficiency] = None

    @property
    def is_final(self) -> bool:
        return self.status == "final" and self.home_score is not None and self.away_score is not None

    def sort_key(self):
        return (self.season, rating_week(self.week), self.start_date, self.game_id)


@dataclass(frozen=True)
class GameUpdate:
    game_id: int
    home_before: float
    away_before: float
    delta: float
    used_ppa: bool

    @property
    def home_after(self) -> float:
        return self.home_before + self.delta

    @property
    def away_after(self) -> float:
        return self.away_before - self.delta


class RatingEngine:
    def __init__(self, store: RatingStore, config: SportConfig) -> None:
        self.store = store
        self.config = config

    # ------------------------------------------------------------------ #
    #  Point-in-time reads                                                 #
    # ------------------------------------------------------------------ #

    def prior_rating(self, team_id: int, season: int, week: int) -> float:
        """Rating of ``team_id`` going into ``(season, week)``."""
        snap = self.store.latest_before(team_id, season, week)
        if snap is None:
            return self.config.base_rating
        if snap.season < season:
            return elo.regress_to_mean(snap.rating, self.config)
        return snap.rating

    def ratings_before(self, team_ids: Iterable[int], season: int, week: int) -> Dict[int, float]:
        return {t: self.prior_rating(t, season, week) for t in team_ids}

    # ------------------------------------------------------------------ #
    #  Updates                                                             #
    # ------------------------------------------------------------------ #

    def start_season(self, season: int, team_ids: Iterable[int]) -> Dict[int, float]:
        """Write week-0 priors and return them."""
        priors = {}
        for team_id in sorted(set(team_ids)):
            rating = self.prior_rating(team_id, season, PRESEASON_WEEK)
            self.store.put(RatingSnapshot(team_id, season, PRESEASON_WEEK, rating, 0))
            priors[team_id] = rating
        return priors

    def apply_game(self, game: GameResult, ratings: Dict[int, float], league_avg: float) -> GameUpdate:
        """Compute the rating change for one final game.

        ``ratings`` holds pre-game ratings and is not mutated.
        """
        cfg = self.config
        r_home = ratings[game.home_id]
        r_away = ratings[game.away_id]
        margin = elo.elo_update(
            r_home, r_away, game.home_score, game.away_score, cfg, neutral=game.neutral
        )

        home_net = away_net = None
        if game.home_eff is not None and game.away_eff is not None:
            h, a = game.home_eff, game.away_eff
            home_net = oa.adjust(
                h.offense_ppa, h.defense_ppa, a.offense_ppa, a.defense_ppa, r_away, league_avg, cfg
            )
            away_net = oa.adjust(
                a.offense_ppa, a.defense_ppa, h.offense_ppa, h.defense_ppa, r_home, league_avg, cfg
            )

        if home_net is None or away_net is None:
            delta = oa.fallback_update(margin.delta, cfg)
            used_ppa = False
        else:
            delta = oa.blended_update(oa.ppa_delta(home_net, away_net, cfg), margin.delta, cfg)
            used_ppa = True

        return GameUpdate(game.game_id, r_home, r_away, delta, used_ppa)

    def process_season(self, season: int, games: Iterable[GameResult]) -> BatchSummary:
        """Rate every final game of one season in chronological order."""
        summary = BatchSummary(job=f"ratings_{season}")
        season_games = sorted((g for g in games if g.season == season), key=GameResult.sort_key)
        if not season_games:
            logger.warning("No games supplied for season %d", season)
            return summary

        team_ids = {g.home_id for g in season_games} | {g.away_id for g in season_games}
        current = self.start_season(season, team_ids)
        played: Dict[int, int] = defaultdict(int)
        fallback_games = 0

        for week, week_games in groupby(season_games, key=lambda g: rating_week(g.week)):
            league_avg = oa.league_average(current.values(), self.config)
            touched = set()
            for game in week_games:
                if not game.is_final:
                    summary.skip(f"game {game.game_id} not final ({game.status})")
                    continue
                try:
                    update = self.apply_game(game, current, league_avg)
                except (TypeError, ValueError) as exc:
                    logger.error("Rating update failed for game %s: %s", game.game_id, exc)
                    summary.fail(f"game {game.game_id}: {exc}")
                    continue
                current[game.home_id] = update.home_after
                current[game.away_id] = update.away_after
                played[game.home_id] += 1
                played[game.away_id] += 1
                touched.update((game.home_id, game.away_id))
                fallback_games += 0 if update.used_ppa else 1
                summary.processed += 1

            for team_id in sorted(touched):
                self.store.put(
                    RatingSnapshot(team_id, season, week, current[team_id], played[team_id])
                )
            logger.debug("Season %d week %d: %d teams updated", season, week, len(touched))

        summary.extra["teams"] = len(team_ids)
        summary.extra["margin_only_games"] = fallback_games
        logger.info(
            "Season %d rated: %d games, %d skipped, %d margin-only",
            season, summary.processed, summary.skipped, fallback_games,
        )
        return summary

    def rebuild(self, games: Iterable[GameResult]) -> List[BatchSummary]:
        """Rate several seasons, oldest first."""
        by_season: Dict[int, List[GameResult]] = defaultdict(list)
        for game in games:
            by_season[game.season].append(game)
        return [self.process_season(season, by_season[season]) for season in sorted(by_season)]
