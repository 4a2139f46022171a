"""
CollegeFootballData / CollegeBasketballData integration.
https://collegefootballdata.com/  https://collegebasketballdata.com/

Schedules, final scores and per-game PPA.  Responses are normalised into
plain dicts with snake_case keys so the sync jobs never see provider field
names.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional

from dotenv import load_dotenv

from college_edge.core.sport_config import SPORT_ID_NCAAB, SPORT_ID_NCAAF
from college_edge.services.feed_client import FeedClient

load_dotenv()

logger = logging.getLogger(__name__)

API_KEY = os.getenv("CFBD_API_KEY")
BASE_URLS = {
    SPORT_ID_NCAAF: os.getenv("CFBD_API_BASE_URL", "https://api.collegefootballdata.com"),
    SPORT_ID_NCAAB: os.getenv("CBBD_API_BASE_URL", "https://api.collegebasketballdata.com"),
}


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 string → naive UTC datetime (DB columns are naive UTC)."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def basketball_week(start_date: datetime, season: int) -> int:
    """Week index for basketball, which has no native weeks.

    Season ``2025`` is the 2024-25 season; week 1 starts November 1.
    """
    opener = datetime(season - 1, 11, 1)
    return max((start_date - opener).days // 7 + 1, 1)


def _first(raw: Dict, *keys):
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


class CFBDClient(FeedClient):
    """Client for the CFBD-family APIs"""

    source = "cfbd"

    def __init__(self, sport: str = SPORT_ID_NCAAF, api_key: Optional[str] = None, session=None):
        super().__init__(BASE_URLS[sport], session=session)
        self.sport = sport
        self.api_key = api_key or API_KEY
        if not self.api_key:
            raise ValueError("CFBD_API_KEY not set in environment")

    def _headers(self):
        headers = super()._headers()
        headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    # ------------------------------------------------------------------
    # Normalisation
    # ------------------------------------------------------------------

    def normalize_game(self, raw: Dict) -> Optional[Dict]:
        start = parse_datetime(_first(raw, "startDate", "start_date"))
        if start is None:
            return None
        season = int(raw["season"])
        week = _first(raw, "week")
        if week is None:
            week = basketball_week(start, season)

        home_points = _first(raw, "homePoints", "home_points")
        away_points = _first(raw, "awayPoints", "away_points")
        status = (raw.get("status") or "").lower()
        completed = bool(raw.get("completed")) or status == "final"
        if status in ("cancelled", "canceled"):
            status = "cancelled"
        elif status == "postponed":
            status = "postponed"
        elif completed and home_points is not None and away_points is not None:
            status = "final"
        else:
            status = "scheduled"

        return {
            "external_id": str(raw["id"]),
            "season": season,
            "week": int(week),
            "start_date": start,
            "neutral_site": bool(_first(raw, "neutralSite", "neutral_site")),
            "home_team": _first(raw, "homeTeam", "home_team"),
            "away_team": _first(raw, "awayTeam", "away_team"),
            "home_external_id": _first(raw, "homeId", "homeTeamId", "home_id"),
            "away_external_id": _first(raw, "awayId", "awayTeamId", "away_id"),
            "home_conference": _first(raw, "homeConference", "home_conference"),
            "away_conference": _first(raw, "awayConference", "away_conference"),
            "home_score": home_points,
            "away_score": away_points,
            "status": status,
        }

    @staticmethod
    def normalize_ppa(raw: Dict) -> Dict:
        offense = raw.get("offense") or {}
        defense = raw.get("defense") or {}
        return {
            "game_external_id": str(raw["gameId"]),
            "team": raw["team"],
            "opponent": raw.get("opponent"),
            "offense_ppa": offense.get("overall"),
            "defense_ppa": defense.get("overall"),
        }

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def get_games(self, season: int, week: Optional[int] = None, season_type: str = "regular") -> List[Dict]:
        if self.sport == SPORT_ID_NCAAF:
            raw = self.get_json("/games", year=season, week=week, seasonType=season_type)
        else:
            raw = self.get_json("/games", season=season, seasonType=season_type)
        games = [g for g in (self.normalize_game(r) for r in raw or []) if g is not None]
        if week is not None and self.sport != SPORT_ID_NCAAF:
            games = [g for g in games if g["week"] == week]
        logger.info("CFBD: %d games fetched for %s %s week %s", len(games), self.sport, season, week)
        return games

    def get_game_ppa(self, season: int, week: Optional[int] = None, season_type: str = "regular") -> List[Dict]:
        raw = self.get_json("/ppa/games", year=season, week=week, seasonType=season_type)
        rows = [self.normalize_ppa(r) for r in raw or [] if r.get("gameId") is not None]
        logger.info("CFBD: %d PPA rows fetched for %s week %s", len(rows), season, week)
        return rows
