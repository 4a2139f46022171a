"""
Team identity resolution.

Feeds spell teams differently ("Ohio State Buckeyes" from The Odds API,
"Ohio State" from CFBD, "Miami (FL)" from a results feed).  Every external
name passes through :class:`TeamResolver` before it touches a game row.
Canonical names are the CFBD school names stored on ``teams.name``.

A name that no strategy matches confidently comes back unresolved.  It is
never guessed: the sync jobs record it in ``unresolved_teams`` and skip the
game until someone adds an alias.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from rapidfuzz import fuzz, process
from sqlalchemy.orm import Session

from college_edge.models import Team, TeamAlias, UnresolvedTeam

logger = logging.getLogger(__name__)

#: Minimum token_set_ratio score accepted for a fuzzy match.
FUZZY_CUTOFF = 88.0

# ---------------------------------------------------------------------------
# Production-confirmed spellings that fuzzy matching gets wrong or cannot
# score confidently.  Checked before anything else.
# ---------------------------------------------------------------------------
_MANUAL_OVERRIDES: dict[str, str] = {
    "Miami Hurricanes":              "Miami",
    "Miami (FL)":                    "Miami",
    "Miami (OH) RedHawks":           "Miami (OH)",
    "Miami OH RedHawks":             "Miami (OH)",
    "Ole Miss Rebels":               "Ole Miss",
    "Mississippi":                   "Ole Miss",
    "UConn Huskies":                 "UConn",
    "Connecticut Huskies":           "UConn",
    "Hawaii Rainbow Warriors":       "Hawai'i",
    "Hawaii":                        "Hawai'i",
    "San Jose State Spartans":       "San José State",
    "San Jose State":                "San José State",
    "UL Monroe Warhawks":            "UL Monroe",
    "Louisiana Monroe":              "UL Monroe",
    "Louisiana Ragin' Cajuns":       "Louisiana",
    "Southern Mississippi Golden Eagles": "Southern Miss",
    "Southern Miss Golden Eagles":   "Southern Miss",
    "Massachusetts Minutemen":       "UMass",
    "Sam Houston State Bearkats":    "Sam Houston",
    "Sam Houston St Bearkats":       "Sam Houston",
    "Florida Int'l Golden Panthers": "Florida International",
    "FIU Panthers":                  "Florida International",
    "App State Mountaineers":        "App State",
    "Appalachian State Mountaineers": "App State",
    "Texas State Bobcats":           "Texas State",
    "NC State Wolfpack":             "NC State",
    "North Carolina State":          "NC State",
}

# Mascots, longest first, for the strip-and-retry strategy.
COMMON_MASCOTS: list[str] = sorted([
    "Aggies", "Bears", "Bearcats", "Bearkats", "Beavers", "Black Knights", "Blazers",
    "Blue Devils", "Blue Hens", "Blue Raiders", "Bobcats", "Boilermakers", "Broncos",
    "Bruins", "Buckeyes", "Buffaloes", "Bulldogs", "Bulls", "Cardinal", "Cardinals",
    "Cavaliers", "Chanticleers", "Chippewas", "Commodores", "Cornhuskers", "Cougars",
    "Cowboys", "Crimson Tide", "Cyclones", "Demon Deacons", "Ducks", "Dukes", "Eagles",
    "Falcons", "Fighting Illini", "Fighting Irish", "Flames", "Gamecocks", "Gators",
    "Golden Bears", "Golden Eagles", "Golden Flashes", "Golden Gophers", "Golden Hurricane",
    "Green Wave", "Hawkeyes", "Hilltoppers", "Hokies", "Hoosiers", "Horned Frogs",
    "Huskies", "Hurricanes", "Jayhawks", "Knights", "Lobos", "Longhorns", "Mean Green",
    "Midshipmen", "Miners", "Minutemen", "Monarchs", "Mountaineers", "Mustangs",
    "Nittany Lions", "Orange", "Owls", "Panthers", "Pirates", "Ragin' Cajuns",
    "Rainbow Warriors", "Rams", "Razorbacks", "Rebels", "Red Raiders", "Red Wolves",
    "RedHawks", "Roadrunners", "Rockets", "Scarlet Knights", "Seminoles", "Sooners",
    "Spartans", "Sun Devils", "Tar Heels", "Terrapins", "Thundering Herd", "Tigers",
    "Trojans", "Utes", "Vandals", "Volunteers", "Warhawks", "Wildcats", "Wolf Pack",
    "Wolfpack", "Wolverines", "Yellow Jackets", "Zips",
], key=len, reverse=True)


@dataclass(frozen=True)
class TeamResolution:
    """Outcome of resolving one external name.

    ``team_id`` and ``name`` are ``None`` when unresolved; ``best_guess`` and
    ``score`` then describe the closest candidate for a human to review.
    """

    query: str
    team_id: Optional[int]
    name: Optional[str]
    score: float
    strategy: str
    best_guess: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.team_id is not None


def _strip_mascot(name: str) -> str:
    for mascot in COMMON_MASCOTS:
        if name.endswith(f" {mascot}"):
            return name[:-(len(mascot) + 1)].strip()
    return name


def _is_dangerous_substring_match(query: str, matched: str) -> bool:
    """
    True when a fuzzy match is likely a false positive.

    1. Hyphen/parenthesis regional variants: "Miami (OH)" must never become
       "Miami".
    2. Short-base substrings: token_set_ratio scores "Central Michigan" as
       100 against "Michigan" on the shared token alone.
    """
    q = query.lower().strip()
    m = matched.lower().strip()

    for sep in ("-", "("):
        if sep in q and sep not in m:
            base = q.split(sep)[0].strip()
            if base == m:
                return True

    if (m in q or q in m) and fuzz.ratio(q, m) < 75:
        return True
    return False


class TeamResolver:
    """Maps external names to team ids.

    Strategies, in order: manual override, alias table, case-insensitive
    exact, mascot strip, fuzzy ``token_set_ratio`` with the substring guard.
    """

    def __init__(
        self,
        teams: Mapping[str, int],
        aliases: Optional[Mapping[str, int]] = None,
        score_cutoff: float = FUZZY_CUTOFF,
    ) -> None:
        self.teams = dict(teams)
        self.aliases = dict(aliases or {})
        self.score_cutoff = score_cutoff
        self._lower = {name.lower(): name for name in self.teams}
        self._choices = list(self.teams)

    @classmethod
    def from_db(cls, db: Session, sport: str, score_cutoff: float = FUZZY_CUTOFF) -> TeamResolver:
        teams = {t.name: t.id for t in db.query(Team).filter(Team.sport == sport)}
        aliases = {a.alias: a.team_id for a in db.query(TeamAlias).filter(TeamAlias.sport == sport)}
        return cls(teams, aliases, score_cutoff)

    def _hit(self, query: str, canonical: str, score: float, strategy: str) -> TeamResolution:
        return TeamResolution(query, self.teams[canonical], canonical, score, strategy)

    def resolve(self, raw_name: str) -> TeamResolution:
        name = (raw_name or "").strip()
        if not name or not self.teams:
            return TeamResolution(raw_name, None, None, 0.0, "empty")

        override = _MANUAL_OVERRIDES.get(name)
        if override is not None:
            if override in self.teams:
                return self._hit(raw_name, override, 100.0, "override")
            name = override

        if name in self.aliases:
            team_id = self.aliases[name]
            canonical = next((n for n, i in self.teams.items() if i == team_id), None)
            return TeamResolution(raw_name, team_id, canonical, 100.0, "alias")

        if name.lower() in self._lower:
            return self._hit(raw_name, self._lower[name.lower()], 100.0, "exact")

        clean = _strip_mascot(name)
        if clean.lower() in self._lower:
            return self._hit(raw_name, self._lower[clean.lower()], 100.0, "mascot")

        result = process.extractOne(
            clean, self._choices, scorer=fuzz.token_set_ratio, score_cutoff=self.score_cutoff
        )
        if result and _is_dangerous_substring_match(clean, result[0]):
            logger.warning("Substring guard blocked fuzzy match '%s' -> '%s'", clean, result[0])
            result = None
        if result:
            logger.debug("Fuzzy matched '%s' to '%s' (%.1f)", raw_name, result[0], result[1])
            return self._hit(raw_name, result[0], float(result[1]), "fuzzy")

        guess = process.extractOne(clean, self._choices, scorer=fuzz.token_set_ratio)
        return TeamResolution(
            raw_name, None, None,
            float(guess[1]) if guess else 0.0,
            "unresolved",
            best_guess=guess[0] if guess else None,
        )

    def resolve_many(self, names: Iterable[str]) -> Tuple[Dict[str, TeamResolution], List[TeamResolution]]:
        """Resolve a batch; returns (all results by name, unresolved list)."""
        results = {n: self.resolve(n) for n in set(names)}
        return results, [r for r in results.values() if not r.resolved]


def record_unresolved(db: Session, sport: str, source: str, resolution: TeamResolution) -> UnresolvedTeam:
    """Upsert an unresolved name for later reconciliation."""
    row = (
        db.query(UnresolvedTeam)
        .filter(
            UnresolvedTeam.sport == sport,
            UnresolvedTeam.source == source,
            UnresolvedTeam.name == resolution.query,
        )
        .first()
    )
    now = datetime.utcnow()
    if row is None:
        row = UnresolvedTeam(
            sport=sport, source=source, name=resolution.query,
            occurrences=0, first_seen=now,
        )
        db.add(row)
    row.best_guess = resolution.best_guess
    row.best_score = resolution.score
    row.occurrences = (row.occurrences or 0) + 1
    row.last_seen = now
    db.flush()
    logger.warning(
        "Unresolved %s team name '%s' (best guess %s @ %.0f)",
        source, resolution.query, resolution.best_guess, resolution.score,
    )
    return row


def add_alias(db: Session, sport: str, alias: str, team_id: int) -> TeamAlias:
    """Confirm an alias and clear the matching unresolved rows."""
    row = db.query(TeamAlias).filter(TeamAlias.sport == sport, TeamAlias.alias == alias).first()
    if row is None:
        row = TeamAlias(sport=sport, alias=alias, team_id=team_id)
        db.add(row)
        db.flush()
    else:
        row.team_id = team_id
    db.query(UnresolvedTeam).filter(
        UnresolvedTeam.sport == sport, UnresolvedTeam.name == alias
    ).delete(synchronize_session=False)
    return row


def get_or_create_team(db: Session, sport: str, name: str, **fields) -> Team:
    """Canonical-feed teams are created on first sighting."""
    team = db.query(Team).filter(Team.sport == sport, Team.name == name).first()
    if team is None:
        team = Team(sport=sport, name=name, **fields)
        db.add(team)
        db.flush()
        logger.info("Created team %s (%s)", name, sport)
    return team
