"""
The Odds API integration for college spreads and totals.
https://the-odds-api.com/

Every bookmaker price becomes a :class:`~college_edge.core.lines.LineTick`.
Spread points are stored from the home team's perspective on both sides
(an away outcome of +6.5 is stored as -6.5), so openers, closers and CLV
never need to know which side a tick came from.
"""

import logging
import os
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from dotenv import load_dotenv

from college_edge.core.lines import LineTick
from college_edge.services.cfbd import parse_datetime
from college_edge.services.feed_client import FeedClient

load_dotenv()

logger = logging.getLogger(__name__)

API_KEY = os.getenv("THE_ODDS_API_KEY")
BASE_URL = os.getenv("ODDS_API_BASE_URL", "https://api.the-odds-api.com/v4")
ODDS_API_REGIONS = os.getenv("ODDS_API_REGIONS", "us")

# Poll cadence tightens as kickoff approaches (minutes between polls).
POLL_FAR_MINUTES = int(os.getenv("POLL_WINDOW_FAR_MINUTES", "60"))
POLL_MEDIUM_MINUTES = int(os.getenv("POLL_WINDOW_MEDIUM_MINUTES", "10"))
POLL_CLOSE_MINUTES = int(os.getenv("POLL_WINDOW_CLOSE_MINUTES", "2"))


def poll_interval(commence_time: datetime, now: datetime) -> timedelta:
    """Minimum gap between polls of one event."""
    hours_to_kickoff = (commence_time - now).total_seconds() / 3600
    if hours_to_kickoff > 24:
        return timedelta(minutes=POLL_FAR_MINUTES)
    if hours_to_kickoff > 4:
        return timedelta(minutes=POLL_MEDIUM_MINUTES)
    return timedelta(minutes=POLL_CLOSE_MINUTES)


def should_poll(commence_time: datetime, last_captured: Optional[datetime], now: datetime) -> bool:
    if commence_time <= now:
        return False
    if last_captured is None:
        return True
    return now - last_captured >= poll_interval(commence_time, now)


def parse_line_ticks(event: Dict, captured_at: Optional[datetime] = None) -> List[LineTick]:
    """Flatten one Odds API event into spread and total ticks.

    Bookmakers missing a home or away outcome (or a point) are skipped.
    """
    home = event.get("home_team")
    away = event.get("away_team")
    ticks: List[LineTick] = []
    for book in event.get("bookmakers") or []:
        provider = book.get("key")
        stamp = captured_at or parse_datetime(book.get("last_update")) or datetime.utcnow()
        for market in book.get("markets") or []:
            outcomes = {o.get("name"): o for o in market.get("outcomes") or []}
            if market.get("key") == "spreads":
                h, a = outcomes.get(home), outcomes.get(away)
                if not h or not a or h.get("point") is None or a.get("point") is None:
                    continue
                ticks.append(LineTick(event["id"], provider, "spread", "home",
                                      float(h["point"]), int(h.get("price", -110)), stamp))
                ticks.append(LineTick(event["id"], provider, "spread", "away",
                                      -float(a["point"]), int(a.get("price", -110)), stamp))
            elif market.get("key") == "totals":
                o, u = outcomes.get("Over"), outcomes.get("Under")
                if not o or not u or o.get("point") is None:
                    continue
                ticks.append(LineTick(event["id"], provider, "total", "over",
                                      float(o["point"]), int(o.get("price", -110)), stamp))
                ticks.append(LineTick(event["id"], provider, "total", "under",
                                      float(u.get("point", o["point"])), int(u.get("price", -110)), stamp))
    return ticks


def parse_scores(event: Dict) -> Optional[Dict]:
    """Final score of a completed Odds API event, or ``None``."""
    if not event.get("completed"):
        return None
    scores = {s.get("name"): s.get("score") for s in event.get("scores") or []}
    home, away = scores.get(event.get("home_team")), scores.get(event.get("away_team"))
    if home is None or away is None:
        return None
    return {
        "event_id": event["id"],
        "home_team": event["home_team"],
        "away_team": event["away_team"],
        "commence_time": parse_datetime(event.get("commence_time")),
        "home_score": int(home),
        "away_score": int(away),
    }


class OddsAPIClient(FeedClient):
    """Client for The Odds API"""

    source = "odds_api"

    def __init__(self, api_key: Optional[str] = None, session=None):
        super().__init__(BASE_URL, session=session)
        self.api_key = api_key or API_KEY
        if not self.api_key:
            raise ValueError("THE_ODDS_API_KEY not set in environment")

    def get_odds(self, sport_key: str, markets: str = "spreads,totals") -> List[Dict]:
        """Current odds for every upcoming event of ``sport_key``."""
        data = self.get_json(
            f"/sports/{sport_key}/odds",
            apiKey=self.api_key,
            regions=ODDS_API_REGIONS,
            markets=markets,
            oddsFormat="american",
        )
        logger.info("Odds API: %d events fetched for %s", len(data or []), sport_key)
        return data or []

    def get_scores(self, sport_key: str, days_from: int = 3) -> List[Dict]:
        data = self.get_json(f"/sports/{sport_key}/scores", apiKey=self.api_key, daysFrom=days_from)
        return data or []
