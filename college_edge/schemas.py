"""
Pydantic request/response schemas for the College Edge API.

Explicit schemas keep request bodies from mass-assigning ORM columns and
give the OpenAPI docs accurate types.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# Bets
# ---------------------------------------------------------------------------

class BetCreate(BaseModel):
    """
    Payload for POST /api/bets.

    ``line`` is the spread from the home team's perspective (negative =
    home favoured) or the total.  Results, profit and CLV are written by
    the grader, never by the client.
    """

    game_id: int = Field(..., description="FK to games.id")
    market: Literal["spread", "total"]
    side: Literal["home", "away", "over", "under"]
    line: float = Field(..., description="Home-perspective spread or total at bet time")
    price: int = Field(-110, description="American odds")
    stake: float = Field(1.0, gt=0, le=10, description="Units risked (max 10)")
    is_paper: bool = True
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("price")
    @classmethod
    def validate_american_odds(cls, v: int) -> int:
        if -100 < v < 100:
            raise ValueError(f"price={v} is not valid American odds. Must be >= +100 or <= -100.")
        return v

    @model_validator(mode="after")
    def side_matches_market(self) -> "BetCreate":
        allowed = {"spread": {"home", "away"}, "total": {"over", "under"}}[self.market]
        if self.side not in allowed:
            raise ValueError(f"side {self.side!r} is not valid for market {self.market!r}")
        return self

    model_config = {
        "json_schema_extra": {
            "example": {
                "game_id": 42,
                "market": "spread",
                "side": "home",
                "line": -3.5,
                "price": -110,
                "stake": 1.0,
            }
        }
    }


class BetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_id: str
    game_id: int
    market: str
    side: str
    line: float
    price: Optional[int] = None
    stake: Optional[float] = None
    edge_points: Optional[float] = None
    confidence: Optional[str] = None
    is_paper: bool
    result: str
    profit_units: Optional[float] = None
    closing_line: Optional[float] = None
    clv_points: Optional[float] = None
    placed_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Projections / ratings
# ---------------------------------------------------------------------------

class ProjectionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    game_id: int
    model_version: str
    rating_home: Optional[float] = None
    rating_away: Optional[float] = None
    predicted_spread: Optional[float] = None
    predicted_total: Optional[float] = None
    market_spread: Optional[float] = None
    market_total: Optional[float] = None
    edge_points: Optional[float] = None
    recommended_side: Optional[str] = None
    total_edge_points: Optional[float] = None
    total_side: Optional[str] = None
    uncertainty: Optional[float] = None
    effective_edge_points: Optional[float] = None
    confidence: Optional[str] = None
    data_complete: Optional[bool] = None
    updated_at: Optional[datetime] = None


class RatingPoint(BaseModel):
    season: int
    week: int
    rating: float
    games_played: int


class RatingHistoryResponse(BaseModel):
    team_id: int
    team: str
    history: List[RatingPoint]


# ---------------------------------------------------------------------------
# Backtest / admin
# ---------------------------------------------------------------------------

class BacktestRequest(BaseModel):
    seasons: List[int] = Field(..., min_length=1)
    min_edge: Optional[float] = Field(None, ge=0)
    line_source: Literal["open", "close"] = "close"


class AliasCreate(BaseModel):
    alias: str = Field(..., min_length=2, max_length=120)
    team_id: int


class JobResponse(BaseModel):
    """Shape of every batch job summary."""

    job: str
    processed: int
    skipped: int
    errored: int
    errors: List[str]
    timestamp: str
    extra: Dict = Field(default_factory=dict)

    @classmethod
    def from_summary(cls, summary: Dict) -> "JobResponse":
        base = {k: summary[k] for k in ("job", "processed", "skipped", "errored", "errors", "timestamp")}
        extra = {k: v for k, v in summary.items() if k not in base}
        return cls(**base, extra=extra)
