"""
Database models for College Edge
SQLAlchemy ORM with PostgreSQL (SQLite in tests)
"""

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Float,
    DateTime,
    Boolean,
    Text,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, sessionmaker, relationship
from datetime import datetime
import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://postgres@127.0.0.1:5432/college_edge")

# pool_pre_ping keeps long-lived scheduler connections healthy
engine = create_engine(DATABASE_URL, pool_pre_ping=True, echo=False)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

GAME_SCHEDULED = "scheduled"
GAME_FINAL = "final"
GAME_CANCELLED = "cancelled"
GAME_POSTPONED = "postponed"
TERMINAL_GAME_STATUSES = frozenset({GAME_FINAL, GAME_CANCELLED, GAME_POSTPONED})


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class Team(Base):
    """A team as known to the pipeline. Created on first sighting."""

    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    sport = Column(String(10), nullable=False, index=True)
    name = Column(String, nullable=False)
    external_id = Column(String, index=True)      # CFBD team id
    conference = Column(String)

    aliases = relationship("TeamAlias", back_populates="team")

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (UniqueConstraint("sport", "name", name="_team_sport_name_uc"),)


class TeamAlias(Base):
    """Feed-specific spelling of a team name, confirmed by a human."""

    __tablename__ = "team_aliases"

    id = Column(Integer, primary_key=True, index=True)
    sport = Column(String(10), nullable=False, index=True)
    alias = Column(String, nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)

    team = relationship("Team", back_populates="aliases")

    __table_args__ = (UniqueConstraint("sport", "alias", name="_alias_sport_uc"),)


class UnresolvedTeam(Base):
    """Feed name that could not be matched confidently. Awaiting reconciliation."""

    __tablename__ = "unresolved_teams"

    id = Column(Integer, primary_key=True, index=True)
    sport = Column(String(10), nullable=False)
    source = Column(String(50), nullable=False)     # cfbd | odds_api
    name = Column(String, nullable=False)
    best_guess = Column(String)
    best_score = Column(Float)
    occurrences = Column(Integer, default=1)
    first_seen = Column(DateTime, default=datetime.utcnow)
    last_seen = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (UniqueConstraint("sport", "source", "name", name="_unresolved_uc"),)


class Game(Base):
    """Scheduled or completed game"""

    __tablename__ = "games"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String, unique=True, index=True)  # CFBD game id
    odds_event_id = Column(String, index=True)              # The Odds API event id
    sport = Column(String(10), nullable=False, index=True)
    season = Column(Integer, nullable=False, index=True)
    week = Column(Integer, nullable=False, index=True)
    start_date = Column(DateTime, nullable=False, index=True)
    home_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    away_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    neutral_site = Column(Boolean, default=False)

    # Filled after the game
    home_score = Column(Integer)
    away_score = Column(Integer)
    status = Column(String(20), default=GAME_SCHEDULED, nullable=False, index=True)

    home_team = relationship("Team", foreign_keys=[home_team_id])
    away_team = relationship("Team", foreign_keys=[away_team_id])
    lines = relationship("MarketLine", back_populates="game")
    projections = relationship("Projection", back_populates="game")
    bets = relationship("BetRecord", back_populates="game")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_final(self) -> bool:
        return (
            self.status == GAME_FINAL
            and self.home_score is not None
            and self.away_score is not None
        )


class GameEfficiency(Base):
    """Per-game offensive/defensive PPA for one team"""

    __tablename__ = "game_efficiency"

    id = Column(Integer, primary_key=True, index=True)
    game_id = Column(Integer, ForeignKey("games.id"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    offense_ppa = Column(Float)
    defense_ppa = Column(Float)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (UniqueConstraint("game_id", "team_id", name="_efficiency_game_team_uc"),)


class RatingSnapshot(Base):
    """Team rating after all games of a week. Week 0 is the preseason prior."""

    __tablename__ = "rating_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    sport = Column(String(10), nullable=False)
    season = Column(Integer, nullable=False, index=True)
    week = Column(Integer, nullable=False)
    rating = Column(Float, nullable=False)
    games_played = Column(Integer, default=0)
    model_version = Column(String(50), nullable=False)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint(
            "team_id", "sport", "season", "week", "model_version", name="_snapshot_team_week_uc"
        ),
    )


class MarketLine(Base):
    """One observed price tick. Append-only."""

    __tablename__ = "market_lines"

    id = Column(Integer, primary_key=True, index=True)
    game_id = Column(Integer, ForeignKey("games.id"), nullable=False, index=True)
    provider = Column(String(50), nullable=False)
    market = Column(String(10), nullable=False)    # spread | total
    side = Column(String(10), nullable=False)      # home | away | over | under
    point = Column(Float, nullable=False)          # spread is home-perspective for both sides
    price = Column(Integer, default=-110)
    captured_at = Column(DateTime, nullable=False, index=True)
    tick_type = Column(String(10), default="tick")  # open | tick | close

    game = relationship("Game", back_populates="lines")

    __table_args__ = (
        UniqueConstraint(
            "game_id", "provider", "market", "side", "captured_at", name="_line_tick_uc"
        ),
    )


class Projection(Base):
    """Model projection for a game. Latest run wins."""

    __tablename__ = "projections"

    id = Column(Integer, primary_key=True, index=True)
    game_id = Column(Integer, ForeignKey("games.id"), nullable=False, index=True)
    model_version = Column(String(50), nullable=False)

    rating_home = Column(Float)
    rating_away = Column(Float)
    predicted_spread = Column(Float)
    predicted_total = Column(Float)
    market_spread = Column(Float)
    market_total = Column(Float)
    edge_points = Column(Float)
    recommended_side = Column(String(10))
    total_edge_points = Column(Float)
    total_side = Column(String(10))
    uncertainty = Column(Float)
    effective_edge_points = Column(Float)
    confidence = Column(String(10), default="none")
    data_complete = Column(Boolean, default=True)

    game = relationship("Game", back_populates="projections")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (UniqueConstraint("game_id", "model_version", name="_projection_game_model_uc"),)


class BetRecord(Base):
    """Paper (or real) bet. pending -> win | loss | push, exactly once."""

    __tablename__ = "bet_records"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String, unique=True, nullable=False, index=True)
    game_id = Column(Integer, ForeignKey("games.id"), nullable=False, index=True)
    market = Column(String(10), nullable=False)
    side = Column(String(10), nullable=False)
    line = Column(Float, nullable=False)
    price = Column(Integer, default=-110)
    stake = Column(Float, default=1.0)
    edge_points = Column(Float)
    confidence = Column(String(10))
    model_version = Column(String(50))
    is_paper = Column(Boolean, default=True)

    result = Column(String(10), default="pending", index=True)
    profit_units = Column(Float)
    closing_line = Column(Float)
    clv_points = Column(Float)

    game = relationship("Game", back_populates="bets")

    placed_at = Column(DateTime, default=datetime.utcnow, index=True)
    graded_at = Column(DateTime)
    notes = Column(Text)


class DataFetch(Base):
    """Monitoring row for each external fetch"""

    __tablename__ = "data_fetches"

    id = Column(Integer, primary_key=True, index=True)
    fetched_at = Column(DateTime, default=datetime.utcnow, index=True)
    data_source = Column(String(50), nullable=False)
    success = Column(Boolean, default=True)
    records_fetched = Column(Integer, default=0)
    error_message = Column(Text)
    response_time_ms = Column(Float)


def init_db():
    """Initialize database tables"""
    Base.metadata.create_all(bind=engine)
    print("✅ Database tables created")


if __name__ == "__main__":
    init_db()
