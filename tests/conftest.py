"""Shared fixtures: an isolated in-memory SQLite database per test."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "development"
os.environ.setdefault("SPORT", "ncaaf")

from datetime import datetime

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from college_edge.models import Base, Game, Team


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT (begin_nested) to behave
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def make_game(db_session):
    """Create a game (and its teams on first use) in the test database."""

    def _make(home="Ohio State", away="Michigan", season=2024, week=1,
              start_date=datetime(2024, 9, 7, 19, 30), status="scheduled",
              home_score=None, away_score=None, sport="ncaaf", external_id=None,
              neutral_site=False):
        teams = {}
        for name in (home, away):
            team = db_session.query(Team).filter(Team.sport == sport, Team.name == name).first()
            if team is None:
                team = Team(sport=sport, name=name)
                db_session.add(team)
                db_session.flush()
            teams[name] = team
        game = Game(
            external_id=external_id or f"{season}-{week}-{home}-{away}",
            sport=sport,
            season=season,
            week=week,
            start_date=start_date,
            home_team_id=teams[home].id,
            away_team_id=teams[away].id,
            neutral_site=neutral_site,
            status=status,
            home_score=home_score,
            away_score=away_score,
        )
        db_session.add(game)
        db_session.flush()
        return game

    return _make
