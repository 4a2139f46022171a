"""Tests for the in-memory and SQL snapshot stores."""

import pytest

from college_edge.models import RatingSnapshot as RatingSnapshotRow
from college_edge.services.rating_store import (
    InMemoryRatingStore,
    RatingSnapshot,
    SqlRatingStore,
)


@pytest.fixture(params=["memory", "sql"])
def store(request, db_session):
    if request.param == "memory":
        return InMemoryRatingStore()
    return SqlRatingStore(db_session, "ncaaf")


def _fill(store):
    store.put_many([
        RatingSnapshot(1, 2023, 0, 1500.0),
        RatingSnapshot(1, 2023, 5, 1540.0, 5),
        RatingSnapshot(1, 2024, 0, 1527.0),
        RatingSnapshot(1, 2024, 2, 1560.0, 2),
        RatingSnapshot(2, 2024, 2, 1450.0, 2),
    ])


def test_get_exact(store):
    _fill(store)
    snap = store.get(1, 2023, 5)
    assert snap.rating == 1540.0
    assert snap.games_played == 5
    assert store.get(1, 2023, 6) is None


def test_latest_before_is_strict(store):
    _fill(store)
    assert store.latest_before(1, 2024, 2).week == 0
    assert store.latest_before(1, 2024, 3).week == 2


def test_latest_before_crosses_season(store):
    _fill(store)
    snap = store.latest_before(1, 2024, 0)
    assert (snap.season, snap.week) == (2023, 5)


def test_latest_before_nothing_earlier(store):
    _fill(store)
    assert store.latest_before(1, 2023, 0) is None
    assert store.latest_before(99, 2024, 5) is None


def test_put_overwrites(store):
    store.put(RatingSnapshot(3, 2024, 1, 1510.0, 1))
    store.put(RatingSnapshot(3, 2024, 1, 1520.0, 1))
    assert store.get(3, 2024, 1).rating == 1520.0


def test_sql_put_is_idempotent(db_session):
    store = SqlRatingStore(db_session, "ncaaf")
    for _ in range(3):
        store.put(RatingSnapshot(1, 2024, 1, 1512.5, 1))
    assert db_session.query(RatingSnapshotRow).count() == 1


def test_sql_store_scoped_by_sport(db_session):
    SqlRatingStore(db_session, "ncaaf").put(RatingSnapshot(1, 2024, 1, 1512.5, 1))
    assert SqlRatingStore(db_session, "ncaab").get(1, 2024, 1) is None


def test_sql_delete_season(db_session):
    store = SqlRatingStore(db_session, "ncaaf")
    _fill(store)
    assert store.delete_season(2024) == 3
    assert store.get(1, 2024, 2) is None
    assert store.get(1, 2023, 5) is not None


def test_memory_len():
    store = InMemoryRatingStore()
    _fill(store)
    assert len(store) == 5
    assert store.team_ids() == [1, 2]
