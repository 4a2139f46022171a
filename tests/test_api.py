"""API tests through FastAPI's TestClient (scheduler not started)."""

import pytest
from fastapi.testclient import TestClient

from college_edge.auth import ADMIN_USERS, VALID_API_KEYS
from college_edge.main import ODDS_POLL_INTERVAL_MIN, app
from college_edge.models import get_db
from college_edge.services.odds import POLL_CLOSE_MINUTES

ADMIN_KEY = next(k for k, user in VALID_API_KEYS.items() if user in ADMIN_USERS)


@pytest.fixture
def client(db_session):
    def _override():
        yield db_session

    app.dependency_overrides[get_db] = _override
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def headers():
    return {"X-API-Key": ADMIN_KEY}


def test_root(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json()["app"] == "College Edge"


def test_requires_api_key(client):
    assert client.get("/api/bets").status_code == 401
    assert client.get("/api/bets", headers={"X-API-Key": "nope"}).status_code == 401


def test_create_and_list_bet(client, headers, make_game):
    game = make_game()
    payload = {"game_id": game.id, "market": "spread", "side": "home", "line": -3.5}
    r = client.post("/api/bets", json=payload, headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["result"] == "pending"
    assert body["event_id"].endswith(f"manual:{VALID_API_KEYS[ADMIN_KEY]}")

    assert client.post("/api/bets", json=payload, headers=headers).status_code == 409
    listed = client.get("/api/bets", params={"result": "pending"}, headers=headers).json()
    assert len(listed) == 1


def test_bet_validation(client, headers, make_game):
    game = make_game()
    bad_side = {"game_id": game.id, "market": "total", "side": "home", "line": 48.5}
    bad_price = {"game_id": game.id, "market": "spread", "side": "home", "line": -3.5, "price": -50}
    assert client.post("/api/bets", json=bad_side, headers=headers).status_code == 422
    assert client.post("/api/bets", json=bad_price, headers=headers).status_code == 422
    missing = {"game_id": 9999, "market": "spread", "side": "home", "line": -3.5}
    assert client.post("/api/bets", json=missing, headers=headers).status_code == 404


def test_grade_requires_final_game(client, headers, make_game, db_session):
    game = make_game()
    payload = {"game_id": game.id, "market": "spread", "side": "away", "line": -3.5}
    bet_id = client.post("/api/bets", json=payload, headers=headers).json()["id"]
    assert client.post(f"/api/bets/{bet_id}/grade", headers=headers).status_code == 409

    game.status, game.home_score, game.away_score = "final", 20, 24
    db_session.commit()
    r = client.post(f"/api/bets/{bet_id}/grade", headers=headers)
    assert r.status_code == 200
    assert r.json()["result"] == "win"


def test_game_lines_404(client, headers):
    assert client.get("/api/games/123/lines", headers=headers).status_code == 404


def test_performance_summary_empty(client, headers):
    r = client.get("/api/performance/summary", headers=headers)
    assert r.json()["total_bets"] == 0


def test_admin_sync_validation(client, headers):
    assert client.post("/admin/sync/bogus", headers=headers).status_code == 404
    assert client.post("/admin/sync/games", headers=headers).status_code == 422
    assert client.post("/admin/sync/results", params={"season": 2024}, headers=headers).status_code == 422


def test_admin_alias(client, headers, make_game):
    game = make_game()
    r = client.post(
        "/admin/team-aliases",
        json={"alias": "tOSU", "team_id": game.home_team_id},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["team"] == "Ohio State"
    assert client.get("/admin/unresolved-teams", headers=headers).json() == []


def test_odds_job_ticks_at_close_poll_window():
    assert ODDS_POLL_INTERVAL_MIN == POLL_CLOSE_MINUTES
