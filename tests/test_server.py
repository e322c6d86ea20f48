import asyncio
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient
from sqlalchemy import select
from werkzeug.security import generate_password_hash

from weather_dashboard import auth, server
from weather_dashboard.db import City, User


# ── /health ───────────────────────────────────────────────────────────────────

def test_health_returns_200(client, monkeypatch):
    monkeypatch.setattr(server.config, "WEATHER_API_KEY", "")

    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert "model" in data
    assert data["weather_api_key_configured"] is False


# ── Error normalisation ───────────────────────────────────────────────────────

def test_unknown_route_returns_message(client):
    response = client.get("/api/nope")

    assert response.status_code == 404
    assert "message" in response.json()


def test_malformed_json_returns_400(client, auth_headers):
    response = client.post(
        "/api/cities",
        content="{not json",
        headers={**auth_headers, "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {"message": "Invalid request body."}


def test_non_numeric_city_id_returns_400(client, auth_headers):
    response = client.put("/api/cities/abc/favorite", headers=auth_headers)

    assert response.status_code == 400
    assert response.json() == {"message": "Invalid value for city_id."}


def test_storage_failure_returns_500(client, auth_headers, monkeypatch):
    async def broken(db, user):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(server.city_store, "list_cities", broken)
    failing_client = TestClient(server.app, raise_server_exceptions=False)

    response = failing_client.get("/api/cities", headers=auth_headers)

    assert response.status_code == 500
    assert response.json() == {"message": "Server error", "error": "database is locked"}


# ── Lifespan ─────────────────────────────────────────────────────────────────

def test_lifespan_creates_and_closes_model_client(monkeypatch):
    fake_client = MagicMock()
    fake_client.close = AsyncMock()
    monkeypatch.setattr(server, "make_chat_client", lambda: fake_client)
    monkeypatch.setattr(server, "connect_with_retry", AsyncMock(return_value=True))

    with TestClient(server.app):
        assert server.app.state.llm_client is fake_client

    fake_client.close.assert_awaited_once()
    server.app.state.llm_client = None


def test_lifespan_serves_while_storage_is_connecting(monkeypatch):
    async def never_connects():
        await asyncio.sleep(3600)

    fake_client = MagicMock()
    fake_client.close = AsyncMock()
    monkeypatch.setattr(server, "make_chat_client", lambda: fake_client)
    monkeypatch.setattr(server, "connect_with_retry", never_connects)

    with TestClient(server.app) as live_client:
        assert live_client.get("/health").status_code == 200
        storage_task = server.app.state.storage_task
        assert not storage_task.done()

    assert storage_task.cancelled()
    server.app.state.llm_client = None


# ── Blocking work ────────────────────────────────────────────────────────────

def _outside_event_loop():
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return True
    return False


def test_password_hashing_runs_off_the_event_loop(client, monkeypatch):
    calls = []

    def recording_hash(plain):
        calls.append(_outside_event_loop())
        return generate_password_hash(plain)

    monkeypatch.setattr(auth, "generate_password_hash", recording_hash)

    response = client.post(
        "/api/auth/register",
        json={"username": "carol", "email": "carol@example.com", "password": "s3cret!"},
    )

    assert response.status_code == 201
    assert calls == [True]


def test_favorite_toggle_commits_off_the_event_loop(client, auth_headers, db, monkeypatch):
    user_id = db.scalar(select(User.id).where(User.username == "alice"))
    city = City(user_id=user_id, city_name="Paris", country="France", weather_history=[])
    db.add(city)
    db.commit()

    calls = []
    toggle = server.city_store.toggle_favorite

    def recording_toggle(*args):
        calls.append(_outside_event_loop())
        return toggle(*args)

    monkeypatch.setattr(server.city_store, "toggle_favorite", recording_toggle)

    response = client.put(f"/api/cities/{city.id}/favorite", headers=auth_headers)

    assert response.status_code == 200
    assert calls == [True]
