from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from weather_dashboard import server
from weather_dashboard.db import Base, get_db


# ── Provider payloads ────────────────────────────────────────────────────────

def _day(date: str, tempmax=22, tempmin=12, conditions="Clear", precipprob=0):
    return {
        "datetime": date,
        "tempmax": tempmax,
        "tempmin": tempmin,
        "conditions": conditions,
        "precipprob": precipprob,
        "icon": "clear-day",
    }


def _payload(
    resolved="Paris, Île-de-France, France",
    temp=21.4,
    feelslike=20.6,
    conditions="Clear",
    humidity=55,
    windspeed=9.5,
    days=None,
):
    if days is None:
        days = [_day(f"2026-10-{19 + i:02d}") for i in range(7)]
    return {
        "resolvedAddress": resolved,
        "currentConditions": {
            "temp": temp,
            "feelslike": feelslike,
            "conditions": conditions,
            "humidity": humidity,
            "windspeed": windspeed,
            "icon": "clear-day",
        },
        "days": days,
    }


@pytest.fixture
def make_day():
    return _day


@pytest.fixture
def make_payload():
    return _payload


# ── Storage ──────────────────────────────────────────────────────────────────

@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# ── HTTP ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    server.app.dependency_overrides[get_db] = override_get_db
    server.app.state.llm_client = None
    yield TestClient(server.app)
    server.app.dependency_overrides.clear()
    server.app.state.llm_client = None


@pytest.fixture
def llm_client():
    mock_client = MagicMock()
    mock_client.chat.completions.create = AsyncMock()
    server.app.state.llm_client = mock_client
    return mock_client


def _register(client, username="alice", email=None, password="s3cret!"):
    response = client.post(
        "/api/auth/register",
        json={"username": username, "email": email or f"{username}@example.com", "password": password},
    )
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def register(client):
    return lambda username="alice", **kwargs: _register(client, username, **kwargs)


@pytest.fixture
def auth_headers(register):
    return register()


def make_completion(content):
    choice = MagicMock()
    choice.finish_reason = "stop"
    choice.message.content = content
    resp = MagicMock()
    resp.choices = [choice]
    return resp


@pytest.fixture
def completion():
    return make_completion
