from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from pymongo.errors import ConnectionFailure

from main import create_app
from middleware import RateLimitMiddleware
from tests.conftest import make_settings


class UnreachableDatabase:
    def command(self, name):
        raise ConnectionFailure("connection refused")


def test_root_lists_endpoints(client):
    res = client.get("/")

    assert res.status_code == 200
    assert res.json()["endpoints"]["transportEntries"] == "/api/transport-entries"


def test_health(app, client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["database"] == "connected"

    app.state.db = UnreachableDatabase()
    res = client.get("/health")
    assert res.status_code == 503
    assert res.json()["status"] == "unhealthy"


@pytest.mark.parametrize("environment, exposes_detail", [("production", False), ("development", True)])
def test_unhandled_errors_become_500(db, mailer, clock, environment, exposes_detail):
    app = create_app(make_settings(ENVIRONMENT=environment), db=db, mailer=mailer, clock=clock)

    @app.get("/boom")
    def boom():
        raise RuntimeError("disk on fire")

    res = TestClient(app, raise_server_exceptions=False).get("/boom")

    assert res.status_code == 500
    body = res.json()
    assert body["success"] is False
    assert "timestamp" in body
    if exposes_detail:
        assert body["originalError"] == "disk on fire"
        assert "RuntimeError" in body["stack"]
    else:
        assert body["error"] == "Internal server error"
        assert "stack" not in body


def test_auth_routes_have_their_own_rate_limit(db, mailer, clock):
    settings = make_settings(RATE_LIMIT_ENABLED=True, AUTH_RATE_LIMIT_MAX_REQUESTS=2, RATE_LIMIT_MAX_REQUESTS=3)
    client = TestClient(create_app(settings, db=db, mailer=mailer, clock=clock))
    credentials = {"email": "nobody@acme-logistics.com", "password": "whatever"}

    first = client.post("/api/auth/login", json=credentials)
    assert first.status_code == 401
    assert first.headers["X-RateLimit-Limit"] == "2"
    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert client.post("/api/auth/login", json=credentials).status_code == 401

    res = client.post("/api/auth/login", json=credentials)
    assert res.status_code == 429
    assert res.json() == {"success": False, "error": "Too many requests, please try again later"}
    assert res.headers["X-RateLimit-Remaining"] == "0"
    assert "Retry-After" in res.headers

    # other routes and the health check draw on separate budgets
    assert client.get("/").status_code == 200
    for _ in range(5):
        assert client.get("/health").status_code == 200


def test_rate_limiter_evicts_closed_windows():
    limiter = RateLimitMiddleware(None, window_seconds=60, max_requests=5, auth_max_requests=2)
    now = datetime(2024, 6, 1, 9, 0)
    limiter.last_sweep = now - timedelta(minutes=5)
    limiter.store = {
        "10.0.0.1:general": (3, now - timedelta(minutes=2)),
        "10.0.0.2:auth": (1, now - timedelta(seconds=10)),
    }

    limiter.evict_expired(now)

    assert list(limiter.store) == ["10.0.0.2:auth"]
    assert limiter.last_sweep == now
    # no second sweep inside the same window
    limiter.store["10.0.0.3:general"] = (1, now - timedelta(hours=1))
    limiter.evict_expired(now + timedelta(seconds=30))
    assert "10.0.0.3:general" in limiter.store


def test_cors_origins_accept_a_comma_separated_string():
    settings = make_settings(CORS_ORIGINS="https://app.acme-logistics.com, http://localhost:3000")

    assert settings.CORS_ORIGINS == ["https://app.acme-logistics.com", "http://localhost:3000"]
