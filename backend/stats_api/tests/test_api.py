from __future__ import annotations

import time
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from stats_api.core.config import Settings
from stats_api.main import create_app

from webui_fixtures import build_sqlite_db, default_dataset


@pytest.fixture
def client(tmp_path: Path) -> Iterator[TestClient]:
    # Anchor the fixture to wall-clock time; the routes always use the current time.
    path = build_sqlite_db(tmp_path / "webui.db", default_dataset(now=int(time.time())))
    with TestClient(create_app(Settings(database_url=f"sqlite:///{path}"))) as client:
        yield client


@pytest.fixture
def setup_client(tmp_path: Path) -> Iterator[TestClient]:
    settings = Settings(database_url=None, default_sqlite_path=str(tmp_path / "missing.db"))
    with TestClient(create_app(settings)) as client:
        yield client


def test_overview_uses_camel_case_keys(client: TestClient) -> None:
    response = client.get("/api/stats/overview")

    assert response.status_code == 200
    body = response.json()
    assert set(body) == {"totalUsers", "totalChats", "activeUsers", "totalModels", "estimatedTokens", "toolUsage"}
    assert body["totalUsers"] == 3
    assert body["totalChats"] == 4
    assert body["activeUsers"] == 2
    assert body["totalModels"] == 2
    assert body["toolUsage"] == 3
    assert body["estimatedTokens"] > 0


def test_models_endpoint(client: TestClient) -> None:
    response = client.get("/api/stats/models")

    assert response.status_code == 200
    body = response.json()
    assert [(row["model"], row["usage_count"]) for row in body] == [("gpt-4o", 3), ("llama3", 2)]
    assert set(body[0]) == {"model", "usage_count", "total_chars", "estimated_tokens"}


def test_activity_endpoint_defaults_to_thirty_days(client: TestClient) -> None:
    response = client.get("/api/stats/activity")

    assert response.status_code == 200
    body = response.json()
    assert sum(row["chat_count"] for row in body) == 3
    assert set(body[0]) == {"date", "chat_count", "unique_users"}
    assert [row["date"] for row in body] == sorted((row["date"] for row in body), reverse=True)


def test_activity_endpoint_accepts_days(client: TestClient) -> None:
    assert sum(row["chat_count"] for row in client.get("/api/stats/activity?days=60").json()) == 4
    assert client.get("/api/stats/activity?days=0").json() == []


@pytest.mark.parametrize("days", ["-1", "abc"])
def test_activity_endpoint_rejects_bad_days(client: TestClient, days: str) -> None:
    assert client.get(f"/api/stats/activity?days={days}").status_code == 422


def test_users_endpoint(client: TestClient) -> None:
    body = client.get("/api/stats/users").json()

    assert [row["id"] for row in body] == ["u1", "u2", "u3"]
    assert body[2]["chat_count"] == 0
    assert body[2]["last_activity"] is None
    assert set(body[0]) == {"id", "name", "role", "chat_count", "last_activity", "estimated_tokens"}


def test_tools_endpoint(client: TestClient) -> None:
    body = client.get("/api/stats/tools").json()

    assert [(row["tool_name"], row["tool_type"]) for row in body] == [
        ("web_search", "builtin"),
        ("code_interpreter", "builtin"),
        ("gmail", "custom"),
        ("google_calendar", "custom"),
    ]


def test_request_id_is_echoed_or_generated(client: TestClient) -> None:
    echoed = client.get("/health", headers={"X-Request-ID": "req-123"})
    generated = client.get("/health")

    assert echoed.headers["X-Request-ID"] == "req-123"
    assert generated.headers["X-Request-ID"]


def test_unhandled_errors_keep_the_request_id(tmp_path: Path) -> None:
    path = build_sqlite_db(tmp_path / "webui.db", default_dataset())
    app = create_app(Settings(database_url=f"sqlite:///{path}"))

    @app.get("/boom")
    async def boom() -> None:
        raise RuntimeError("boom")

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/boom", headers={"X-Request-ID": "req-500"})

    assert response.status_code == 500
    assert response.json() == {"error": "Unexpected server error", "request_id": "req-500"}
    assert response.headers["X-Request-ID"] == "req-500"


def test_health_reports_configured_database(client: TestClient) -> None:
    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["checks"]["database"] == {"configured": True, "dialect": "sqlite"}
    assert client.get("/health/ready").status_code == 200


def test_query_failure_returns_error_body(tmp_path: Path) -> None:
    path = build_sqlite_db(tmp_path / "webui.db", default_dataset(), with_models=False)

    with TestClient(create_app(Settings(database_url=f"sqlite:///{path}"))) as client:
        response = client.get("/api/stats/overview")
        assert response.status_code == 500
        assert "no such table" in response.json()["error"]

        # Other endpoints do not touch the model table.
        assert client.get("/api/stats/models").status_code == 200


def test_setup_mode_returns_setup_required(setup_client: TestClient) -> None:
    for path in ("/api/stats/overview", "/api/stats/models", "/api/stats/activity", "/api/stats/users", "/api/stats/tools"):
        response = setup_client.get(path)
        assert response.status_code == 503
        body = response.json()
        assert body["setupRequired"] is True
        assert body["setupUrl"] == "/setup"
        assert body["error"]


def test_setup_status(setup_client: TestClient, client: TestClient) -> None:
    assert setup_client.get("/setup").json() == {"setupRequired": True}
    assert client.get("/setup").json() == {"setupRequired": False}


def test_readiness_fails_in_setup_mode(setup_client: TestClient) -> None:
    response = setup_client.get("/health/ready")

    assert response.status_code == 503
    assert response.json()["checks"]["database"]["status"] == "not_configured"
