from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from webui_fixtures import build_sqlite_db, default_dataset


@pytest.fixture
def dataset() -> dict[str, list[dict[str, Any]]]:
    return default_dataset()


@pytest.fixture
def webui_db(tmp_path: Path, dataset: dict[str, list[dict[str, Any]]]) -> Path:
    return build_sqlite_db(tmp_path / "webui.db", dataset)


@pytest.fixture(scope="session")
def postgres_url(tmp_path_factory: pytest.TempPathFactory) -> Iterator[str]:
    """A disposable PostgreSQL database: TEST_POSTGRES_URL, else an embedded server."""
    configured = os.getenv("TEST_POSTGRES_URL")
    if configured:
        yield configured
        return

    pgserver = pytest.importorskip("pgserver")
    server = pgserver.get_server(tmp_path_factory.mktemp("pgdata"), cleanup_mode="delete")
    try:
        yield server.get_uri()
    finally:
        server.cleanup()
