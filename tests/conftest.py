"""Root conftest: shared fixtures for all repowatch tests.

Provides:
- anyio backend pinned to asyncio (APScheduler's AsyncIOScheduler needs it)
- Settings factory that ignores the developer's env / config.json
- Empty RepoStore and a GitHubClient with a mocked transport
- API client over ASGITransport with app.state populated by hand
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from repowatch.config import RepoRef, Settings
from repowatch.services.github.client import GitHubClient
from repowatch.services.store import RepoStore


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "api: HTTP route tests through the ASGI app")


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# ─────────────────────────────────────────────────────────────────────────────
# Core objects
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def make_settings(tmp_path, monkeypatch):
    """Build Settings from kwargs only: no .env and no JSON config file."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CONFIG_PATH", str(tmp_path / "missing.json"))
    for name in ("REPOS", "GITHUB_TOKEN", "FEED_LIMIT", "REFRESH_SECONDS"):
        monkeypatch.delenv(name, raising=False)

    def _make(**overrides) -> Settings:
        overrides.setdefault("repos", [RepoRef(id="octo/alpha", name="Alpha")])
        return Settings(**overrides)

    return _make


@pytest.fixture
def store() -> RepoStore:
    return RepoStore(commit_stats_max_entries=100, max_quality_reports=10)


@pytest.fixture
def http() -> AsyncMock:
    """Stand-in for the shared httpx.AsyncClient; set `http.get.return_value`."""
    return AsyncMock()


@pytest.fixture
def github(http: AsyncMock) -> GitHubClient:
    return GitHubClient(token="ghp_test_token", http=http)


# ─────────────────────────────────────────────────────────────────────────────
# API Client
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
async def api_client(store: RepoStore, github: GitHubClient):
    """HTTP client over the ASGI app. Lifespan does not run: no polling, no network."""
    from repowatch.main import app

    app.state.store = store
    app.state.github = github
    app.state.scheduler = None

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
