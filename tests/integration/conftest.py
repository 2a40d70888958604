"""Integration test fixtures.

Provides AppState wired the way the server lifespan wires it, over an
in-memory SQLite blob store and a respx-mocked GitHub. Repository and
document fixtures come from tests/conftest.py.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import aiosqlite
import httpx
import pytest
import respx

from canonkit.baseline import BaselineFetcher
from canonkit.cache import BlobStore
from canonkit.config import BaselineSettings, Settings
from canonkit.fetcher import HttpFetcher
from canonkit.state import AppState

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

COMMITS = "https://api.github.com/repos/klappy/klappy.dev/commits/main"
ARCHIVE = "https://github.com/klappy/klappy.dev/archive/abc123.zip"
ARCHIVE_BY_REF = "https://github.com/klappy/klappy.dev/archive/main.zip"
CANON_URL = "https://github.com/acme/handbook"

BASELINE_FILES = {
    "canon/backoff.md": (
        "---\nuri: klappy://canon/backoff\nevidence: strong\n---\n"
        "# Backoff\n\n## Rules\n\n"
        "Every retry policy must cap attempts and add jitter between each try.\n"
    ),
    "docs/release.md": "# Release\n\nTag, build, publish.\n",
}


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    """Env dict for subprocess-based MCP tests: isolated paths, no network."""
    env = os.environ.copy()
    env["CANONKIT__REPO__ROOT"] = str(tmp_path)
    env["CANONKIT__CACHE__DB_PATH"] = str(tmp_path / "cache.db")
    env["CANONKIT__BASELINE__ENABLED"] = "false"
    return env


@pytest.fixture()
def github(archive_factory: Callable[..., bytes]):
    """Mocked GitHub serving the baseline at commit abc123."""
    with respx.mock(assert_all_called=False) as router:
        router.get(COMMITS, name="commits").mock(return_value=httpx.Response(200, text="abc123"))
        router.get(ARCHIVE, name="archive").mock(
            return_value=httpx.Response(
                200, content=archive_factory(BASELINE_FILES, prefix="klappy.dev-abc123")
            )
        )
        router.get(ARCHIVE_BY_REF, name="archive_by_ref").mock(
            return_value=httpx.Response(503)
        )
        yield router


@pytest.fixture()
async def app_state(repo_root: Path) -> AppState:
    """Full AppState with the baseline enabled."""
    async with aiosqlite.connect(":memory:") as db:
        store = BlobStore(db)
        await store.init_db()

        async with httpx.AsyncClient() as client:
            settings = Settings(repo={"root": str(repo_root)})
            fetcher = HttpFetcher(client)
            state = AppState(
                settings=settings,
                http_client=client,
                store=store,
                fetcher=fetcher,
                baseline=BaselineFetcher(
                    fetcher,
                    store,
                    baseline=settings.baseline,
                    cache=settings.cache,
                    index=settings.index,
                ),
            )
            yield state


@pytest.fixture()
def local_state(repo_root: Path) -> AppState:
    """AppState with the baseline disabled: local documents only."""
    return AppState(settings=Settings(repo={"root": str(repo_root)}, baseline={"enabled": False}))


@pytest.fixture()
def canon_state(app_state: AppState) -> AppState:
    """app_state with a canon override repository merged ahead of the baseline."""
    baseline = BaselineSettings(canon_url=CANON_URL)
    settings = app_state.settings.model_copy(update={"baseline": baseline})
    assert app_state.fetcher is not None and app_state.store is not None
    return AppState(
        settings=settings,
        http_client=app_state.http_client,
        store=app_state.store,
        fetcher=app_state.fetcher,
        baseline=BaselineFetcher(
            app_state.fetcher,
            app_state.store,
            baseline=baseline,
            cache=settings.cache,
            index=settings.index,
        ),
    )
