"""Unit tests for configuration loading and platform-aware defaults."""

from __future__ import annotations

from typing import TYPE_CHECKING

import platformdirs

from canonkit.config import _DEFAULT_DATA_DIR, _DEFAULT_DB_PATH, CacheSettings, Settings

if TYPE_CHECKING:
    import pytest


class TestPlatformDefaults:
    """Verify config defaults use platformdirs instead of hardcoded Unix paths."""

    def test_default_data_dir_matches_platformdirs(self) -> None:
        expected = platformdirs.user_data_dir("canonkit")
        assert expected == _DEFAULT_DATA_DIR

    def test_default_db_path_under_data_dir(self) -> None:
        assert _DEFAULT_DB_PATH.startswith(_DEFAULT_DATA_DIR)
        assert _DEFAULT_DB_PATH.endswith("cache.db")

    def test_cache_settings_uses_platform_default(self) -> None:
        assert CacheSettings().db_path == _DEFAULT_DB_PATH


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.baseline.url == "https://github.com/klappy/klappy.dev"
        assert settings.baseline.ref == "main"
        assert settings.search.min_evidence == 2
        assert settings.search.min_confidence == 0.6
        assert settings.cache.index_ttl_minutes < settings.cache.archive_ttl_hours * 60

    def test_env_override_with_nesting(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CANONKIT__BASELINE__REF", "dev")
        monkeypatch.setenv("CANONKIT__SEARCH__MAX_RESULTS", "8")
        monkeypatch.setenv("CANONKIT__BASELINE__ENABLED", "false")
        settings = Settings()
        assert settings.baseline.ref == "dev"
        assert settings.search.max_results == 8
        assert settings.baseline.enabled is False

    def test_constructor_args_win(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CANONKIT__REPO__ROOT", "/from/env")
        assert Settings(repo={"root": "/explicit"}).repo.root == "/explicit"
