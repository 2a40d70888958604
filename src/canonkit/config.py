"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (CANONKIT__BASELINE__REF=dev)
  2. canonkit.yaml          (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional — all fields have sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("canonkit")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "cache.db")


def _find_config_file() -> str | None:
    """Return the path of the first canonkit.yaml found, or None."""
    candidates = [
        Path("canonkit.yaml"),
        Path(platformdirs.user_config_dir("canonkit")) / "canonkit.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class RepoSettings(BaseModel):
    root: str = "."


class IndexSettings(BaseModel):
    include: list[str] = [
        "canon/**/*.md",
        "odd/**/*.md",
        "docs/**/*.md",
        "writings/**/*.md",
    ]
    exclude: list[str] = [
        "**/node_modules/**",
        "**/public/**",
        "**/.git/**",
        "**/.canonkit/**",
    ]
    # Top-level directories extracted from remote archives
    governed_dirs: list[str] = ["canon", "odd", "docs", "writings"]
    extensions: list[str] = [".md"]


class BaselineSettings(BaseModel):
    enabled: bool = True
    url: str = "https://github.com/klappy/klappy.dev"
    ref: str = "main"
    canon_url: str | None = None
    api_url: str = "https://api.github.com"
    check_timeout_seconds: float = 10.0
    fetch_timeout_seconds: float = 30.0


class CacheSettings(BaseModel):
    db_path: str = _DEFAULT_DB_PATH
    index_ttl_minutes: int = 15
    archive_ttl_hours: int = 24
    file_ttl_hours: int = 24
    sha_ttl_hours: int = 24
    cleanup_interval_hours: int = 6


class SearchSettings(BaseModel):
    max_results: int = 5
    min_evidence: int = 2
    min_confidence: float = 0.6
    min_quote_words: int = 8
    max_quote_words: int = 40
    excessive_duplicate_ratio: float = 0.25


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: CANONKIT__SEARCH__MAX_RESULTS=8
        env_prefix="CANONKIT__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    repo: RepoSettings = RepoSettings()
    index: IndexSettings = IndexSettings()
    baseline: BaselineSettings = BaselineSettings()
    cache: CacheSettings = CacheSettings()
    search: SearchSettings = SearchSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
        )
