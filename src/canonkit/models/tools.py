from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator

from canonkit.fetcher import parse_repo_url
from canonkit.models.document import IndexStats, LoadWarning, Origin
from canonkit.resolver import normalize_ref

MAX_QUERY_LENGTH = 500


class SearchInput(BaseModel):
    query: str

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("query must not be empty")
        if len(v) > MAX_QUERY_LENGTH:
            raise ValueError(f"query must be at most {MAX_QUERY_LENGTH} characters")
        return v


class GetDocumentInput(BaseModel):
    ref: str

    @field_validator("ref")
    @classmethod
    def validate_ref(cls, v: str) -> str:
        return normalize_ref(v)


class GetDocumentOutput(BaseModel):
    ref: str
    path: str
    uri: str | None
    origin: Origin
    title: str | None
    content: str


class InvalidateCacheInput(BaseModel):
    canon_url: str | None = None

    @field_validator("canon_url")
    @classmethod
    def validate_canon_url(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if parse_repo_url(v) is None:
            raise ValueError(f"canon_url is not a GitHub repository URL: {v!r}")
        return v


class InvalidateCacheOutput(BaseModel):
    invalidated: list[str]


class RebuildIndexInput(BaseModel):
    # Drop cached baseline entries first so the rebuild re-fetches from origin
    refresh_baseline: bool = False


class RebuildIndexOutput(BaseModel):
    version: str
    generated_at: datetime
    stats: IndexStats
    warnings: list[LoadWarning]
    baseline_available: bool
    baseline_error: str | None = None
