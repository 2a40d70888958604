from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class BlobCacheEntry(BaseModel):
    """One cached value in the memory or durable tier.

    ``key`` follows ``archive/{repo}``, ``file/{repo}/{path}``,
    ``index/{repo}`` or ``sha/{repo}``.
    """

    key: str
    value: bytes
    commit_sha: str | None = None  # SHA the value was built from
    fetched_at: datetime
    expires_at: datetime
    stale: bool = False


class RepoRef(BaseModel):
    """A GitHub repository pinned to a branch or tag."""

    url: str
    owner: str
    name: str
    ref: str = "main"

    @property
    def key(self) -> str:
        """Storage-safe identifier for ``(url, ref)``."""
        return f"{self.owner}_{self.name}_{self.ref}".replace("/", "_").replace(".", "_")


class ChangeCheckResult(BaseModel):
    changed: bool
    current_sha: str | None = None
    cached_sha: str | None = None
    error: str | None = None
