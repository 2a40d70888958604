"""Protocol interfaces for swappable components.

The baseline fetcher and AppState reference these protocols, not the
concrete implementations, so tests can substitute in-memory fakes and other
storage backends can be dropped in without touching the fetcher.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import timedelta

    from canonkit.errors import ErrorCode
    from canonkit.models.cache import BlobCacheEntry


class BlobStoreProtocol(Protocol):
    """Interface for the durable cache tier."""

    async def get(self, key: str) -> BlobCacheEntry | None: ...

    async def put(
        self,
        key: str,
        value: bytes,
        ttl: timedelta,
        *,
        commit_sha: str | None = None,
    ) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def delete_prefix(self, prefix: str) -> list[str]: ...

    async def cleanup_if_due(self, interval_hours: int) -> None: ...

    async def cleanup_expired(self) -> None: ...


class FetcherProtocol(Protocol):
    """Interface for the HTTP origin fetcher."""

    async def fetch_bytes(
        self,
        url: str,
        allowlist: frozenset[str],
        *,
        headers: Mapping[str, str] | None = None,
        error_code: ErrorCode = ...,
    ) -> bytes: ...

    async def fetch_text(
        self,
        url: str,
        allowlist: frozenset[str],
        *,
        headers: Mapping[str, str] | None = None,
        error_code: ErrorCode = ...,
    ) -> str: ...
