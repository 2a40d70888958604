"""SQLite blob store for the durable baseline cache tier.

All operations catch ``aiosqlite.Error`` internally and degrade gracefully:
read failures return ``None`` (treated as a cache miss by callers), write
and delete failures are logged and ignored. A broken cache database slows
the baseline down but never prevents a search from answering.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import aiosqlite
import structlog

from canonkit.models.cache import BlobCacheEntry

log = structlog.get_logger()

_CREATE_BLOB_TABLE = """
CREATE TABLE IF NOT EXISTS blob_cache (
    key         TEXT PRIMARY KEY,
    value       BLOB NOT NULL,
    commit_sha  TEXT,
    fetched_at  TEXT NOT NULL,
    expires_at  TEXT NOT NULL
)
"""

_CREATE_BLOB_INDEX = "CREATE INDEX IF NOT EXISTS idx_blob_expires ON blob_cache(expires_at)"

_CREATE_METADATA_TABLE = """
CREATE TABLE IF NOT EXISTS server_metadata (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""


class BlobStore:
    """SQLite-backed key/blob store implementing BlobStoreProtocol."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_BLOB_TABLE)
        await self._db.execute(_CREATE_BLOB_INDEX)
        await self._db.execute(_CREATE_METADATA_TABLE)
        await self._db.commit()

    async def get(self, key: str) -> BlobCacheEntry | None:
        """Read an entry. Returns ``None`` on cache miss or read failure.

        Expired entries are returned with ``stale=True``; callers decide
        whether a stale value is still usable.
        """
        try:
            cursor = await self._db.execute(
                "SELECT key, value, commit_sha, fetched_at, expires_at "
                "FROM blob_cache WHERE key = ?",
                (key,),
            )
            row = await cursor.fetchone()
            if row is None:
                return None

            expires_at = datetime.fromisoformat(row[4])
            return BlobCacheEntry(
                key=row[0],
                value=bytes(row[1]),
                commit_sha=row[2],
                fetched_at=datetime.fromisoformat(row[3]),
                expires_at=expires_at,
                stale=datetime.now(UTC) > expires_at,
            )
        except aiosqlite.Error:
            log.warning("cache_read_error", key=key, exc_info=True)
            return None

    async def put(
        self,
        key: str,
        value: bytes,
        ttl: timedelta,
        *,
        commit_sha: str | None = None,
    ) -> None:
        """Write an entry. Re-writing the same key is idempotent. Non-fatal on failure."""
        try:
            now = datetime.now(UTC)
            await self._db.execute(
                "INSERT OR REPLACE INTO blob_cache "
                "(key, value, commit_sha, fetched_at, expires_at) VALUES (?, ?, ?, ?, ?)",
                (key, value, commit_sha, now.isoformat(), (now + ttl).isoformat()),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_write_error", key=key, exc_info=True)

    async def delete(self, key: str) -> bool:
        """Delete one entry. Returns whether a row was removed."""
        try:
            cursor = await self._db.execute("DELETE FROM blob_cache WHERE key = ?", (key,))
            await self._db.commit()
            return cursor.rowcount > 0
        except aiosqlite.Error:
            log.warning("cache_delete_error", key=key, exc_info=True)
            return False

    async def delete_prefix(self, prefix: str) -> list[str]:
        """Delete every entry whose key starts with ``prefix``; return the removed keys."""
        try:
            # substr avoids LIKE wildcard escaping; keys routinely contain "_"
            cursor = await self._db.execute(
                "SELECT key FROM blob_cache WHERE substr(key, 1, ?) = ?",
                (len(prefix), prefix),
            )
            keys = [row[0] for row in await cursor.fetchall()]
            await self._db.execute(
                "DELETE FROM blob_cache WHERE substr(key, 1, ?) = ?",
                (len(prefix), prefix),
            )
            await self._db.commit()
            return keys
        except aiosqlite.Error:
            log.warning("cache_delete_error", prefix=prefix, exc_info=True)
            return []

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def cleanup_if_due(self, interval_hours: int) -> None:
        """Run cleanup only if interval_hours have elapsed since the last run.

        Reads and writes ``last_cleanup_at`` from the ``server_metadata`` table.
        Falls through to run cleanup if the metadata row is missing or unreadable.
        Non-fatal on failure.
        """
        try:
            cursor = await self._db.execute(
                "SELECT value FROM server_metadata WHERE key = 'last_cleanup_at'"
            )
            row = await cursor.fetchone()
            if row is not None:
                last_run = datetime.fromisoformat(row[0])
                if datetime.now(UTC) - last_run < timedelta(hours=interval_hours):
                    log.debug("cache_cleanup_skipped", reason="not_due")
                    return
        except aiosqlite.Error:
            log.warning("cache_metadata_read_error", exc_info=True)

        await self.cleanup_expired()

        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO server_metadata (key, value) VALUES ('last_cleanup_at', ?)",
                (datetime.now(UTC).isoformat(),),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_metadata_write_error", exc_info=True)

    async def cleanup_expired(self) -> None:
        """Delete entries past their expiry. Non-fatal on failure."""
        try:
            cursor = await self._db.execute(
                "DELETE FROM blob_cache WHERE expires_at < ?", (datetime.now(UTC).isoformat(),)
            )
            deleted = cursor.rowcount
            await self._db.commit()
            log.info("cache_cleanup_complete", deleted=deleted)
        except aiosqlite.Error:
            log.warning("cache_cleanup_error", exc_info=True)
