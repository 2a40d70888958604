"""Tiered baseline cache and fetcher.

Resolves a GitHub repository to its current commit SHA and serves the
repository's governed documents through three tiers: an in-process memory
map, the durable blob store, and the origin ZIP archive. The archive is
only fetched again when the upstream SHA no longer matches the cached one.

Per ``(repo URL, ref)``:

- Check: ask the commits API for the SHA (a few bytes, no clone).
- Hit: SHA unchanged and the archive for that SHA is cached; no download.
- Miss/Stale: SHA changed, nothing cached, or the check failed; download
  the archive exactly once and write it through memory and the blob store.
- Failure: raised as CanonKitError; read paths turn it into "baseline
  unavailable" instead of failing the request.

Both the check and the download are bounded by ``asyncio.wait_for`` so a
slow origin degrades the baseline rather than hanging the caller.
"""

from __future__ import annotations

import asyncio
import io
import zipfile
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from canonkit.errors import CanonKitError, ErrorCode
from canonkit.fetcher import (
    SHA_MEDIA_TYPE,
    archive_url,
    build_allowlist,
    commit_api_url,
    parse_repo_url,
)
from canonkit.loader import INDEX_VERSION, compute_stats, documents_from_texts, matches_any
from canonkit.models.cache import BlobCacheEntry, ChangeCheckResult, RepoRef
from canonkit.models.document import Document, Index, Origin

if TYPE_CHECKING:
    from canonkit.config import BaselineSettings, CacheSettings, IndexSettings
    from canonkit.protocols import BlobStoreProtocol, FetcherProtocol

log = structlog.get_logger()


def merge_documents(canon: list[Document], baseline: list[Document]) -> list[Document]:
    """Canon override first, then baseline documents that share neither path nor URI."""
    paths = {doc.path for doc in canon}
    uris = {doc.uri for doc in canon if doc.uri}
    return [
        *canon,
        *(doc for doc in baseline if doc.path not in paths and not (doc.uri and doc.uri in uris)),
    ]


class BaselineFetcher:
    """Serves baseline (and optional canon override) documents from GitHub."""

    def __init__(
        self,
        fetcher: FetcherProtocol,
        store: BlobStoreProtocol,
        *,
        baseline: BaselineSettings,
        cache: CacheSettings,
        index: IndexSettings,
    ) -> None:
        self._fetcher = fetcher
        self._store = store
        self._baseline = baseline
        self._cache = cache
        self._index = index
        self._allowlist = build_allowlist([baseline.url, baseline.api_url, baseline.canon_url])
        # Memory tier: archive key → entry, plus the extracted files per archive key
        self._memory: dict[str, BlobCacheEntry] = {}
        self._extracted: dict[str, tuple[str | None, dict[str, str]]] = {}

    # ------------------------------------------------------------------
    # Repository references
    # ------------------------------------------------------------------

    def baseline_repo(self) -> RepoRef:
        repo = parse_repo_url(self._baseline.url, self._baseline.ref)
        if repo is None:
            raise CanonKitError(
                code=ErrorCode.BASELINE_UNAVAILABLE,
                message=f"Baseline URL is not a GitHub repository: {self._baseline.url}",
                suggestion="Set baseline.url to https://github.com/{owner}/{repo}.",
                recoverable=False,
            )
        return repo

    def canon_repo(self, canon_url: str | None = None) -> RepoRef | None:
        url = canon_url or self._baseline.canon_url
        if not url:
            return None
        repo = parse_repo_url(url)
        if repo is None:
            raise CanonKitError(
                code=ErrorCode.INVALID_INPUT,
                message=f"Canon URL is not a GitHub repository: {url}",
                suggestion="Pass a URL of the form https://github.com/{owner}/{repo}.",
                recoverable=False,
            )
        return repo

    # ------------------------------------------------------------------
    # Check
    # ------------------------------------------------------------------

    async def resolve_sha(self, repo: RepoRef) -> str:
        """Ask the commits API for the SHA ``repo.ref`` points at."""
        url = commit_api_url(repo, self._baseline.api_url)
        try:
            body = await asyncio.wait_for(
                self._fetcher.fetch_text(
                    url,
                    self._allowlist,
                    headers={"Accept": SHA_MEDIA_TYPE},
                    error_code=ErrorCode.SHA_CHECK_FAILED,
                ),
                timeout=self._baseline.check_timeout_seconds,
            )
        except TimeoutError as exc:
            raise CanonKitError(
                code=ErrorCode.SHA_CHECK_FAILED,
                message=(
                    f"Commit check for {repo.url}@{repo.ref} timed out after "
                    f"{self._baseline.check_timeout_seconds}s"
                ),
                suggestion="GitHub may be slow or unreachable; try again later.",
                recoverable=True,
            ) from exc

        sha = body.strip()
        if not sha or any(ch.isspace() for ch in sha):
            raise CanonKitError(
                code=ErrorCode.SHA_CHECK_FAILED,
                message=f"Unexpected commit check response for {repo.url}@{repo.ref}",
                suggestion="The commits API returned something other than a bare SHA.",
                recoverable=True,
            )
        return sha

    async def _cached_sha(self, repo: RepoRef) -> str | None:
        entry = await self._store.get(f"sha/{repo.key}")
        if entry is None or entry.stale:
            return None
        return entry.value.decode("utf-8")

    async def check_for_changes(self, repo: RepoRef | None = None) -> ChangeCheckResult:
        """Compare the upstream SHA with the cached one. Never raises for origin failures.

        A failed check reports ``changed=True`` so the caller refetches.
        """
        repo = repo or self.baseline_repo()
        cached = await self._cached_sha(repo)
        try:
            current = await self.resolve_sha(repo)
        except CanonKitError as exc:
            log.warning("baseline_sha_check_failed", repo=repo.url, ref=repo.ref, error=exc.message)
            return ChangeCheckResult(changed=True, cached_sha=cached, error=exc.message)
        return ChangeCheckResult(changed=current != cached, current_sha=current, cached_sha=cached)

    # ------------------------------------------------------------------
    # Archive tiers
    # ------------------------------------------------------------------

    async def _cached_archive(self, key: str, sha: str) -> BlobCacheEntry | None:
        entry = self._memory.get(key)
        if entry is not None and entry.commit_sha == sha:
            return entry
        entry = await self._store.get(key)
        if entry is not None and not entry.stale and entry.commit_sha == sha:
            self._memory[key] = entry
            return entry
        return None

    async def _fetch_archive(self, repo: RepoRef, sha: str | None) -> bytes:
        url = archive_url(repo, sha)
        try:
            data = await asyncio.wait_for(
                self._fetcher.fetch_bytes(url, self._allowlist),
                timeout=self._baseline.fetch_timeout_seconds,
            )
        except TimeoutError as exc:
            raise CanonKitError(
                code=ErrorCode.ARCHIVE_FETCH_FAILED,
                message=(
                    f"Archive download for {repo.url} timed out after "
                    f"{self._baseline.fetch_timeout_seconds}s"
                ),
                suggestion="GitHub may be slow or unreachable; try again later.",
                recoverable=True,
            ) from exc
        log.info("archive_fetch_complete", repo=repo.url, sha=sha, size=len(data))
        return data

    def _extract(self, key: str, entry: BlobCacheEntry) -> dict[str, str]:
        """Governed documentation files from a cached archive, by repo-relative path."""
        cached = self._extracted.get(key)
        if cached is not None and cached[0] == entry.commit_sha:
            return cached[1]

        governed = tuple(f"{d.strip('/')}/" for d in self._index.governed_dirs)
        extensions = tuple(self._index.extensions)
        files: dict[str, str] = {}
        try:
            with zipfile.ZipFile(io.BytesIO(entry.value)) as archive:
                for info in archive.infolist():
                    if info.is_dir():
                        continue
                    # Drop the "{repo}-{ref}/" directory GitHub wraps archives in
                    rel_path = info.filename.split("/", 1)[1] if "/" in info.filename else ""
                    if (
                        not rel_path.startswith(governed)
                        or not rel_path.endswith(extensions)
                        or matches_any(rel_path, self._index.exclude)
                    ):
                        continue
                    files[rel_path] = archive.read(info).decode("utf-8", errors="replace")
        except zipfile.BadZipFile as exc:
            raise CanonKitError(
                code=ErrorCode.ARCHIVE_FETCH_FAILED,
                message=f"Downloaded archive {key} is not a valid ZIP file: {exc}",
                suggestion="Invalidate the cache and try again.",
                recoverable=True,
            ) from exc

        self._extracted[key] = (entry.commit_sha, files)
        return files

    async def load_repo_files(
        self, repo: RepoRef, check: ChangeCheckResult | None = None
    ) -> tuple[dict[str, str], str | None]:
        """Return ``(files, commit_sha)`` for ``repo``, downloading only on miss or change."""
        check = check or await self.check_for_changes(repo)
        key = f"archive/{repo.key}"

        if check.current_sha is not None:
            entry = await self._cached_archive(key, check.current_sha)
            if entry is not None:
                log.debug("baseline_cache_hit", repo=repo.url, sha=check.current_sha)
                return self._extract(key, entry), check.current_sha

        log.info(
            "baseline_cache_miss",
            repo=repo.url,
            current_sha=check.current_sha,
            cached_sha=check.cached_sha,
        )
        data = await self._fetch_archive(repo, check.current_sha)
        now = datetime.now(UTC)
        archive_ttl = timedelta(hours=self._cache.archive_ttl_hours)
        entry = BlobCacheEntry(
            key=key,
            value=data,
            commit_sha=check.current_sha,
            fetched_at=now,
            expires_at=now + archive_ttl,
        )
        files = self._extract(key, entry)

        self._memory[key] = entry
        await self._store.put(key, data, archive_ttl, commit_sha=check.current_sha)
        if check.current_sha is not None:
            await self._store.put(
                f"sha/{repo.key}",
                check.current_sha.encode("utf-8"),
                timedelta(hours=self._cache.sha_ttl_hours),
                commit_sha=check.current_sha,
            )
        return files, check.current_sha

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def get_index(self, canon_url: str | None = None) -> Index:
        """Index of baseline documents, with the canon override merged ahead of them.

        Files that fail to parse are skipped and listed in ``Index.warnings``.

        Raises CanonKitError(BASELINE_UNAVAILABLE) when the baseline itself
        cannot be loaded. A failing canon override only logs a warning.
        """
        baseline_repo = self.baseline_repo()
        canon_repo = self.canon_repo(canon_url)

        baseline_check = await self.check_for_changes(baseline_repo)
        canon_check = await self.check_for_changes(canon_repo) if canon_repo else None

        index_key = f"index/{canon_repo.key if canon_repo else 'default'}"
        tag = None
        if baseline_check.current_sha and (canon_check is None or canon_check.current_sha):
            canon_sha = canon_check.current_sha if canon_check else "none"
            tag = f"{baseline_check.current_sha}:{canon_sha}:v{INDEX_VERSION}"
            cached = await self._store.get(index_key)
            if cached is not None and not cached.stale and cached.commit_sha == tag:
                try:
                    return Index.model_validate_json(cached.value)
                except ValidationError:
                    log.warning("cached_index_invalid", key=index_key, exc_info=True)

        try:
            baseline_files, baseline_sha = await self.load_repo_files(baseline_repo, baseline_check)
        except CanonKitError as exc:
            log.warning("baseline_unavailable", repo=baseline_repo.url, error=exc.message)
            raise CanonKitError(
                code=ErrorCode.BASELINE_UNAVAILABLE,
                message=f"Baseline unavailable: {exc.message}",
                suggestion="Results will be limited to local documents until GitHub is reachable.",
                recoverable=True,
            ) from exc
        baseline_docs, warnings = documents_from_texts(baseline_files, Origin.BASELINE)

        canon_docs: list[Document] = []
        canon_sha: str | None = None
        if canon_repo is not None:
            try:
                canon_files, canon_sha = await self.load_repo_files(canon_repo, canon_check)
                canon_docs, canon_warnings = documents_from_texts(canon_files, Origin.BASELINE)
                warnings.extend(canon_warnings)
            except CanonKitError as exc:
                log.warning("canon_override_unavailable", repo=canon_repo.url, error=exc.message)

        documents = merge_documents(canon_docs, baseline_docs)
        index = Index(
            version=INDEX_VERSION,
            generated_at=datetime.now(UTC),
            documents=documents,
            stats=compute_stats(documents, canon=len(canon_docs)),
            baseline_commit_sha=baseline_sha,
            canon_commit_sha=canon_sha,
            baseline_loaded=True,
            warnings=warnings,
        )
        if tag is not None:
            await self._store.put(
                index_key,
                index.model_dump_json().encode("utf-8"),
                timedelta(minutes=self._cache.index_ttl_minutes),
                commit_sha=tag,
            )
        log.info(
            "baseline_index_built",
            total=index.stats.total,
            canon=len(canon_docs),
            baseline_sha=baseline_sha,
            canon_sha=canon_sha,
        )
        return index

    async def fetch_file(self, path: str, canon_url: str | None = None) -> str | None:
        """Raw text of ``path``, from the canon override first, then the baseline.

        Each repository's file cache is keyed by its own SHA. Returns None
        when no reachable repository has the file.
        """
        repos = [r for r in (self.canon_repo(canon_url), self.baseline_repo()) if r is not None]
        for repo in repos:
            check = await self.check_for_changes(repo)
            file_key = f"file/{repo.key}/{check.current_sha}/{path}" if check.current_sha else None

            if file_key is not None:
                entry = await self._store.get(file_key)
                if entry is not None and not entry.stale:
                    return entry.value.decode("utf-8")

            try:
                files, _ = await self.load_repo_files(repo, check)
            except CanonKitError as exc:
                log.warning("file_fetch_failed", repo=repo.url, path=path, error=exc.message)
                continue

            content = files.get(path)
            if content is None:
                continue
            if file_key is not None:
                await self._store.put(
                    file_key,
                    content.encode("utf-8"),
                    timedelta(hours=self._cache.file_ttl_hours),
                    commit_sha=check.current_sha,
                )
            return content
        return None

    async def invalidate_cache(self, canon_url: str | None = None) -> list[str]:
        """Drop cached archives, files, SHAs and indexes for the baseline (and canon).

        The next request goes through Miss/Stale. Returns the removed keys.
        """
        repos = [r for r in (self.baseline_repo(), self.canon_repo(canon_url)) if r is not None]
        removed: set[str] = set()
        for repo in repos:
            archive_key = f"archive/{repo.key}"
            for key in (archive_key, f"sha/{repo.key}"):
                if await self._store.delete(key):
                    removed.add(key)
            removed.update(await self._store.delete_prefix(f"file/{repo.key}/"))
            if self._memory.pop(archive_key, None) is not None:
                removed.add(archive_key)
            self._extracted.pop(archive_key, None)
        # Every merged index embeds the baseline
        removed.update(await self._store.delete_prefix("index/"))

        log.info("baseline_cache_invalidated", repos=[r.url for r in repos], removed=len(removed))
        return sorted(removed)
