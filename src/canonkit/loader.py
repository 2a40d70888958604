"""Document loading and index snapshots.

Scans a repository tree for governed markdown files, parses each one into a
Document, and assembles the local (and optional baseline) documents into an
Index. Unreadable or malformed files are reported as LoadWarnings alongside
the partial index instead of aborting the build.
"""

from __future__ import annotations

import json
import os
from contextlib import suppress
from datetime import UTC, datetime
from fnmatch import fnmatchcase
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from canonkit.config import IndexSettings
from canonkit.models.document import (
    AuthorityBand,
    Document,
    Index,
    IndexBuildResult,
    IndexStats,
    LoadWarning,
    Origin,
)
from canonkit.parser import FrontmatterError, content_hash, extract_headings, split_frontmatter
from canonkit.rules import infer_authority_band, infer_evidence_strength, infer_intent

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

log = structlog.get_logger()

# Bump when the shape of indexed documents changes; a mismatch forces a rebuild.
INDEX_VERSION = "2.2.0"

INDEX_DIR = ".canonkit"
INDEX_FILE = "index.json"
NOINDEX_SENTINEL = ".noindex"
PREVIEW_CHARS = 500


# ---------------------------------------------------------------------------
# File discovery
# ---------------------------------------------------------------------------


def matches_any(rel_path: str, patterns: Iterable[str]) -> bool:
    for pattern in patterns:
        if fnmatchcase(rel_path, pattern):
            return True
        # "**/x/**" should also match "x/..." at the root
        if pattern.startswith("**/") and fnmatchcase(rel_path, pattern[3:]):
            return True
    return False


def _excluded_by_noindex(rel_path: str, root: Path) -> bool:
    """True if any ancestor directory (below root) holds a .noindex sentinel."""
    current = root
    for part in rel_path.split("/")[:-1]:
        current = current / part
        if (current / NOINDEX_SENTINEL).exists():
            return True
    return False


def scan_files(
    root: Path, include: Iterable[str], exclude: Iterable[str]
) -> tuple[list[str], int]:
    """Return matching relative paths in a stable order, plus the .noindex count.

    Paths are ordered by include pattern, then lexicographically, so repeated
    scans of an unchanged tree yield the same sequence.
    """
    exclude = list(exclude)
    seen: set[str] = set()
    files: list[str] = []
    excluded_by_noindex = 0

    for pattern in include:
        for path in sorted(root.glob(pattern)):
            if not path.is_file():
                continue
            rel_path = path.relative_to(root).as_posix()
            if rel_path in seen or matches_any(rel_path, exclude):
                continue
            seen.add(rel_path)
            if _excluded_by_noindex(rel_path, root):
                excluded_by_noindex += 1
                continue
            files.append(rel_path)

    return files, excluded_by_noindex


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _str_list(value: Any) -> list[str]:
    """Accept a YAML list or a comma-separated string; drop blanks and repeats."""
    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else value
    if not isinstance(items, list):
        items = [items]
    result: list[str] = []
    for item in items:
        text = str(item).strip()
        if text and text not in result:
            result.append(text)
    return result


def parse_document(rel_path: str, raw: str, origin: Origin) -> Document:
    """Build a Document from raw file text. Raises FrontmatterError."""
    frontmatter, body = split_frontmatter(raw)
    return Document(
        path=rel_path,
        origin=origin,
        uri=_optional_str(frontmatter.get("uri")),
        title=_optional_str(frontmatter.get("title")),
        subtitle=_optional_str(frontmatter.get("subtitle")),
        tags=_str_list(frontmatter.get("tags")),
        authority_band=infer_authority_band(rel_path, frontmatter),
        intent=infer_intent(rel_path, frontmatter),
        evidence_strength=infer_evidence_strength(frontmatter),
        supersedes=_str_list(frontmatter.get("supersedes")),
        content_hash=content_hash(body),
        headings=extract_headings(body),
        content_preview=body[:PREVIEW_CHARS],
        content_length=len(body),
    )


def documents_from_texts(
    texts: Mapping[str, str], origin: Origin
) -> tuple[list[Document], list[LoadWarning]]:
    """Parse already-read files (e.g. extracted from an archive)."""
    docs: list[Document] = []
    warnings: list[LoadWarning] = []
    for rel_path, raw in texts.items():
        try:
            docs.append(parse_document(rel_path, raw, origin))
        except FrontmatterError as exc:
            log.warning("document_skipped", path=rel_path, origin=origin, reason=str(exc))
            warnings.append(LoadWarning(path=rel_path, reason=str(exc)))
    return docs, warnings


def load_documents(
    root: Path, origin: Origin, settings: IndexSettings | None = None
) -> tuple[list[Document], list[LoadWarning], int]:
    """Scan ``root`` and parse every governed markdown file.

    Returns ``(documents, warnings, excluded_by_noindex)``.
    """
    settings = settings or IndexSettings()
    files, excluded = scan_files(root, settings.include, settings.exclude)

    docs: list[Document] = []
    warnings: list[LoadWarning] = []
    for rel_path in files:
        try:
            raw = (root / rel_path).read_text(encoding="utf-8")
            docs.append(parse_document(rel_path, raw, origin))
        except (OSError, UnicodeDecodeError, FrontmatterError) as exc:
            log.warning("document_skipped", path=rel_path, origin=origin, reason=str(exc))
            warnings.append(LoadWarning(path=rel_path, reason=str(exc)))

    return docs, warnings, excluded


# ---------------------------------------------------------------------------
# Index assembly
# ---------------------------------------------------------------------------


def compute_stats(
    documents: list[Document], *, excluded_by_noindex: int = 0, canon: int = 0
) -> IndexStats:
    by_authority = {band.value: 0 for band in AuthorityBand}
    for doc in documents:
        by_authority[doc.authority_band.value] += 1
    return IndexStats(
        total=len(documents),
        local=sum(1 for doc in documents if doc.origin == Origin.LOCAL),
        baseline=sum(1 for doc in documents if doc.origin == Origin.BASELINE),
        canon=canon,
        excluded_by_noindex=excluded_by_noindex,
        by_authority=by_authority,
    )


def build_index(
    root: Path,
    baseline_root: Path | None = None,
    *,
    baseline_documents: list[Document] | None = None,
    baseline_warnings: list[LoadWarning] | None = None,
    baseline_commit_sha: str | None = None,
    canon_commit_sha: str | None = None,
    settings: IndexSettings | None = None,
) -> IndexBuildResult:
    """Build an Index over ``root`` plus an optional baseline.

    The baseline is either a directory (``baseline_root``) scanned with the
    same rules, or documents already produced by the baseline fetcher.
    Warnings from fetching the baseline are passed in as ``baseline_warnings``
    and reported together with the local ones.
    """
    local_docs, warnings, excluded = load_documents(root, Origin.LOCAL, settings)

    baseline_docs: list[Document] = []
    if baseline_root is not None:
        baseline_docs, dir_warnings, baseline_excluded = load_documents(
            baseline_root, Origin.BASELINE, settings
        )
        warnings.extend(dir_warnings)
        excluded += baseline_excluded
    elif baseline_documents is not None:
        baseline_docs = list(baseline_documents)
        warnings.extend(baseline_warnings or [])

    documents = [*local_docs, *baseline_docs]
    index = Index(
        version=INDEX_VERSION,
        generated_at=datetime.now(UTC),
        documents=documents,
        stats=compute_stats(documents, excluded_by_noindex=excluded),
        baseline_commit_sha=baseline_commit_sha,
        canon_commit_sha=canon_commit_sha,
        baseline_loaded=baseline_root is not None or baseline_documents is not None,
        warnings=warnings,
    )
    log.info(
        "index_built",
        root=str(root),
        total=index.stats.total,
        local=index.stats.local,
        baseline=index.stats.baseline,
        warnings=len(warnings),
    )
    return IndexBuildResult(index=index, warnings=warnings)


def rebuild_reason(
    index: Index | None,
    *,
    baseline_available: bool,
    baseline_commit_sha: str | None = None,
    canon_commit_sha: str | None = None,
) -> str | None:
    """Return why a cached index cannot be reused, or None if it is current.

    Compares against what the index was built with: whether a baseline was
    merged at all, and the baseline and canon override commits.
    """
    if index is None:
        return "index_missing"
    if index.version != INDEX_VERSION:
        return "index_version_changed"
    if not baseline_available and (index.baseline_loaded or index.has_baseline_documents):
        return "baseline_now_unavailable"
    if baseline_available and not index.baseline_loaded:
        return "baseline_now_available"
    if (
        baseline_available
        and baseline_commit_sha is not None
        and index.baseline_commit_sha != baseline_commit_sha
    ):
        return "baseline_commit_changed"
    if baseline_available and index.canon_commit_sha != canon_commit_sha:
        return "canon_commit_changed"
    return None


# ---------------------------------------------------------------------------
# On-disk snapshot
# ---------------------------------------------------------------------------


def index_path(root: Path) -> Path:
    return root / INDEX_DIR / INDEX_FILE


def save_index(index: Index, root: Path) -> Path:
    """Write the index under ``<root>/.canonkit/`` with atomic replace."""
    path = index_path(root)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp_path.write_text(index.model_dump_json(indent=2), encoding="utf-8")
        os.replace(tmp_path, path)
    finally:
        with suppress(OSError):
            tmp_path.unlink(missing_ok=True)
    return path


def load_index(root: Path) -> Index | None:
    """Load the cached index, or None if missing, unreadable or from another schema."""
    path = index_path(root)
    if not path.is_file():
        return None
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict) or raw.get("version") != INDEX_VERSION:
            log.info(
                "index_version_mismatch",
                path=str(path),
                found=raw.get("version") if isinstance(raw, dict) else None,
                expected=INDEX_VERSION,
            )
            return None
        return Index.model_validate(raw)
    except (OSError, ValueError, ValidationError):
        log.warning("index_load_failed", path=str(path), exc_info=True)
        return None
