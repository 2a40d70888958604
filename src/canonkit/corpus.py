"""Load-or-rebuild of the combined local + baseline index.

Shared by the tool handlers. The cached on-disk index is reused unless its
schema version changed or baseline availability (or the baseline or canon
override commit) no longer matches what it was built with.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from canonkit.errors import CanonKitError
from canonkit.loader import build_index, load_index, rebuild_reason, save_index

if TYPE_CHECKING:
    from canonkit.models.document import Index, LoadWarning
    from canonkit.state import AppState

log = structlog.get_logger()


@dataclass
class Corpus:
    index: Index
    root: Path
    baseline_available: bool
    baseline_error: str | None = None
    rebuild_reason: str | None = None
    warnings: list[LoadWarning] = field(default_factory=list)


async def load_corpus(state: AppState, *, force_rebuild: bool = False) -> Corpus:
    """Return the current index, rebuilding and saving it when stale.

    Baseline failures never raise here: they leave the corpus local-only and
    are reported through ``baseline_error``.
    """
    settings = state.settings
    root = Path(settings.repo.root).expanduser()

    remote: Index | None = None
    baseline_error: str | None = None
    if settings.baseline.enabled and state.baseline is not None:
        try:
            remote = await state.baseline.get_index()
        except CanonKitError as exc:
            baseline_error = exc.message
    baseline_available = remote is not None

    cached = None if force_rebuild else load_index(root)
    reason = (
        "forced"
        if force_rebuild
        else rebuild_reason(
            cached,
            baseline_available=baseline_available,
            baseline_commit_sha=remote.baseline_commit_sha if remote else None,
            canon_commit_sha=remote.canon_commit_sha if remote else None,
        )
    )
    if reason is None and cached is not None:
        return Corpus(
            index=cached,
            root=root,
            baseline_available=baseline_available,
            baseline_error=baseline_error,
            warnings=list(cached.warnings),
        )

    result = build_index(
        root,
        baseline_documents=remote.documents if remote else None,
        baseline_warnings=remote.warnings if remote else None,
        baseline_commit_sha=remote.baseline_commit_sha if remote else None,
        canon_commit_sha=remote.canon_commit_sha if remote else None,
        settings=settings.index,
    )
    try:
        save_index(result.index, root)
    except OSError:
        # A read-only checkout still gets an answer, just without the snapshot
        log.warning("index_save_failed", root=str(root), exc_info=True)

    log.info("index_rebuilt", reason=reason, total=result.index.stats.total)
    return Corpus(
        index=result.index,
        root=root,
        baseline_available=baseline_available,
        baseline_error=baseline_error,
        rebuild_reason=reason,
        warnings=result.warnings,
    )
