"""Tool handler for rebuild_index."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from canonkit.corpus import load_corpus
from canonkit.models.tools import RebuildIndexInput, RebuildIndexOutput

if TYPE_CHECKING:
    from canonkit.state import AppState


async def handle(refresh_baseline: bool, state: AppState) -> dict:
    """Handle a rebuild_index tool call."""
    log = structlog.get_logger().bind(tool="rebuild_index", refresh_baseline=refresh_baseline)
    log.info("handler_called")

    validated = RebuildIndexInput(refresh_baseline=refresh_baseline)
    if validated.refresh_baseline and state.baseline is not None:
        await state.baseline.invalidate_cache()

    corpus = await load_corpus(state, force_rebuild=True)
    output = RebuildIndexOutput(
        version=corpus.index.version,
        generated_at=corpus.index.generated_at,
        stats=corpus.index.stats,
        warnings=corpus.warnings,
        baseline_available=corpus.baseline_available,
        baseline_error=corpus.baseline_error,
    )
    return output.model_dump(mode="json")
