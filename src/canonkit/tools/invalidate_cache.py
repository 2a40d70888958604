"""Tool handler for invalidate_cache.

Administrative cache bust: the next request for the baseline (and the
optional canon override) goes through a full archive fetch.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from canonkit.errors import CanonKitError, ErrorCode
from canonkit.models.tools import InvalidateCacheInput, InvalidateCacheOutput

if TYPE_CHECKING:
    from canonkit.state import AppState


async def handle(canon_url: str | None, state: AppState) -> dict:
    """Handle an invalidate_cache tool call."""
    log = structlog.get_logger().bind(tool="invalidate_cache", canon_url=canon_url)
    log.info("handler_called")

    try:
        validated = InvalidateCacheInput(canon_url=canon_url)
    except ValueError as exc:
        raise CanonKitError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Pass a URL of the form https://github.com/{owner}/{repo}, or omit it.",
            recoverable=False,
        ) from exc

    if state.baseline is None:
        raise CanonKitError(
            code=ErrorCode.BASELINE_UNAVAILABLE,
            message="The baseline is disabled; there is no remote cache to invalidate.",
            suggestion="Set baseline.enabled to true in canonkit.yaml.",
            recoverable=False,
        )

    removed = await state.baseline.invalidate_cache(validated.canon_url)
    output = InvalidateCacheOutput(invalidated=removed)
    return output.model_dump(mode="json")
