"""Tool handler for check_baseline.

Reports whether the configured baseline moved since it was last cached,
without downloading anything.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from canonkit.errors import CanonKitError, ErrorCode

if TYPE_CHECKING:
    from canonkit.state import AppState


async def handle(state: AppState) -> dict:
    """Handle a check_baseline tool call."""
    log = structlog.get_logger().bind(tool="check_baseline")
    log.info("handler_called")

    if state.baseline is None:
        raise CanonKitError(
            code=ErrorCode.BASELINE_UNAVAILABLE,
            message="The baseline is disabled.",
            suggestion="Set baseline.enabled to true in canonkit.yaml.",
            recoverable=False,
        )

    result = await state.baseline.check_for_changes()
    log.info("baseline_checked", changed=result.changed, current_sha=result.current_sha)
    return result.model_dump(mode="json")
