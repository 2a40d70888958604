"""Tool handler for search_canon.

Loads (or rebuilds) the combined index, runs the search pipeline and returns
the result envelope. No MCP or FastMCP imports — server.py handles the MCP
wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from canonkit.corpus import load_corpus
from canonkit.errors import CanonKitError, ErrorCode
from canonkit.models.tools import SearchInput
from canonkit.search import search

if TYPE_CHECKING:
    from canonkit.state import AppState


async def handle(query: str, state: AppState) -> dict:
    """Handle a search_canon tool call."""
    log = structlog.get_logger().bind(tool="search_canon", query=query)
    log.info("handler_called")

    try:
        validated = SearchInput(query=query)
    except ValueError as exc:
        raise CanonKitError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Provide a non-empty question about project policy (max 500 chars).",
            recoverable=False,
        ) from exc

    corpus = await load_corpus(state)
    result = search(
        corpus.index,
        validated.query,
        baseline_available=corpus.baseline_available,
        baseline_error=corpus.baseline_error,
        index_rebuild_reason=corpus.rebuild_reason,
        settings=state.settings.search,
    )
    log.info(
        "search_returned",
        status=result.status,
        evidence=len(result.evidence),
        advisory=result.advisory,
    )
    return result.model_dump(mode="json")
