"""MCP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState via the FastMCP lifespan context manager
- Register tools
- Start the stdio transport
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog
from mcp.server.fastmcp import Context, FastMCP
from mcp.types import CallToolResult, TextContent

import canonkit.tools.check_baseline as t_check
import canonkit.tools.get_document as t_get_document
import canonkit.tools.invalidate_cache as t_invalidate
import canonkit.tools.rebuild_index as t_rebuild
import canonkit.tools.search_canon as t_search
from canonkit import __version__
from canonkit.baseline import BaselineFetcher
from canonkit.cache import BlobStore
from canonkit.config import Settings
from canonkit.errors import CanonKitError
from canonkit.fetcher import HttpFetcher, build_http_client
from canonkit.state import AppState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # Logs go to stderr — stdout is reserved for the MCP JSON-RPC stream
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncGenerator[AppState, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    settings = Settings()
    _setup_logging(settings)

    log.info(
        "server_starting",
        version=__version__,
        root=settings.repo.root,
        baseline_enabled=settings.baseline.enabled,
    )

    http_client = build_http_client()

    db_path = Path(settings.cache.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(db_path))
    store = BlobStore(db)
    await store.init_db()

    fetcher = HttpFetcher(http_client)
    baseline = (
        BaselineFetcher(
            fetcher,
            store,
            baseline=settings.baseline,
            cache=settings.cache,
            index=settings.index,
        )
        if settings.baseline.enabled
        else None
    )

    state = AppState(
        settings=settings,
        http_client=http_client,
        store=store,
        fetcher=fetcher,
        baseline=baseline,
    )

    # Request-scoped model: one cleanup pass at startup, no background tasks
    await store.cleanup_if_due(settings.cache.cleanup_interval_hours)

    log.info("server_started", version=__version__)

    try:
        yield state
    finally:
        await http_client.aclose()
        await db.close()
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# FastMCP instance and tool registration
# ---------------------------------------------------------------------------

mcp = FastMCP("canonkit", lifespan=lifespan)
# FastMCP doesn't expose a version kwarg — set it on the underlying Server
# so the MCP initialize handshake reports our version, not the SDK's.
mcp._mcp_server.version = __version__  # pyright: ignore[reportPrivateUsage]


def _serialise_tool_error(error: CanonKitError) -> CallToolResult:
    """Convert a CanonKitError to the MCP tool error result envelope."""
    return CallToolResult(
        content=[TextContent(type="text", text=json.dumps(error.to_dict()))],
        isError=True,
    )


def _log_tool_error(tool: str, exc: CanonKitError) -> None:
    log.warning(
        "tool_error",
        tool=tool,
        code=exc.code,
        message=exc.message,
        recoverable=exc.recoverable,
    )


@mcp.tool()
async def search_canon(query: str, ctx: Context) -> object:
    """Answer a policy question from the governing documents, with cited evidence.

    Returns a status (SUPPORTED or INSUFFICIENT_EVIDENCE), quoted evidence
    with citations, a confidence score with its breakdown, and arbitration
    diagnostics. Treat ``advisory: true`` results as low confidence.
    """
    state: AppState = ctx.request_context.lifespan_context
    try:
        return await t_search.handle(query, state)
    except CanonKitError as exc:
        _log_tool_error("search_canon", exc)
        return _serialise_tool_error(exc)
    except Exception:
        log.error("tool_unexpected_error", tool="search_canon", exc_info=True)
        raise


@mcp.tool()
async def get_document(ref: str, ctx: Context) -> object:
    """Return the full text of a document by URI (klappy://...) or relative .md path."""
    state: AppState = ctx.request_context.lifespan_context
    try:
        return await t_get_document.handle(ref, state)
    except CanonKitError as exc:
        _log_tool_error("get_document", exc)
        return _serialise_tool_error(exc)
    except Exception:
        log.error("tool_unexpected_error", tool="get_document", exc_info=True)
        raise


@mcp.tool()
async def rebuild_index(ctx: Context, refresh_baseline: bool = False) -> object:
    """Rebuild the document index now, optionally re-fetching the baseline from GitHub."""
    state: AppState = ctx.request_context.lifespan_context
    try:
        return await t_rebuild.handle(refresh_baseline, state)
    except CanonKitError as exc:
        _log_tool_error("rebuild_index", exc)
        return _serialise_tool_error(exc)
    except Exception:
        log.error("tool_unexpected_error", tool="rebuild_index", exc_info=True)
        raise


@mcp.tool()
async def invalidate_cache(ctx: Context, canon_url: str | None = None) -> object:
    """Drop cached baseline (and canon override) archives, files and indexes."""
    state: AppState = ctx.request_context.lifespan_context
    try:
        return await t_invalidate.handle(canon_url, state)
    except CanonKitError as exc:
        _log_tool_error("invalidate_cache", exc)
        return _serialise_tool_error(exc)
    except Exception:
        log.error("tool_unexpected_error", tool="invalidate_cache", exc_info=True)
        raise


@mcp.tool()
async def check_baseline(ctx: Context) -> object:
    """Report whether the baseline repository changed since it was last cached."""
    state: AppState = ctx.request_context.lifespan_context
    try:
        return await t_check.handle(state)
    except CanonKitError as exc:
        _log_tool_error("check_baseline", exc)
        return _serialise_tool_error(exc)
    except Exception:
        log.error("tool_unexpected_error", tool="check_baseline", exc_info=True)
        raise


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
