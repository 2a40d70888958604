"""Application state container.

AppState is created once at server startup (inside the FastMCP lifespan
context manager) and injected into every tool handler via the MCP Context
object. Tests build it directly with in-memory components.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from canonkit.baseline import BaselineFetcher
    from canonkit.config import Settings
    from canonkit.protocols import BlobStoreProtocol, FetcherProtocol


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every tool handler."""

    settings: Settings
    http_client: httpx.AsyncClient | None = None
    store: BlobStoreProtocol | None = None
    fetcher: FetcherProtocol | None = None
    # None when the baseline is disabled; searches are then local-only
    baseline: BaselineFetcher | None = None
