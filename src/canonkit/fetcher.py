"""HTTP origin fetcher with SSRF protection.

All network I/O for the baseline corpus goes through a single HttpFetcher
instance shared across tool calls. The fetcher receives an httpx.AsyncClient
via constructor injection; the lifespan owns the client lifecycle.
"""

from __future__ import annotations

import ipaddress
from typing import TYPE_CHECKING
from urllib.parse import urljoin, urlparse

import httpx
import structlog

from canonkit.errors import CanonKitError, ErrorCode
from canonkit.models.cache import RepoRef

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

log = structlog.get_logger()

PRIVATE_NETWORKS: list[ipaddress.IPv4Network | ipaddress.IPv6Network] = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
]

# Archive downloads redirect from github.com to codeload.github.com
GITHUB_DOMAINS = frozenset({"github.com", "githubusercontent.com"})

SHA_MEDIA_TYPE = "application/vnd.github.sha"


def build_http_client() -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    return httpx.AsyncClient(
        follow_redirects=False,
        timeout=httpx.Timeout(30.0),
        headers={"User-Agent": "canonkit/0.3"},
        limits=httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        ),
    )


def _base_domain(hostname: str) -> str:
    """Return the last two DNS labels: ``'api.github.com'`` → ``'github.com'``."""
    parts = hostname.rstrip(".").split(".")
    return ".".join(parts[-2:]) if len(parts) >= 2 else hostname


def build_allowlist(urls: Iterable[str | None]) -> frozenset[str]:
    """Build the SSRF domain allowlist from the configured origin URLs.

    GitHub's own domains are always included since every repository
    reference resolves through them.
    """
    base_domains: set[str] = set(GITHUB_DOMAINS)
    for url in urls:
        if url:
            hostname = urlparse(url).hostname or ""
            if hostname:
                base_domains.add(_base_domain(hostname))
    return frozenset(base_domains)


def is_url_allowed(url: str, allowlist: frozenset[str]) -> bool:
    """Check whether a URL is permitted by the SSRF allowlist.

    Private IP ranges are blocked unconditionally, regardless of allowlist.
    """
    parsed = urlparse(url)
    hostname = parsed.hostname or ""

    # Block private IPs unconditionally
    try:
        addr = ipaddress.ip_address(hostname)
        if any(addr in net for net in PRIVATE_NETWORKS):
            return False
    except ValueError:
        pass  # hostname is a domain name, not an IP

    return _base_domain(hostname) in allowlist


# ---------------------------------------------------------------------------
# Repository URLs
# ---------------------------------------------------------------------------


def parse_repo_url(url: str, ref: str = "main") -> RepoRef | None:
    """Parse a GitHub repository URL into a RepoRef.

    Accepts ``https://github.com/{owner}/{name}`` (optionally ending in
    ``.git`` or ``/``) and ``https://raw.githubusercontent.com/{owner}/{name}/...``.
    Returns None for anything else.
    """
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https"):
        return None
    host = (parsed.hostname or "").lower()
    if host not in ("github.com", "www.github.com", "raw.githubusercontent.com"):
        return None

    parts = [part for part in parsed.path.split("/") if part]
    if len(parts) < 2:
        return None
    owner, name = parts[0], parts[1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not owner or not name:
        return None
    return RepoRef(url=f"https://github.com/{owner}/{name}", owner=owner, name=name, ref=ref)


def commit_api_url(repo: RepoRef, api_url: str = "https://api.github.com") -> str:
    """Lightweight endpoint returning the commit SHA a ref points at."""
    return f"{api_url.rstrip('/')}/repos/{repo.owner}/{repo.name}/commits/{repo.ref}"


def archive_url(repo: RepoRef, sha: str | None = None) -> str:
    """ZIP archive of the repository at ``sha``, or at the ref when unknown."""
    return f"{repo.url}/archive/{sha or repo.ref}.zip"


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class HttpFetcher:
    """HTTP origin fetcher with SSRF-safe redirect handling."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def fetch_bytes(
        self,
        url: str,
        allowlist: frozenset[str],
        *,
        headers: Mapping[str, str] | None = None,
        error_code: ErrorCode = ErrorCode.ARCHIVE_FETCH_FAILED,
        max_redirects: int = 3,
    ) -> bytes:
        """Fetch a URL with per-hop SSRF validation.

        Returns the response body on success. Raises CanonKitError on SSRF
        violations, network errors and non-2xx responses; ``error_code``
        names the failure for the caller's operation.
        """
        current_url = url

        try:
            for hop in range(max_redirects + 1):
                if not is_url_allowed(current_url, allowlist):
                    log.warning("ssrf_blocked", url=current_url, reason="not_in_allowlist")
                    raise CanonKitError(
                        code=ErrorCode.URL_NOT_ALLOWED,
                        message=f"URL not in allowlist: {current_url}",
                        suggestion="Only GitHub repository URLs are permitted as origins.",
                        recoverable=False,
                    )

                response = await self._client.get(current_url, headers=headers)

                if response.is_redirect and "location" in response.headers:
                    if hop == max_redirects:
                        raise CanonKitError(
                            code=error_code,
                            message=f"Too many redirects fetching {url}",
                            suggestion="The origin has an unusually long redirect chain.",
                            recoverable=False,
                        )
                    current_url = urljoin(current_url, response.headers["location"])
                    continue

                if not response.is_success:
                    raise CanonKitError(
                        code=error_code,
                        message=f"HTTP {response.status_code} fetching {url}",
                        suggestion="The origin may be temporarily unavailable or rate limited.",
                        recoverable=True,
                    )

                log.info(
                    "fetch_complete",
                    url=url,
                    status_code=response.status_code,
                    content_length=len(response.content),
                )
                return response.content

        except CanonKitError:
            raise
        except httpx.HTTPError as exc:
            raise CanonKitError(
                code=error_code,
                message=f"Network error fetching {url}: {exc}",
                suggestion="The origin may be temporarily unavailable.",
                recoverable=True,
            ) from exc

        # Unreachable but satisfies the type checker
        raise CanonKitError(
            code=error_code,
            message="Redirect loop",
            suggestion="",
            recoverable=False,
        )

    async def fetch_text(
        self,
        url: str,
        allowlist: frozenset[str],
        *,
        headers: Mapping[str, str] | None = None,
        error_code: ErrorCode = ErrorCode.ARCHIVE_FETCH_FAILED,
    ) -> str:
        body = await self.fetch_bytes(url, allowlist, headers=headers, error_code=error_code)
        return body.decode("utf-8", errors="replace")
