"""
Shared HTTP client for GitHub API calls.

One AsyncClient with connection pooling serves every request the poller makes,
so the per-tick fan-out (metadata, events, commit stats) reuses connections.
Headers common to every call live on the client; the credential and the
conditional-request precondition are added per request.
"""

import logging

import httpx

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
USER_AGENT = "repowatch-dashboard"

DEFAULT_HEADERS = {
    "Accept": "application/vnd.github+json",
    "X-GitHub-Api-Version": GITHUB_API_VERSION,
    "User-Agent": USER_AGENT,
}

_client: httpx.AsyncClient | None = None


def get_github_client() -> httpx.AsyncClient:
    """Get or lazily create the shared client."""
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(
            base_url=GITHUB_API_URL,
            headers=DEFAULT_HEADERS,
            timeout=httpx.Timeout(30.0, connect=5.0),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            # Renamed/transferred repos answer with 301 to the new location
            follow_redirects=True,
            http2=True,
        )
        logger.debug("Created GitHub HTTP client")
    return _client


async def close_github_client() -> None:
    """Close the shared client. Called from the app lifespan on shutdown."""
    global _client
    if _client is not None and not _client.is_closed:
        await _client.aclose()
        _client = None
        logger.debug("Closed GitHub HTTP client")
