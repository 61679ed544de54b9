"""
GitHub API helper utilities.

Rate limit header parsing and error response processing shared by every
request the conditional client issues.
"""

import logging

import httpx

from repowatch.services.github.exceptions import UpstreamError
from repowatch.services.github.types import RateBudget

logger = logging.getLogger(__name__)

# Keep diagnostics bounded when an error page is large
MAX_ERROR_BODY = 500


def parse_rate_budget(response: httpx.Response) -> RateBudget | None:
    """
    Read the X-RateLimit-* headers into a RateBudget.

    Returns None unless limit, remaining and reset are all present and integer.
    """
    try:
        return RateBudget(
            limit=int(response.headers["X-RateLimit-Limit"]),
            remaining=int(response.headers["X-RateLimit-Remaining"]),
            reset=int(response.headers["X-RateLimit-Reset"]),
        )
    except (KeyError, ValueError):
        return None


def handle_error_response(response: httpx.Response, url: str) -> None:
    """
    Raise UpstreamError for any non-2xx response.

    Args:
        response: The HTTP response from GitHub API
        url: Requested URL, for error context

    Raises:
        UpstreamError: With the status, a readable message and the body text
    """
    if response.is_success:
        return

    status = response.status_code
    body = response.text[:MAX_ERROR_BODY]
    budget = parse_rate_budget(response)

    if status == 401:
        raise UpstreamError(f"Invalid or expired GitHub token ({url})", 401, body)
    elif status == 404:
        raise UpstreamError(f"Repository or resource not found: {url}", 404, body)
    elif status in (403, 429):
        if status == 429 or (budget is not None and budget.is_exhausted):
            raise UpstreamError(
                f"GitHub API rate limit exceeded ({url})",
                status,
                body,
                rate_limit_reset=budget.reset if budget else None,
            )
        raise UpstreamError(f"GitHub API forbidden: {url}", status, body)
    raise UpstreamError(
        f"{status} {response.reason_phrase} for {url}", status, body
    )
