"""Exceptions for the GitHub client and event parsing."""


class UpstreamError(Exception):
    """Non-success response from the GitHub API."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str = "",
        rate_limit_reset: int | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.body = body  # Raw response text, for diagnostics
        self.rate_limit_reset = rate_limit_reset  # Unix timestamp when rate limit resets
        super().__init__(message)


class TransportFailure(UpstreamError):
    """Network-level failure (timeout, DNS, connection reset).

    Subclasses UpstreamError so callers handle both the same way.
    """

    def __init__(self, message: str):
        super().__init__(message, status_code=None)


class MalformedEvent(Exception):
    """A raw activity event whose payload cannot be interpreted."""

    def __init__(self, repo_id: str, event_type: str | None, reason: str):
        self.repo_id = repo_id
        self.event_type = event_type
        self.reason = reason
        super().__init__(f"Malformed {event_type or 'event'} for {repo_id}: {reason}")
