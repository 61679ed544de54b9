"""
GitHub service package.

Usage: `from repowatch.services.github import GitHubClient, UNCHANGED`

Module structure:
- client.py: Conditional-fetch client (ETags, rate budget)
- events.py: Typed activity events parsed from raw records
- cache.py: Validation-token (ETag) cache
- helpers.py: Rate limit parsing and error mapping
- http_client.py: Shared httpx connection pool
- types.py: Data types
- exceptions.py: Custom exceptions
"""

from repowatch.services.github.cache import ResourceClass, ValidationTokenCache
from repowatch.services.github.client import UNCHANGED, GitHubClient, Unchanged
from repowatch.services.github.events import (
    EVENT_MODELS,
    BaseEvent,
    Event,
    UnknownEvent,
    collect_push_shas,
    parse_event,
)
from repowatch.services.github.exceptions import MalformedEvent, TransportFailure, UpstreamError
from repowatch.services.github.helpers import handle_error_response, parse_rate_budget
from repowatch.services.github.http_client import close_github_client, get_github_client
from repowatch.services.github.types import (
    CommitStat,
    FeedItem,
    QualityReport,
    RateBudget,
    RawEvent,
    RawEventBatch,
    RepoInfo,
)

__all__ = [
    # Client (main entry point)
    "GitHubClient",
    "UNCHANGED",
    "Unchanged",
    # Events
    "BaseEvent",
    "Event",
    "EVENT_MODELS",
    "UnknownEvent",
    "collect_push_shas",
    "parse_event",
    # Cache
    "ResourceClass",
    "ValidationTokenCache",
    # HTTP client
    "close_github_client",
    "get_github_client",
    # Helpers
    "handle_error_response",
    "parse_rate_budget",
    # Types
    "CommitStat",
    "FeedItem",
    "QualityReport",
    "RateBudget",
    "RawEvent",
    "RawEventBatch",
    "RepoInfo",
    # Exceptions
    "MalformedEvent",
    "TransportFailure",
    "UpstreamError",
]
