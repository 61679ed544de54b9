"""
Validation-token (ETag) cache for conditional GitHub requests.

Tokens are keyed by (resource class, resource key), e.g. ("events", "owner/repo")
or ("commits", "owner/repo@sha"). They live in memory only: after a restart
every resource is fetched in full once, then conditional requests resume.

Tokens never expire on their own. The map is size-capped with LRU eviction so
that per-commit tokens cannot grow without bound; an evicted token only costs
one unconditional request.
"""

from enum import Enum

from cachetools import LRUCache  # type: ignore[import-untyped]

DEFAULT_MAX_TOKENS = 10_000


class ResourceClass(str, Enum):
    """Kinds of upstream resources that carry their own token slots."""

    INFO = "info"
    EVENTS = "events"
    COMMITS = "commits"


CacheKey = tuple[ResourceClass, str]


class ValidationTokenCache:
    """ETags from prior successful responses, per resource."""

    def __init__(self, maxsize: int = DEFAULT_MAX_TOKENS) -> None:
        self._tokens: LRUCache[CacheKey, str] = LRUCache(maxsize=maxsize)

    def get(self, key: CacheKey) -> str | None:
        return self._tokens.get(key)

    def set(self, key: CacheKey, token: str) -> None:
        self._tokens[key] = token

    def __contains__(self, key: object) -> bool:
        return key in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)
