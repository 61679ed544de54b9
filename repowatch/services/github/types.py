"""Data types shared by the client, the store and the feed builder."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class RepoInfo:
    """Latest known metadata snapshot for one repository."""

    repo: str  # owner/name
    display_name: str
    html_url: str
    description: str | None
    stargazers_count: int = 0
    forks_count: int = 0
    open_issues_count: int = 0
    pushed_at: datetime | None = None
    default_branch: str = "main"
    # When this snapshot was fetched; consumers derive staleness from it
    fetched_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class RawEvent:
    """One opaque activity event record, tagged with its owning repository."""

    repo: str
    data: dict[str, Any]

    @property
    def type(self) -> str | None:
        return self.data.get("type")


RawEventBatch = tuple[RawEvent, ...]


@dataclass(frozen=True)
class CommitStat:
    """Line-level diff summary for one commit."""

    sha: str
    additions: int = 0
    deletions: int = 0
    files_changed: int = 0


@dataclass(frozen=True)
class RateBudget:
    """Upstream call budget, from the X-RateLimit-* headers."""

    limit: int
    remaining: int
    reset: int  # Unix timestamp

    @property
    def is_exhausted(self) -> bool:
        return self.remaining == 0

    @property
    def reset_at(self) -> datetime:
        return datetime.fromtimestamp(self.reset, tz=UTC)


@dataclass(frozen=True)
class FeedItem:
    """One user-visible activity entry."""

    type: str  # Raw event type, or "Commit" for push-expanded items
    icon: str
    when: datetime
    repo: str
    title: str
    url: str
    actor: str | None = None
    extra: str | None = None
    sha: str | None = None
    stats: CommitStat | None = None
    display_name: str | None = None


@dataclass
class QualityReport:
    """Result of one code-quality audit run for a repository."""

    repo: str
    display_name: str
    score: float | None  # 0-100; None when the report could not be parsed
    markdown: str
    updated_at: datetime
    local_path: str
