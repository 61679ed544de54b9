"""
In-memory repository cache.

The scheduler is the only writer; HTTP handlers read at any time. State that
readers see together (metadata, event batches, feed) is published as one
immutable StoreSnapshot. Writers build a new snapshot under the lock and swap
it in, so a reader holding a snapshot never observes a half-applied update.

Nothing here is persisted: the cache is rebuilt from the API on startup.
"""

import logging
import threading
from collections import OrderedDict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from types import MappingProxyType

from cachetools import LRUCache  # type: ignore[import-untyped]

from repowatch.services.github.types import (
    CommitStat,
    FeedItem,
    QualityReport,
    RawEvent,
    RawEventBatch,
    RepoInfo,
)

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "main"


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(mapping)


@dataclass(frozen=True)
class StoreSnapshot:
    """Point-in-time view of everything the scheduler has written."""

    repo_infos: Mapping[str, RepoInfo] = field(default_factory=lambda: _frozen({}))
    repo_events: Mapping[str, RawEventBatch] = field(default_factory=lambda: _frozen({}))
    # When each repo's events were last replaced
    events_updated_at: Mapping[str, datetime] = field(default_factory=lambda: _frozen({}))
    feed: tuple[FeedItem, ...] = ()
    feed_built_at: datetime | None = None


class RepoStore:
    """Process-wide cache of repository metadata, events, feed and commit stats."""

    def __init__(
        self,
        commit_stats_max_entries: int = 5000,
        max_quality_reports: int = 200,
    ) -> None:
        self._lock = threading.Lock()
        self._snapshot = StoreSnapshot()
        self._commit_stats: LRUCache[str, CommitStat] = LRUCache(maxsize=commit_stats_max_entries)
        self._quality_reports: OrderedDict[str, QualityReport] = OrderedDict()
        self._max_quality_reports = max_quality_reports

    # ─────────────────────────────────────────────────────────────────────
    # Snapshot reads
    # ─────────────────────────────────────────────────────────────────────

    def snapshot(self) -> StoreSnapshot:
        return self._snapshot

    def repo_infos(self) -> list[RepoInfo]:
        return list(self._snapshot.repo_infos.values())

    def get_repo_info(self, repo_id: str) -> RepoInfo | None:
        return self._snapshot.repo_infos.get(repo_id)

    def get_events(self, repo_id: str) -> RawEventBatch | None:
        return self._snapshot.repo_events.get(repo_id)

    def has_events(self, repo_id: str) -> bool:
        return repo_id in self._snapshot.repo_events

    def all_events(self) -> list[RawEvent]:
        """Every cached event, batches concatenated in insertion order."""
        return [ev for batch in self._snapshot.repo_events.values() for ev in batch]

    def feed(self) -> tuple[FeedItem, ...]:
        return self._snapshot.feed

    def default_branch(self, repo_id: str) -> str:
        """Last known default branch, or "main" when the repo was never fetched."""
        info = self.get_repo_info(repo_id)
        return info.default_branch if info and info.default_branch else DEFAULT_BRANCH

    # ─────────────────────────────────────────────────────────────────────
    # Snapshot writes (copy-on-write)
    # ─────────────────────────────────────────────────────────────────────

    def set_repo_info(self, info: RepoInfo) -> None:
        with self._lock:
            infos = dict(self._snapshot.repo_infos)
            infos[info.repo] = info
            self._snapshot = replace(self._snapshot, repo_infos=_frozen(infos))

    def set_events(self, repo_id: str, events: Iterable[RawEvent]) -> None:
        with self._lock:
            batches = dict(self._snapshot.repo_events)
            batches[repo_id] = tuple(events)
            updated = dict(self._snapshot.events_updated_at)
            updated[repo_id] = datetime.now(UTC)
            self._snapshot = replace(
                self._snapshot,
                repo_events=_frozen(batches),
                events_updated_at=_frozen(updated),
            )

    def replace_feed(self, items: Iterable[FeedItem]) -> None:
        with self._lock:
            self._snapshot = replace(
                self._snapshot, feed=tuple(items), feed_built_at=datetime.now(UTC)
            )

    # ─────────────────────────────────────────────────────────────────────
    # Commit stats (LRU-capped)
    # ─────────────────────────────────────────────────────────────────────

    @staticmethod
    def commit_key(repo_id: str, sha: str) -> str:
        return f"{repo_id}@{sha}"

    def get_commit_stat(self, repo_id: str, sha: str) -> CommitStat | None:
        with self._lock:
            return self._commit_stats.get(self.commit_key(repo_id, sha))

    def has_commit_stat(self, repo_id: str, sha: str) -> bool:
        with self._lock:
            return self.commit_key(repo_id, sha) in self._commit_stats

    def set_commit_stat(self, repo_id: str, stat: CommitStat) -> None:
        with self._lock:
            self._commit_stats[self.commit_key(repo_id, stat.sha)] = stat

    def commit_stats_count(self) -> int:
        with self._lock:
            return len(self._commit_stats)

    # ─────────────────────────────────────────────────────────────────────
    # Quality reports (written by the audit job)
    # ─────────────────────────────────────────────────────────────────────

    def set_quality_report(self, report: QualityReport) -> None:
        """Store a report, evicting the oldest inserted one past the cap."""
        with self._lock:
            self._quality_reports[report.repo] = report
            while len(self._quality_reports) > self._max_quality_reports:
                evicted, _ = self._quality_reports.popitem(last=False)
                logger.debug(f"Evicted quality report for {evicted}")

    def get_quality_report(self, repo_id: str) -> QualityReport | None:
        with self._lock:
            return self._quality_reports.get(repo_id)

    def quality_reports(self) -> list[QualityReport]:
        with self._lock:
            return list(self._quality_reports.values())
