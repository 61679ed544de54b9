"""Repository update scheduler using APScheduler.

Keeps the in-memory cache fresh within the GitHub rate budget:

- on startup, every configured repository is updated concurrently (bulk load);
- then one repository is updated per tick, most recently pushed first;
- a slower requeue job re-sorts the queue so repositories that just became
  active jump ahead, and restarts the tick timer.

Bulk load, ticks and requeues are serialized through one asyncio lock, so the
two interval jobs never mutate the store at the same time. A slow tick delays
the next one; timer firings that land meanwhile are folded into a single
pending tick instead of being dropped.
"""

import asyncio
import logging
import time
from collections import deque
from enum import Enum

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from repowatch.config import RepoRef, Settings
from repowatch.services.feed import rebuild_feed
from repowatch.services.github.client import GitHubClient
from repowatch.services.github.events import collect_push_shas
from repowatch.services.github.types import CommitStat, RawEvent
from repowatch.services.store import RepoStore

logger = logging.getLogger(__name__)

# Commit-stat fetches per repository per update (push events can carry dozens)
MAX_COMMIT_STAT_FETCHES = 5

TICK_JOB_ID = "tick"
REQUEUE_JOB_ID = "requeue"


class SchedulerState(str, Enum):
    IDLE = "idle"
    BULK_LOADING = "bulk_loading"
    QUEUED = "queued"
    TICKING = "ticking"
    REQUEUING = "requeuing"


class UpdateScheduler:
    """Drives repository updates and feed rebuilds."""

    def __init__(self, settings: Settings, store: RepoStore, client: GitHubClient) -> None:
        self._settings = settings
        self._store = store
        self._client = client
        self._queue: deque[RepoRef] = deque()
        self._lock = asyncio.Lock()
        self._scheduler: AsyncIOScheduler | None = None
        self._tick_task: asyncio.Task | None = None
        self._tick_pending = False
        self.state = SchedulerState.IDLE

    @property
    def queue(self) -> list[RepoRef]:
        """Repositories still waiting for their turn, head first."""
        return list(self._queue)

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Run the bulk load, then register the tick and requeue jobs."""
        await self.bulk_load()

        if not self._settings.scheduler_enabled:
            logger.info("[scheduler] Periodic updates disabled via SCHEDULER_ENABLED=false")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._on_tick_timer,
            trigger=self._tick_trigger(),
            id=TICK_JOB_ID,
            name="Update next repository",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.add_job(
            self.requeue,
            trigger=IntervalTrigger(seconds=self._settings.refresh_seconds),
            id=REQUEUE_JOB_ID,
            name="Re-prioritize update queue",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            f"[scheduler] Started: one repo every {self._settings.repo_update_interval_seconds}s, "
            f"queue re-sort every {self._settings.refresh_seconds}s"
        )

    def stop(self) -> None:
        """Shut down the interval jobs. An in-flight update runs to completion."""
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("[scheduler] Stopped")
        self.state = SchedulerState.IDLE

    def _tick_trigger(self) -> IntervalTrigger:
        return IntervalTrigger(seconds=self._settings.repo_update_interval_seconds)

    async def _on_tick_timer(self) -> None:
        """
        Timer callback: start a tick, or mark one pending if a tick is running.

        Returns immediately so APScheduler never sees the job as still running.
        Any number of firings during a slow tick collapse into one tick that
        runs as soon as the slow one finishes.
        """
        if self._tick_task is not None and not self._tick_task.done():
            self._tick_pending = True
            return
        self._tick_task = asyncio.create_task(self._run_ticks())

    async def _run_ticks(self) -> None:
        while True:
            self._tick_pending = False
            try:
                await self.tick()
            except Exception as e:
                logger.exception(f"[scheduler] Tick failed: {e}")
            if not self._tick_pending:
                return

    # ─────────────────────────────────────────────────────────────────────
    # Scheduling steps
    # ─────────────────────────────────────────────────────────────────────

    async def bulk_load(self) -> None:
        """Update every repository concurrently, then rebuild the feed once."""
        async with self._lock:
            self.state = SchedulerState.BULK_LOADING
            repos = self._settings.repos
            logger.info(f"[scheduler] Initial load for {len(repos)} repos...")
            started = time.perf_counter()

            await asyncio.gather(*(self.update_repo(repo) for repo in repos), return_exceptions=True)
            self.rebuild_feed()
            self.build_queue()

            budget = self._client.rate_budget
            logger.info(
                f"[scheduler] Initial load done in {time.perf_counter() - started:.2f}s. "
                f"Rate limit: {budget.remaining}/{budget.limit}"
            )
            self.state = SchedulerState.QUEUED

    def build_queue(self) -> None:
        """
        Order repositories by last push, newest first.

        Repositories with no cached metadata (or no push time) keep their
        configured slot; only the known ones are re-ordered among themselves.
        """
        repos = list(self._settings.repos)
        pushed = {}
        for repo in repos:
            info = self._store.get_repo_info(repo.id)
            if info is not None and info.pushed_at is not None:
                pushed[repo.id] = info.pushed_at

        known_slots = [i for i, repo in enumerate(repos) if repo.id in pushed]
        known_sorted = sorted(
            (repos[i] for i in known_slots), key=lambda r: pushed[r.id], reverse=True
        )
        for slot, repo in zip(known_slots, known_sorted, strict=True):
            repos[slot] = repo

        self._queue = deque(repos)
        top = ", ".join(r.name for r in repos[:3])
        logger.info(f"[scheduler] Queue rebuilt. Top: {top}...")

    async def tick(self) -> None:
        """Update the repository at the head of the queue, then rebuild the feed."""
        async with self._lock:
            if not self._queue:
                self.build_queue()
            if not self._queue:
                return

            repo = self._queue.popleft()
            self.state = SchedulerState.TICKING
            try:
                await self.update_repo(repo)
                self.rebuild_feed()
            finally:
                self.state = SchedulerState.QUEUED

    async def requeue(self) -> None:
        """Re-sort the queue from current metadata and restart the tick timer."""
        async with self._lock:
            self.state = SchedulerState.REQUEUING
            self.build_queue()
            if self._scheduler is not None and self._scheduler.get_job(TICK_JOB_ID):
                self._scheduler.reschedule_job(TICK_JOB_ID, trigger=self._tick_trigger())
            self.state = SchedulerState.QUEUED

    def rebuild_feed(self) -> None:
        items = rebuild_feed(self._store, self._settings.repos, self._settings.feed_limit)
        logger.debug(f"[scheduler] Feed rebuilt with {len(items)} items")

    # ─────────────────────────────────────────────────────────────────────
    # Per-repository update
    # ─────────────────────────────────────────────────────────────────────

    async def update_repo(self, repo: RepoRef) -> None:
        """
        Refresh metadata, events and new commit stats for one repository.

        Never raises: each failure is logged and the previous cached value is
        kept, so one repository cannot affect another or stop the schedule.
        """
        started = time.perf_counter()
        logger.info(f"[update] Updating {repo.name} ({repo.id})...")
        try:
            info_result, events_result = await asyncio.gather(
                self._client.get_repo_info(repo.id),
                self._client.get_repo_events(repo.id),
                return_exceptions=True,
            )

            if isinstance(info_result, BaseException):
                logger.error(f"[update] Info failed for {repo.name}: {info_result}")
            elif info_result is not None:
                info_result.display_name = repo.name
                self._store.set_repo_info(info_result)

            if isinstance(events_result, BaseException):
                logger.error(f"[update] Events failed for {repo.name}: {events_result}")
            else:
                # An empty batch means "unchanged": keep the stale-but-present one
                if events_result or not self._store.has_events(repo.id):
                    self._store.set_events(repo.id, events_result)
                await self._prefetch_commit_stats(repo, events_result)

            budget = self._client.rate_budget
            logger.info(
                f"[update] Finished {repo.name} in {time.perf_counter() - started:.2f}s. "
                f"RL: {budget.remaining}/{budget.limit} "
                f"(reset {budget.reset_at.strftime('%H:%M:%S')} UTC)"
            )
        except Exception as e:
            logger.exception(f"[update] Unhandled error for {repo.name}: {e}")

    async def _prefetch_commit_stats(self, repo: RepoRef, events: list[RawEvent]) -> None:
        """Fetch stats for the first few uncached commits referenced by push events."""
        to_fetch = [
            sha
            for sha in collect_push_shas(events)
            if not self._store.has_commit_stat(repo.id, sha)
        ][:MAX_COMMIT_STAT_FETCHES]
        if not to_fetch:
            return

        results = await asyncio.gather(
            *(self._client.get_commit_stat(repo.id, sha) for sha in to_fetch),
            return_exceptions=True,
        )
        for sha, result in zip(to_fetch, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(f"[update] Commit stat failed ({repo.id}@{sha}): {result}")
            elif result is not None:
                self._store.set_commit_stat(repo.id, result)
            elif not self._store.has_commit_stat(repo.id, sha):
                # Unchanged on the very first lookup: record an empty stat
                self._store.set_commit_stat(repo.id, CommitStat(sha=sha))
