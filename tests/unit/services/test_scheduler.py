"""Unit tests for the update scheduler.

The GitHub client is mocked; the store and feed builder are real. Verifies:
- Per-repository isolation during bulk load
- Stale preference when the events resource is unchanged
- Bounded commit-stat fan-out
- Queue priority by last push, tick order and wrap-around
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from apscheduler.events import EVENT_JOB_MAX_INSTANCES

from repowatch.config import RepoRef
from repowatch.services.github.client import GitHubClient
from repowatch.services.github.exceptions import TransportFailure, UpstreamError
from repowatch.services.github.types import CommitStat, RateBudget, RawEvent, RepoInfo
from repowatch.services.scheduler import (
    MAX_COMMIT_STAT_FETCHES,
    TICK_JOB_ID,
    SchedulerState,
    UpdateScheduler,
)

T0 = datetime(2026, 1, 14, 10, tzinfo=UTC)

A = RepoRef(id="octo/a", name="A")
B = RepoRef(id="octo/b", name="B")
C = RepoRef(id="octo/c", name="C")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _info(repo_id: str, pushed_at: datetime | None = T0) -> RepoInfo:
    return RepoInfo(
        repo=repo_id,
        display_name=repo_id,
        html_url=f"https://github.com/{repo_id}",
        description=None,
        pushed_at=pushed_at,
    )


def _watch(repo_id: str, when: datetime = T0) -> RawEvent:
    return RawEvent(
        repo=repo_id,
        data={"type": "WatchEvent", "actor": {"login": "mona"}, "created_at": when.isoformat(), "payload": {}},
    )


def _push(repo_id: str, shas: list[str]) -> RawEvent:
    return RawEvent(
        repo=repo_id,
        data={
            "type": "PushEvent",
            "actor": {"login": "mona"},
            "created_at": T0.isoformat(),
            "payload": {"ref": "refs/heads/main", "commits": [{"sha": s, "message": s} for s in shas]},
        },
    )


def _mock_client() -> MagicMock:
    client = MagicMock(spec=GitHubClient)
    client.rate_budget = RateBudget(limit=5000, remaining=4990, reset=1700000000)
    client.get_repo_info.side_effect = lambda repo_id: _info(repo_id)
    client.get_repo_events.side_effect = lambda repo_id: [_watch(repo_id)]
    client.get_commit_stat.side_effect = lambda repo_id, sha: CommitStat(sha=sha, additions=1)
    return client


@pytest.fixture
def client() -> MagicMock:
    return _mock_client()


@pytest.fixture
def make_scheduler(make_settings, store, client):
    def _make(repos: list[RepoRef], **overrides) -> UpdateScheduler:
        overrides.setdefault("scheduler_enabled", False)
        return UpdateScheduler(make_settings(repos=repos, **overrides), store, client)

    return _make


# ═══════════════════════════════════════════════════════════════════════════
# update_repo
# ═══════════════════════════════════════════════════════════════════════════


class TestUpdateRepo:
    @pytest.mark.anyio
    async def test_stores_info_with_display_label_and_events(self, make_scheduler, store):
        sched = make_scheduler([A])

        await sched.update_repo(A)

        assert store.get_repo_info(A.id).display_name == "A"
        assert len(store.get_events(A.id)) == 1

    @pytest.mark.anyio
    async def test_info_failure_keeps_previous_info_and_still_updates_events(
        self, make_scheduler, store, client
    ):
        previous = _info(A.id, pushed_at=T0 - timedelta(days=1))
        store.set_repo_info(previous)
        client.get_repo_info.side_effect = UpstreamError("500 boom", 500)

        await make_scheduler([A]).update_repo(A)

        assert store.get_repo_info(A.id) is previous
        assert len(store.get_events(A.id)) == 1

    @pytest.mark.anyio
    async def test_unchanged_events_keep_stale_batch(self, make_scheduler, store, client):
        stale = [_watch(A.id), _watch(A.id)]
        store.set_events(A.id, stale)
        client.get_repo_events.side_effect = lambda repo_id: []

        await make_scheduler([A]).update_repo(A)

        assert store.get_events(A.id) == tuple(stale)

    @pytest.mark.anyio
    async def test_first_empty_batch_is_stored(self, make_scheduler, store, client):
        client.get_repo_events.side_effect = lambda repo_id: []

        await make_scheduler([A]).update_repo(A)

        assert store.has_events(A.id)
        assert store.get_events(A.id) == ()

    @pytest.mark.anyio
    async def test_events_failure_keeps_stale_batch(self, make_scheduler, store, client):
        stale = [_watch(A.id)]
        store.set_events(A.id, stale)
        client.get_repo_events.side_effect = TransportFailure("timeout")

        await make_scheduler([A]).update_repo(A)

        assert store.get_events(A.id) == tuple(stale)
        client.get_commit_stat.assert_not_called()

    @pytest.mark.anyio
    async def test_commit_stat_fan_out_is_bounded(self, make_scheduler, store, client):
        shas = [f"sha{i:02d}" for i in range(12)]
        client.get_repo_events.side_effect = lambda repo_id: [_push(repo_id, shas)]

        await make_scheduler([A]).update_repo(A)

        assert client.get_commit_stat.await_count == MAX_COMMIT_STAT_FETCHES
        fetched = [call.args[1] for call in client.get_commit_stat.await_args_list]
        assert fetched == shas[:MAX_COMMIT_STAT_FETCHES]
        assert store.commit_stats_count() == MAX_COMMIT_STAT_FETCHES

    @pytest.mark.anyio
    async def test_cached_and_duplicate_shas_are_not_refetched(self, make_scheduler, store, client):
        store.set_commit_stat(A.id, CommitStat(sha="s1"))
        client.get_repo_events.side_effect = lambda repo_id: [
            _push(repo_id, ["s1", "s2"]),
            _push(repo_id, ["s2", "s3"]),
        ]

        await make_scheduler([A]).update_repo(A)

        fetched = sorted(call.args[1] for call in client.get_commit_stat.await_args_list)
        assert fetched == ["s2", "s3"]

    @pytest.mark.anyio
    async def test_unchanged_stat_for_uncached_sha_stores_zero_stat(
        self, make_scheduler, store, client
    ):
        client.get_repo_events.side_effect = lambda repo_id: [_push(repo_id, ["s1"])]
        client.get_commit_stat.side_effect = lambda repo_id, sha: None

        await make_scheduler([A]).update_repo(A)

        assert store.get_commit_stat(A.id, "s1") == CommitStat(sha="s1")

    @pytest.mark.anyio
    async def test_failed_commit_stat_is_skipped(self, make_scheduler, store, client):
        client.get_repo_events.side_effect = lambda repo_id: [_push(repo_id, ["s1", "s2"])]

        def _stat(repo_id, sha):
            if sha == "s1":
                raise UpstreamError("404", 404)
            return CommitStat(sha=sha, additions=2)

        client.get_commit_stat.side_effect = _stat

        await make_scheduler([A]).update_repo(A)

        assert not store.has_commit_stat(A.id, "s1")
        assert store.get_commit_stat(A.id, "s2").additions == 2


# ═══════════════════════════════════════════════════════════════════════════
# bulk load / queue / tick
# ═══════════════════════════════════════════════════════════════════════════


class TestBulkLoad:
    @pytest.mark.anyio
    async def test_one_failing_repo_does_not_affect_others(self, make_scheduler, store, client):
        def _info_or_fail(repo_id):
            if repo_id == B.id:
                raise TransportFailure("connection reset")
            return _info(repo_id)

        def _events_or_fail(repo_id):
            if repo_id == B.id:
                raise UpstreamError("502 Bad Gateway", 502)
            return [_watch(repo_id)]

        client.get_repo_info.side_effect = _info_or_fail
        client.get_repo_events.side_effect = _events_or_fail
        sched = make_scheduler([A, B, C])

        await sched.bulk_load()

        assert store.get_repo_info(A.id) is not None
        assert store.get_repo_info(C.id) is not None
        assert store.get_repo_info(B.id) is None
        assert not store.has_events(B.id)
        assert {item.repo for item in store.feed()} == {A.id, C.id}
        assert sched.state == SchedulerState.QUEUED
        assert len(sched.queue) == 3

    @pytest.mark.anyio
    async def test_feed_respects_limit(self, make_scheduler, store, client):
        client.get_repo_events.side_effect = lambda repo_id: [
            _watch(repo_id, T0 + timedelta(minutes=i)) for i in range(10)
        ]
        sched = make_scheduler([A, B], feed_limit=6)

        await sched.bulk_load()

        assert len(store.feed()) == 6


class TestBuildQueue:
    def test_orders_by_most_recent_push(self, make_scheduler, store):
        store.set_repo_info(_info(A.id, T0))
        store.set_repo_info(_info(B.id, T0 + timedelta(hours=2)))
        store.set_repo_info(_info(C.id, T0 + timedelta(hours=1)))
        sched = make_scheduler([A, B, C])

        sched.build_queue()

        assert [r.id for r in sched.queue] == [B.id, C.id, A.id]

    def test_repos_without_info_keep_their_slot(self, make_scheduler, store):
        store.set_repo_info(_info(A.id, T0))
        store.set_repo_info(_info(C.id, T0 + timedelta(hours=1)))
        sched = make_scheduler([A, B, C])

        sched.build_queue()

        assert [r.id for r in sched.queue] == [C.id, B.id, A.id]


class TestTick:
    @pytest.mark.anyio
    async def test_updates_head_only_and_rebuilds_feed(self, make_scheduler, store, client):
        store.set_repo_info(_info(A.id, T0))
        store.set_repo_info(_info(B.id, T0 + timedelta(hours=1)))
        sched = make_scheduler([A, B])
        sched.build_queue()

        await sched.tick()

        client.get_repo_info.assert_called_once_with(B.id)
        assert [r.id for r in sched.queue] == [A.id]
        assert [item.repo for item in store.feed()] == [B.id]
        assert sched.state == SchedulerState.QUEUED

    @pytest.mark.anyio
    async def test_successive_ticks_follow_push_recency(self, make_scheduler, store, client):
        store.set_repo_info(_info(A.id, T0 + timedelta(hours=1)))
        store.set_repo_info(_info(B.id, T0 + timedelta(hours=3)))
        store.set_repo_info(_info(C.id, T0 + timedelta(hours=2)))
        sched = make_scheduler([A, B, C])
        sched.build_queue()

        for _ in range(3):
            await sched.tick()

        updated = [call.args[0] for call in client.get_repo_info.call_args_list]
        assert updated == [B.id, C.id, A.id]

    @pytest.mark.anyio
    async def test_wraps_around_when_queue_is_empty(self, make_scheduler, client):
        sched = make_scheduler([A, B])

        for _ in range(3):
            await sched.tick()

        updated = [call.args[0] for call in client.get_repo_info.call_args_list]
        assert updated == [A.id, B.id, A.id]

    @pytest.mark.anyio
    async def test_requeue_restores_full_queue(self, make_scheduler):
        sched = make_scheduler([A, B, C])
        sched.build_queue()
        await sched.tick()

        await sched.requeue()

        assert len(sched.queue) == 3
        assert sched.state == SchedulerState.QUEUED


class TestLifecycle:
    @pytest.mark.anyio
    async def test_start_without_periodic_jobs_only_bulk_loads(self, make_scheduler, store):
        sched = make_scheduler([A])

        await sched.start()

        assert store.get_repo_info(A.id) is not None
        assert sched._scheduler is None
        sched.stop()
        assert sched.state == SchedulerState.IDLE

    @pytest.mark.anyio
    async def test_start_registers_tick_job(self, make_scheduler):
        sched = make_scheduler([A], scheduler_enabled=True)

        await sched.start()
        try:
            assert sched._scheduler.get_job(TICK_JOB_ID) is not None
            await sched.requeue()
        finally:
            sched.stop()

    @pytest.mark.anyio
    async def test_firings_during_slow_tick_fold_into_one_pending_tick(self, make_scheduler):
        sched = make_scheduler([A, B, C])
        release = asyncio.Event()
        visited = []

        async def _slow_update(repo):
            visited.append(repo.id)
            await release.wait()

        sched.update_repo = _slow_update
        sched.build_queue()

        await sched._on_tick_timer()
        await asyncio.sleep(0)
        await sched._on_tick_timer()
        await sched._on_tick_timer()
        release.set()
        await sched._tick_task

        assert visited == [A.id, B.id]

    @pytest.mark.anyio
    async def test_slow_ticks_are_delayed_not_dropped(self, make_scheduler):
        sched = make_scheduler([A, B], scheduler_enabled=True, repo_update_interval_seconds=0.2)
        calls = []
        dropped = []

        async def _slow_update(repo):
            calls.append(repo.id)
            await asyncio.sleep(0.5)

        sched.update_repo = _slow_update
        await sched.start()
        sched._scheduler.add_listener(dropped.append, EVENT_JOB_MAX_INSTANCES)
        try:
            await asyncio.sleep(1.5)
        finally:
            sched.stop()
            if sched._tick_task is not None:
                sched._tick_task.cancel()
                await asyncio.gather(sched._tick_task, return_exceptions=True)

        assert dropped == []
        # Two from the bulk load, then back-to-back ticks
        assert len(calls) >= 4
