"""
Global activity feed construction.

Turns the cached raw event batches of every repository into one bounded,
newest-first list of FeedItems. Push events expand to one item per commit;
commit items are enriched with whatever CommitStat is cached at build time, so
a stat fetched after the item first appeared is attached on the next rebuild.
"""

import logging
from collections.abc import Iterable
from dataclasses import replace

from repowatch.config import RepoRef
from repowatch.services.github.events import (
    BaseEvent,
    CreateEvent,
    DeleteEvent,
    ForkEvent,
    IssueCommentEvent,
    IssuesEvent,
    PullRequestEvent,
    PushEvent,
    ReleaseEvent,
    WatchEvent,
    parse_event,
)
from repowatch.services.github.types import FeedItem, RawEvent
from repowatch.services.store import RepoStore

logger = logging.getLogger(__name__)

COMMIT_TYPE = "Commit"

ICONS: dict[str, str] = {
    "PushEvent": "⬆️",
    "PullRequestEvent": "🔀",
    "IssuesEvent": "❗",
    "IssueCommentEvent": "💬",
    "CreateEvent": "🌱",
    "DeleteEvent": "🗑️",
    "ReleaseEvent": "🏷️",
    "ForkEvent": "🍴",
    "WatchEvent": "⭐",
    "CommitCommentEvent": "📝",
    "MemberEvent": "👥",
    "PublicEvent": "📣",
    COMMIT_TYPE: "📝",
    "default": "📌",
}


def _number(value: int | None) -> str:
    return f"#{value}" if value is not None else "#?"


def _push_items(event: PushEvent, repo_url: str) -> list[FeedItem]:
    payload = event.payload
    if payload.commits is None:
        # No commit list in the payload: a single push entry
        url = f"{repo_url}/commit/{payload.head}" if payload.head else repo_url
        return [
            FeedItem(
                type=event.type,
                icon=ICONS["PushEvent"],
                when=event.created_at,
                repo=event.repo_id,
                actor=event.actor_name,
                title=f"Pushed to {payload.branch}",
                url=url,
            )
        ]

    items = []
    for commit in payload.commits:
        author = commit.author.name if commit.author and commit.author.name else event.actor_name
        items.append(
            FeedItem(
                type=COMMIT_TYPE,
                icon=ICONS[COMMIT_TYPE],
                when=event.created_at,
                repo=event.repo_id,
                actor=event.actor_name,
                title=f"Commit to {payload.branch}: {commit.first_line}",
                url=f"{repo_url}/commit/{commit.sha}",
                extra=f"by {author or ''}",
                sha=commit.sha,
            )
        )
    return items


def _describe(event: BaseEvent, repo_url: str) -> tuple[str, str, str | None]:
    """Title, target URL and optional annotation for a single-item event."""
    if isinstance(event, PullRequestEvent):
        p = event.payload
        pr = p.pull_request
        number = pr.number if pr.number is not None else p.number
        extra = None
        # Trimmed payloads omit `merged`; only label what is known
        if p.action == "closed" and pr.merged is not None:
            extra = "merged" if pr.merged else "closed without merging"
        return f"PR {p.action} {_number(number)}: {pr.title or ''}", pr.html_url or repo_url, extra

    if isinstance(event, IssuesEvent):
        p = event.payload
        return (
            f"Issue {p.action} {_number(p.issue.number)}: {p.issue.title or ''}",
            p.issue.html_url or repo_url,
            None,
        )

    if isinstance(event, IssueCommentEvent):
        p = event.payload
        return (
            f"Comment on issue {_number(p.issue.number)}: {p.issue.title or ''}",
            p.comment.html_url or p.issue.html_url or repo_url,
            None,
        )

    if isinstance(event, ReleaseEvent):
        p = event.payload
        return (
            f"Release {p.action}: {p.release.tag_name or ''}",
            p.release.html_url or repo_url,
            p.release.name or None,
        )

    if isinstance(event, CreateEvent):
        p = event.payload
        title = f"Created {p.ref_type}: {p.ref}" if p.ref else f"Created {p.ref_type or 'repository'}"
        return title, repo_url, None

    if isinstance(event, DeleteEvent):
        p = event.payload
        return f"Deleted {p.ref_type}: {p.ref or ''}", repo_url, None

    if isinstance(event, ForkEvent):
        forkee = event.payload.forkee
        return "Forked the repository", forkee.html_url or repo_url, forkee.full_name

    if isinstance(event, WatchEvent):
        return "Starred the repository", repo_url, None

    return event.type, repo_url, None


def event_to_feed_items(raw: RawEvent) -> list[FeedItem]:
    """
    Map one raw event to zero or more feed items.

    A push with commits yields one "Commit" item per commit. Every other type
    yields exactly one item. An event that cannot be interpreted yields none
    and is logged.
    """
    try:
        event = parse_event(raw)
        repo_url = f"https://github.com/{event.repo_id}"

        if isinstance(event, PushEvent):
            return _push_items(event, repo_url)

        title, url, extra = _describe(event, repo_url)
        return [
            FeedItem(
                type=event.type,
                icon=ICONS.get(event.type, ICONS["default"]),
                when=event.created_at,
                repo=event.repo_id,
                actor=event.actor_name,
                title=title,
                url=url,
                extra=extra,
            )
        ]
    except Exception as e:
        logger.warning(f"Skipping event {raw.type} for {raw.repo}: {e}")
        return []


def attach_commit_stats(item: FeedItem, store: RepoStore) -> FeedItem:
    """Attach the cached CommitStat to a commit item; other items pass through."""
    if item.type != COMMIT_TYPE or not item.sha:
        return item
    stat = store.get_commit_stat(item.repo, item.sha)
    if stat is None or stat == item.stats:
        return item
    return replace(item, stats=stat)


def build_feed(
    events: Iterable[RawEvent],
    store: RepoStore,
    repos: Iterable[RepoRef],
    limit: int,
) -> list[FeedItem]:
    """Items for `events`, enriched, labelled, newest first, at most `limit`."""
    names = {repo.id: repo.name for repo in repos}
    items = [
        replace(attach_commit_stats(item, store), display_name=names.get(item.repo) or item.repo)
        for raw in events
        for item in event_to_feed_items(raw)
    ]
    items.sort(key=lambda item: item.when, reverse=True)
    return items[: max(limit, 0)]


def rebuild_feed(store: RepoStore, repos: Iterable[RepoRef], limit: int) -> list[FeedItem]:
    """Rebuild the global feed from every cached batch and swap it into the store."""
    items = build_feed(store.all_events(), store, repos, limit)
    store.replace_feed(items)
    return items


def feed_with_latest_stats(store: RepoStore) -> list[FeedItem]:
    """The current feed, re-enriched with stats cached since the last rebuild."""
    return [attach_commit_stats(item, store) for item in store.feed()]
