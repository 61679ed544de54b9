"""
Typed activity events.

GitHub event payloads differ per event type. Each supported type gets its own
model with a payload shape; anything else parses as UnknownEvent, which only
carries the fields common to every event. Missing optional payload fields
default to empty values so older/newer API shapes still parse.
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from repowatch.services.github.exceptions import MalformedEvent
from repowatch.services.github.types import RawEvent


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class Actor(_Model):
    login: str = ""
    display_login: str | None = None

    @property
    def name(self) -> str | None:
        return self.display_login or self.login or None


# ---------------------------------------------------------------------------
# Payload shapes
# ---------------------------------------------------------------------------


class CommitAuthor(_Model):
    name: str | None = None
    email: str | None = None


class PushCommit(_Model):
    sha: str
    message: str = ""
    author: CommitAuthor | None = None

    @property
    def first_line(self) -> str:
        return self.message.split("\n", 1)[0]


class PushPayload(_Model):
    ref: str = ""
    head: str | None = None
    # The public events API may omit the commit list entirely
    commits: list[PushCommit] | None = None

    @property
    def branch(self) -> str:
        return self.ref.removeprefix("refs/heads/")


class PullRequestRef(_Model):
    number: int | None = None
    title: str | None = None
    html_url: str | None = None
    merged: bool | None = None


class PullRequestPayload(_Model):
    action: str = ""
    number: int | None = None
    pull_request: PullRequestRef = Field(default_factory=PullRequestRef)


class IssueRef(_Model):
    number: int | None = None
    title: str | None = None
    html_url: str | None = None


class CommentRef(_Model):
    html_url: str | None = None


class IssuesPayload(_Model):
    action: str = ""
    issue: IssueRef = Field(default_factory=IssueRef)


class IssueCommentPayload(_Model):
    action: str = ""
    issue: IssueRef = Field(default_factory=IssueRef)
    comment: CommentRef = Field(default_factory=CommentRef)


class ReleaseRef(_Model):
    tag_name: str | None = None
    name: str | None = None
    html_url: str | None = None


class ReleasePayload(_Model):
    action: str = ""
    release: ReleaseRef = Field(default_factory=ReleaseRef)


class RefPayload(_Model):
    """Shared by CreateEvent and DeleteEvent."""

    ref: str | None = None
    ref_type: str = ""


class ForkeeRef(_Model):
    full_name: str | None = None
    html_url: str | None = None


class ForkPayload(_Model):
    forkee: ForkeeRef = Field(default_factory=ForkeeRef)


class WatchPayload(_Model):
    action: str = "started"


# ---------------------------------------------------------------------------
# Event variants
# ---------------------------------------------------------------------------


class BaseEvent(_Model):
    """Fields common to every activity event."""

    kind: ClassVar[str] = ""

    id: str | int | None = None
    type: str
    repo_id: str
    actor: Actor | None = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=UTC)

    @property
    def actor_name(self) -> str | None:
        return self.actor.name if self.actor else None


class PushEvent(BaseEvent):
    kind: ClassVar[str] = "PushEvent"
    payload: PushPayload = Field(default_factory=PushPayload)


class PullRequestEvent(BaseEvent):
    kind: ClassVar[str] = "PullRequestEvent"
    payload: PullRequestPayload = Field(default_factory=PullRequestPayload)


class IssuesEvent(BaseEvent):
    kind: ClassVar[str] = "IssuesEvent"
    payload: IssuesPayload = Field(default_factory=IssuesPayload)


class IssueCommentEvent(BaseEvent):
    kind: ClassVar[str] = "IssueCommentEvent"
    payload: IssueCommentPayload = Field(default_factory=IssueCommentPayload)


class ReleaseEvent(BaseEvent):
    kind: ClassVar[str] = "ReleaseEvent"
    payload: ReleasePayload = Field(default_factory=ReleasePayload)


class CreateEvent(BaseEvent):
    kind: ClassVar[str] = "CreateEvent"
    payload: RefPayload = Field(default_factory=RefPayload)


class DeleteEvent(BaseEvent):
    kind: ClassVar[str] = "DeleteEvent"
    payload: RefPayload = Field(default_factory=RefPayload)


class ForkEvent(BaseEvent):
    kind: ClassVar[str] = "ForkEvent"
    payload: ForkPayload = Field(default_factory=ForkPayload)


class WatchEvent(BaseEvent):
    kind: ClassVar[str] = "WatchEvent"
    payload: WatchPayload = Field(default_factory=WatchPayload)


class UnknownEvent(BaseEvent):
    """Any event type without a dedicated model."""

    payload: dict[str, Any] = Field(default_factory=dict)


Event = (
    PushEvent
    | PullRequestEvent
    | IssuesEvent
    | IssueCommentEvent
    | ReleaseEvent
    | CreateEvent
    | DeleteEvent
    | ForkEvent
    | WatchEvent
    | UnknownEvent
)

EVENT_MODELS: dict[str, type[BaseEvent]] = {
    model.kind: model
    for model in (
        PushEvent,
        PullRequestEvent,
        IssuesEvent,
        IssueCommentEvent,
        ReleaseEvent,
        CreateEvent,
        DeleteEvent,
        ForkEvent,
        WatchEvent,
    )
}


def parse_event(raw: RawEvent) -> Event:
    """
    Parse a tagged raw event into its typed variant.

    Raises:
        MalformedEvent: If the record does not fit the shape for its type
    """
    event_type = raw.type or "default"
    model = EVENT_MODELS.get(event_type, UnknownEvent)
    data = {**raw.data, "type": event_type, "repo_id": raw.repo}
    if data.get("payload") is None:
        data.pop("payload", None)
    try:
        event = model.model_validate(data)
    except ValidationError as e:
        raise MalformedEvent(raw.repo, raw.type, str(e)) from e
    return event  # type: ignore[return-value]


def collect_push_shas(events: Iterable[RawEvent]) -> list[str]:
    """
    Commit SHAs referenced by push events, in batch order, without duplicates.

    Malformed events are skipped; the feed builder reports them.
    """
    seen: set[str] = set()
    shas: list[str] = []
    for raw in events:
        if raw.type != PushEvent.kind:
            continue
        try:
            event = parse_event(raw)
        except MalformedEvent:
            continue
        if not isinstance(event, PushEvent) or not event.payload.commits:
            continue
        for commit in event.payload.commits:
            if commit.sha not in seen:
                seen.add(commit.sha)
                shas.append(commit.sha)
    return shas
