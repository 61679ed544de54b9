"""Request-scoped access to the long-lived services created at startup."""

from fastapi import Request

from repowatch.services.github.client import GitHubClient
from repowatch.services.scheduler import UpdateScheduler
from repowatch.services.store import RepoStore


def get_store(request: Request) -> RepoStore:
    return request.app.state.store


def get_github(request: Request) -> GitHubClient:
    return request.app.state.github


def get_scheduler(request: Request) -> UpdateScheduler | None:
    return getattr(request.app.state, "scheduler", None)
