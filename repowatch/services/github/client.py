"""
Conditional GitHub API client.

Every request carries the ETag from the previous successful response for the
same resource as `If-None-Match`. A 304 answer costs no rate-limit budget on
GitHub and is surfaced as the UNCHANGED sentinel, distinct from both success
and failure. The remaining request budget is tracked from response headers.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any

import httpx

from repowatch.services.github.cache import CacheKey, ResourceClass, ValidationTokenCache
from repowatch.services.github.exceptions import TransportFailure, UpstreamError
from repowatch.services.github.helpers import handle_error_response, parse_rate_budget
from repowatch.services.github.http_client import GITHUB_API_URL, get_github_client
from repowatch.services.github.types import CommitStat, RateBudget, RawEvent, RepoInfo

logger = logging.getLogger(__name__)


class Unchanged(Enum):
    """Outcome of a conditional request answered with 304 Not Modified."""

    UNCHANGED = "unchanged"


UNCHANGED = Unchanged.UNCHANGED


def _parse_timestamp(value: Any) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class GitHubClient:
    """
    Conditional-fetch client for the repository dashboard.

    One instance per process: the validation-token cache and the rate budget
    are per instance. Requests for the same cache key are never issued
    concurrently by the scheduler, so last-write-wins on both is correct.
    """

    BASE_URL = GITHUB_API_URL
    EVENTS_PER_PAGE = 30

    def __init__(
        self,
        token: str | None = None,
        http: httpx.AsyncClient | None = None,
        etags: ValidationTokenCache | None = None,
    ):
        self._auth_headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._http = http
        self.etags = etags if etags is not None else ValidationTokenCache()
        # Optimistic default until the first response reports the real budget
        self.rate_budget = RateBudget(limit=5000, remaining=5000, reset=0)

    def _client(self) -> httpx.AsyncClient:
        return self._http if self._http is not None else get_github_client()

    def _record_rate_budget(self, response: httpx.Response) -> None:
        budget = parse_rate_budget(response)
        if budget is not None:
            self.rate_budget = budget

    async def fetch_resource(self, url: str, cache_key: CacheKey | None = None) -> Any:
        """
        Fetch a JSON resource, conditionally when a token is cached for `cache_key`.

        Args:
            url: Absolute resource URL
            cache_key: Token slot to read/write, or None for an uncached fetch

        Returns:
            The parsed JSON body, or UNCHANGED on 304

        Raises:
            UpstreamError: Non-success status or unparseable body
            TransportFailure: Network-level failure
        """
        headers = dict(self._auth_headers)
        if cache_key is not None:
            token = self.etags.get(cache_key)
            if token:
                headers["If-None-Match"] = token

        try:
            response = await self._client().get(url, headers=headers)
        except httpx.RequestError as e:
            raise TransportFailure(f"Request to {url} failed: {e!r}") from e

        self._record_rate_budget(response)

        if response.status_code == 304:
            return UNCHANGED

        handle_error_response(response, url)

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(
                f"Invalid JSON from {url}", response.status_code, response.text[:500]
            ) from e

        etag = response.headers.get("ETag")
        if etag and cache_key is not None:
            self.etags.set(cache_key, etag)
        return data

    async def get_repo_info(self, repo_id: str) -> RepoInfo | None:
        """
        Fetch repository metadata.

        Returns:
            RepoInfo (display_name defaults to the repo id), or None when unchanged
        """
        out = await self.fetch_resource(
            f"{self.BASE_URL}/repos/{repo_id}", (ResourceClass.INFO, repo_id)
        )
        if out is UNCHANGED:
            return None
        if not isinstance(out, dict):
            raise UpstreamError(f"Unexpected repository payload for {repo_id}")

        return RepoInfo(
            repo=repo_id,
            display_name=repo_id,
            html_url=out.get("html_url") or f"https://github.com/{repo_id}",
            description=out.get("description"),
            stargazers_count=out.get("stargazers_count") or 0,
            forks_count=out.get("forks_count") or 0,
            open_issues_count=out.get("open_issues_count") or 0,
            pushed_at=_parse_timestamp(out.get("pushed_at") or out.get("updated_at")),
            default_branch=out.get("default_branch") or "main",
        )

    async def get_repo_events(self, repo_id: str) -> list[RawEvent]:
        """
        Fetch the latest page of network events for a repository.

        Returns an empty list when unchanged; callers treat that as "nothing new".
        """
        out = await self.fetch_resource(
            f"{self.BASE_URL}/networks/{repo_id}/events?per_page={self.EVENTS_PER_PAGE}",
            (ResourceClass.EVENTS, repo_id),
        )
        if out is UNCHANGED:
            return []
        if not isinstance(out, list):
            raise UpstreamError(f"Unexpected events payload for {repo_id}")

        events = []
        for record in out:
            if not isinstance(record, dict):
                logger.warning(f"Skipping non-object event record for {repo_id}")
                continue
            events.append(RawEvent(repo=repo_id, data=record))
        return events

    async def get_commit_stat(self, repo_id: str, sha: str) -> CommitStat | None:
        """
        Fetch line-level stats for a single commit.

        files_changed counts the returned file list, falling back to
        `stats.total` when the list is absent.

        Returns:
            CommitStat, or None when unchanged
        """
        out = await self.fetch_resource(
            f"{self.BASE_URL}/repos/{repo_id}/commits/{sha}",
            (ResourceClass.COMMITS, f"{repo_id}@{sha}"),
        )
        if out is UNCHANGED:
            return None
        if not isinstance(out, dict):
            raise UpstreamError(f"Unexpected commit payload for {repo_id}@{sha}")

        stats = out.get("stats") or {}
        files = out.get("files")
        files_changed = len(files) if isinstance(files, list) else stats.get("total", 0)
        return CommitStat(
            sha=sha,
            additions=stats.get("additions", 0),
            deletions=stats.get("deletions", 0),
            files_changed=files_changed,
        )
