from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from repowatch.api.deps import get_github, get_scheduler, get_store
from repowatch.services.feed import feed_with_latest_stats
from repowatch.services.github.client import GitHubClient
from repowatch.services.scheduler import UpdateScheduler
from repowatch.services.store import RepoStore

router = APIRouter(tags=["dashboard"])


@router.get("/summary")
async def get_summary(
    store: RepoStore = Depends(get_store),
    github: GitHubClient = Depends(get_github),
    scheduler: UpdateScheduler | None = Depends(get_scheduler),
) -> dict[str, Any]:
    """Cached metadata for every repository plus the current upstream budget."""
    return {
        "repos": [asdict(info) for info in store.repo_infos()],
        "rate_limit": asdict(github.rate_budget),
        "scheduler": scheduler.state.value if scheduler else None,
    }


@router.get("/feed")
async def get_feed(store: RepoStore = Depends(get_store)) -> dict[str, Any]:
    """
    The global activity feed, newest first.

    Commit items pick up stats cached after the last feed rebuild.
    """
    return {"items": [asdict(item) for item in feed_with_latest_stats(store)]}


@router.get("/quality", response_model=None)
async def get_quality(
    repo: str | None = Query(None, description="Return the full report for one repository"),
    store: RepoStore = Depends(get_store),
) -> dict[str, Any] | JSONResponse:
    """
    Code-quality reports.

    Without `repo`: every report minus its markdown body, best score first.
    With `repo`: that repository's full report, or 404.
    """
    if repo:
        report = store.get_quality_report(repo)
        if report is None:
            return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "not_found"})
        return asdict(report)

    reports = sorted(
        store.quality_reports(),
        key=lambda r: r.score if r.score is not None else -1,
        reverse=True,
    )
    items = []
    for report in reports:
        data = asdict(report)
        data.pop("markdown")
        items.append(data)
    return {"items": items}
