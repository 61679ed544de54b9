import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles

from repowatch.api.router import api_router
from repowatch.config import settings
from repowatch.services.code_audit import CodeAuditScheduler
from repowatch.services.github import GitHubClient, close_github_client
from repowatch.services.scheduler import UpdateScheduler
from repowatch.services.store import RepoStore


def setup_logging() -> None:
    """Configure application logging."""
    log_format = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
    date_format = "%H:%M:%S"

    logging.basicConfig(
        level=logging.INFO,
        format=log_format,
        datefmt=date_format,
        stream=sys.stdout,
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: build the cache, start polling, tear down on exit."""
    setup_logging()

    store = RepoStore(
        commit_stats_max_entries=settings.commit_stats_max_entries,
        max_quality_reports=settings.code_audit_max_reports,
    )
    github = GitHubClient(token=settings.github_token)
    scheduler = UpdateScheduler(settings, store, github)
    auditor = CodeAuditScheduler(settings, store)

    app.state.store = store
    app.state.github = github
    app.state.scheduler = scheduler

    await scheduler.start()
    auditor.start()

    logger.info(f"repowatch running on port {settings.port}")
    logger.info(
        f"Watching {len(settings.repos)} repos: {', '.join(r.name for r in settings.repos)}"
    )
    yield

    auditor.stop()
    scheduler.stop()
    await close_github_client()
    logger.info("repowatch shutting down")


app = FastAPI(
    title="repowatch",
    description="Read-only dashboard over GitHub repository activity",
    version="0.1.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log failed requests; health checks and static assets stay quiet."""
    response = await call_next(request)
    if response.status_code >= 400 and request.url.path != "/healthz":
        logger.info(f"{request.method} {request.url.path} → {response.status_code}")
    return response


app.include_router(api_router)


@app.get("/healthz", response_class=PlainTextResponse)
async def health_check() -> str:
    """Health check endpoint."""
    return "ok"


if Path(settings.static_dir).is_dir():
    app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")
