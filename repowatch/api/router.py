from fastapi import APIRouter

from repowatch.api.v1 import dashboard

api_router = APIRouter(prefix="/api")

api_router.include_router(dashboard.router)
