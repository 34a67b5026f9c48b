"""Top-level API router. Mounts all domain routers under /api/v1."""

from fastapi import APIRouter

from socialpulse.api.routes import jobs, stocktwits

api_router = APIRouter()
api_router.include_router(stocktwits.router, prefix="/stocktwits", tags=["stocktwits"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
