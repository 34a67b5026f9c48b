"""FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from socialpulse.agent import agent_lifespan
from socialpulse.api import api_router
from socialpulse.config import get_settings
from socialpulse.core.dependencies import AgentStateDep
from socialpulse.core.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: starts the pipeline and scheduler alongside the HTTP server."""
    settings = get_settings()
    setup_logging(settings)

    async with agent_lifespan(settings) as state:
        app.state.agent = state
        logger.info("SocialPulse ready", env=settings.env)
        yield


app = FastAPI(
    title="SocialPulse",
    description="StockTwits ingestion, LLM sentiment synthesis and event calendar",
    version="0.1.0",
    lifespan=lifespan,
)

# Infrastructure (no prefix, not versioned)


@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness check: always ok if process is running."""
    return {"status": "ok"}


@app.get("/ready")
async def ready(state: AgentStateDep) -> dict[str, str]:
    """Readiness check: verifies the database and scheduler are up."""
    checks: dict[str, str] = {}
    if state.db is None:
        checks["db"] = "disabled"
    else:
        try:
            await state.db.fetchval("SELECT 1")
            checks["db"] = "ok"
        except Exception:
            checks["db"] = "error"
    checks["scheduler"] = "ok" if state.scheduler and state.scheduler.running else "error"
    status = "ready" if all(v != "error" for v in checks.values()) else "not_ready"
    return {"status": status, **checks}


# Domain API
app.include_router(api_router, prefix="/api/v1")
