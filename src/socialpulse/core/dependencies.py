"""FastAPI dependencies for dependency injection."""

from __future__ import annotations

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from socialpulse.agent import AgentState
from socialpulse.config import Settings, get_settings
from socialpulse.ingestion.engine import IngestionEngine
from socialpulse.processing.events.calendar import EventCalendarService
from socialpulse.processing.orchestrator import BatchOrchestrator
from socialpulse.processing.sentiment.synthesizer import SynthesisEngine
from socialpulse.providers.base import TickerDirectory
from socialpulse.storage.posts import PostStore

# Type aliases for cleaner dependency injection
SettingsDep = Annotated[Settings, Depends(get_settings)]


async def get_agent_state(request: Request) -> AgentState:
    """Get AgentState from app.state (set during lifespan)."""
    return request.app.state.agent  # type: ignore[no-any-return]


AgentStateDep = Annotated[AgentState, Depends(get_agent_state)]


def get_ingestion(state: AgentStateDep) -> IngestionEngine:
    return state.ingestion


def get_synthesis(state: AgentStateDep) -> SynthesisEngine:
    return state.synthesis


def get_events(state: AgentStateDep) -> EventCalendarService:
    return state.events


def get_orchestrator(state: AgentStateDep) -> BatchOrchestrator:
    return state.orchestrator


def get_tickers(state: AgentStateDep) -> TickerDirectory:
    return state.tickers


def get_post_store(state: AgentStateDep) -> PostStore:
    return state.posts


def verify_cron_secret(
    settings: SettingsDep,
    x_cron_secret: Annotated[str | None, Header()] = None,
) -> None:
    """Reject the request unless X-Cron-Secret matches the configured secret."""
    expected = settings.cron_secret.get_secret_value() if settings.cron_secret else None
    if not expected or not x_cron_secret or not secrets.compare_digest(x_cron_secret, expected):
        raise HTTPException(status_code=401, detail="Invalid cron secret")


def get_user_id(x_user_id: Annotated[str | None, Header()] = None) -> str | None:
    """Caller identity forwarded by the host application's auth layer."""
    return x_user_id or None


# Annotated dependencies for use in route handlers
IngestionDep = Annotated[IngestionEngine, Depends(get_ingestion)]
SynthesisDep = Annotated[SynthesisEngine, Depends(get_synthesis)]
EventCalendarDep = Annotated[EventCalendarService, Depends(get_events)]
OrchestratorDep = Annotated[BatchOrchestrator, Depends(get_orchestrator)]
TickerDirectoryDep = Annotated[TickerDirectory, Depends(get_tickers)]
PostStoreDep = Annotated[PostStore, Depends(get_post_store)]
UserIdDep = Annotated[str | None, Depends(get_user_id)]
CronSecret = Depends(verify_cron_secret)
