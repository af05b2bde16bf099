"""
Session HTTP routes — POST   /api/sessions
                      GET    /api/sessions
                      GET    /api/sessions/{session_id}
                      PATCH  /api/sessions/{session_id}
                      DELETE /api/sessions/{session_id}
                      POST   /api/sessions/{session_id}/activate
                      POST   /api/sessions/{session_id}/generate
                      POST   /api/sessions/{session_id}/persist

The authenticating gateway forwards the caller's identity in X-User-Id; this
service trusts it and scopes every operation by it.
app.state resources (redis, mistral, generation_semaphore, retry_policy,
session_locks, formatter) are set in main.py lifespan.
"""
import logging

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from genui.config import settings
from genui.database import get_db
from genui.generation.llm_service import GenerationInvoker
from genui.sessions.coordinator import CacheCoordinator
from genui.sessions.schemas import (
    CreateSessionRequest,
    GenerateRequest,
    RenameRequest,
    SessionResponse,
    SessionSummary,
)
from genui.sessions.service import SessionOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/sessions", tags=["sessions"])


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

async def get_owner_id(
    x_user_id: str = Header(..., min_length=1, max_length=64, alias="X-User-Id"),
) -> str:
    return x_user_id


async def get_orchestrator(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> SessionOrchestrator:
    state = request.app.state
    coordinator = CacheCoordinator(db, state.redis, ttl_seconds=settings.session_cache_ttl)
    invoker = GenerationInvoker(
        state.mistral,
        state.generation_semaphore,
        retry_policy=state.retry_policy,
        model=settings.mistral_model,
        temperature=settings.generation_temperature,
    )
    return SessionOrchestrator(
        db,
        coordinator,
        invoker,
        formatter=state.formatter,
        locks=state.session_locks,
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.post("", status_code=201, response_model=SessionResponse)
async def create_session(
    body: CreateSessionRequest,
    owner_id: str = Depends(get_owner_id),
    sessions: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionResponse:
    return await sessions.create_session(owner_id, body.name)


@router.get("", response_model=list[SessionSummary])
async def list_sessions(
    owner_id: str = Depends(get_owner_id),
    sessions: SessionOrchestrator = Depends(get_orchestrator),
) -> list[SessionSummary]:
    return await sessions.list_sessions(owner_id)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    sessions: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionResponse:
    return await sessions.get_session(owner_id, session_id)


@router.post("/{session_id}/activate", response_model=SessionResponse)
async def activate_session(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    sessions: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionResponse:
    """Load the session into the cache (when configured) and return it."""
    return await sessions.activate_session(owner_id, session_id)


@router.post("/{session_id}/generate", response_model=SessionResponse)
async def generate(
    session_id: str,
    body: GenerateRequest,
    owner_id: str = Depends(get_owner_id),
    sessions: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionResponse:
    """
    Apply a natural-language change to the session's component.

    With caching enabled the result lives in the cache until /persist is called;
    without it the result is written to PostgreSQL immediately.
    """
    return await sessions.generate(owner_id, session_id, body.prompt, body.target_element_id)


@router.patch("/{session_id}", response_model=SessionResponse)
async def rename_session(
    session_id: str,
    body: RenameRequest,
    owner_id: str = Depends(get_owner_id),
    sessions: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionResponse:
    return await sessions.rename_session(owner_id, session_id, body.name)


@router.delete("/{session_id}")
async def delete_session(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    sessions: SessionOrchestrator = Depends(get_orchestrator),
) -> dict:
    await sessions.delete_session(owner_id, session_id)
    logger.info("Session delete request owner_id=%s session_id=%s", owner_id, session_id)
    return {"message": "Session deleted successfully"}


@router.post("/{session_id}/persist", response_model=SessionResponse)
async def persist_session(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    sessions: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionResponse:
    """Copy the cached session into PostgreSQL."""
    return await sessions.persist_session(owner_id, session_id)
