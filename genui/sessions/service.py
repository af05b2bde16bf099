"""
service.py — session operations exposed to the HTTP layer.

SessionOrchestrator composes the coordinator (state), the invoker (model call
+ repair) and the formatter. Every operation is scoped by owner_id.

generate() state machine:
  Idle → HistoryAppendedUser → Invoking → Repaired → Formatted → Committed
                                  └─ GenerationUnavailableError → Failed
The user turn is appended to an in-memory copy of the history only; on
failure that copy is dropped, so nothing half-updated is ever committed.
Success appends exactly one user and one assistant turn.
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from genui import store
from genui.errors import GenerationUnavailableError, SessionNotFoundError, ValidationFailure
from genui.generation.formatter import CodeFormatter, CodeKind, extract_fragment
from genui.generation.llm_service import GenerationInvoker
from genui.sessions.coordinator import CacheCoordinator
from genui.sessions.locks import KeyedLock
from genui.sessions.schemas import (
    ChatMessage,
    SessionRecord,
    SessionResponse,
    SessionState,
    SessionSummary,
)

logger = logging.getLogger(__name__)

ASSISTANT_ACKNOWLEDGEMENT = "Sure, I've updated the code for you."


class SessionOrchestrator:
    def __init__(
        self,
        db: AsyncSession,
        coordinator: CacheCoordinator,
        invoker: GenerationInvoker,
        formatter: Optional[CodeFormatter] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self._db = db
        self._coordinator = coordinator
        self._invoker = invoker
        self._formatter = formatter or CodeFormatter()
        self._locks = locks or KeyedLock()

    def _view(self, state: SessionState) -> SessionResponse:
        body = extract_fragment(state.code_body)
        is_record = isinstance(state, SessionRecord)
        return SessionResponse(
            id=state.id,
            name=state.name,
            jsx_body=body,
            jsx_code=self._formatter.render_component(body),
            css_code=state.style_body,
            chat_history=list(state.chat_history),
            created_at=state.created_at if is_record else None,
            updated_at=state.updated_at if is_record else None,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_session(self, owner_id: str, name: Optional[str] = None) -> SessionResponse:
        record = await store.create_session(self._db, owner_id, (name or "").strip() or None)
        return self._view(record)

    async def list_sessions(self, owner_id: str) -> list[SessionSummary]:
        records = await store.list_sessions(self._db, owner_id)
        return [
            SessionSummary(
                id=r.id,
                name=r.name,
                message_count=len(r.chat_history),
                created_at=r.created_at,
                updated_at=r.updated_at,
            )
            for r in records
        ]

    async def get_session(self, owner_id: str, session_id: str) -> SessionResponse:
        """Durable view; unpersisted mirror edits are not included."""
        record = await store.find_session(self._db, owner_id, session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        return self._view(record)

    async def activate_session(self, owner_id: str, session_id: str) -> SessionResponse:
        record = await self._coordinator.activate(owner_id, session_id)
        return self._view(record)

    async def rename_session(self, owner_id: str, session_id: str, name: str) -> SessionResponse:
        new_name = name.strip()
        if not new_name:
            raise ValidationFailure("Name cannot be empty")

        record = await store.update_session(self._db, owner_id, session_id, {"name": new_name})
        if record is None:
            raise SessionNotFoundError(session_id)
        # Patch rather than drop the mirror: it may hold generations not yet persisted
        mirror = await self._coordinator.rename_mirror(owner_id, session_id, new_name)
        return self._view(mirror or record)

    async def delete_session(self, owner_id: str, session_id: str) -> None:
        deleted = await store.delete_session(self._db, owner_id, session_id)
        await self._coordinator.invalidate(owner_id, session_id)
        if not deleted:
            raise SessionNotFoundError(session_id)

    async def persist_session(self, owner_id: str, session_id: str) -> SessionResponse:
        record = await self._coordinator.persist(owner_id, session_id)
        return self._view(record)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        owner_id: str,
        session_id: str,
        prompt: str,
        target_element_id: Optional[str] = None,
    ) -> SessionResponse:
        text = prompt.strip()
        if not text:
            raise ValidationFailure("Prompt cannot be empty")
        target = (target_element_id or "").strip() or None

        async with self._locks.hold((owner_id, session_id)):
            state = await self._coordinator.resolve_for_update(owner_id, session_id)

            history = list(state.chat_history)
            history.append(ChatMessage(role="user", content=text))
            existing_code = extract_fragment(state.code_body)

            try:
                repaired = await self._invoker.invoke(
                    text,
                    existing_code,
                    state.style_body,
                    target_element_id=target,
                    session_id=session_id,
                )
            except GenerationUnavailableError:
                logger.error(
                    "Generation unavailable owner_id=%s session_id=%s — pending user turn discarded",
                    owner_id, session_id,
                )
                raise

            style_body = self._formatter.format(repaired.css_code, CodeKind.style)
            history.append(ChatMessage(role="assistant", content=ASSISTANT_ACKNOWLEDGEMENT))

            fields = {
                "code_body": repaired.jsx_body,
                "style_body": style_body,
                "chat_history": history,
            }
            await self._coordinator.commit(owner_id, session_id, fields)

        logger.info(
            "Generation committed owner_id=%s session_id=%s history_len=%d",
            owner_id, session_id, len(history),
        )
        return self._view(state.model_copy(update=fields))
