"""
store.py — Durable session store for genui.

The narrow contract the session layer needs from PostgreSQL:
  find, create, update, delete (+ list for the session picker).

Design principles:
  - All functions are async and accept an AsyncSession parameter
  - Every query filters on (owner_id, id) — a foreign session looks exactly like a missing one
  - No raw SQL: ORM-only queries
  - Uses flush() (not commit()) — the get_db() dependency commits or rolls back the request
    (CacheCoordinator commits durable generation writes itself, inside the session lock)
  - Logs only owner_id / session_id — never prompts or generated code
  - Returns SessionRecord (not ORM instances) so callers are persistence-agnostic
"""
import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from genui.models.session import (
    DEFAULT_CODE_BODY,
    DEFAULT_SESSION_NAME,
    DEFAULT_STYLE_BODY,
    SessionORM,
)
from genui.sessions.schemas import ChatMessage, SessionRecord

logger = logging.getLogger(__name__)

# Columns a caller may change through update()
UPDATABLE_FIELDS = frozenset({"name", "code_body", "style_body", "chat_history"})


def _to_record(orm: SessionORM) -> SessionRecord:
    return SessionRecord(
        id=orm.id,
        owner_id=orm.owner_id,
        name=orm.name,
        code_body=orm.code_body,
        style_body=orm.style_body,
        chat_history=[ChatMessage.model_validate(m) for m in orm.chat_history or []],
        created_at=orm.created_at,
        updated_at=orm.updated_at,
    )


def _to_column_value(field: str, value: Any) -> Any:
    if field == "chat_history":
        return [
            m.model_dump() if isinstance(m, ChatMessage) else dict(m)
            for m in value
        ]
    return value


async def _load(db: AsyncSession, owner_id: str, session_id: str) -> Optional[SessionORM]:
    result = await db.execute(
        select(SessionORM).where(
            SessionORM.id == session_id,
            SessionORM.owner_id == owner_id,
        )
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Session operations
# ---------------------------------------------------------------------------

async def find_session(
    db: AsyncSession,
    owner_id: str,
    session_id: str,
) -> Optional[SessionRecord]:
    """
    Retrieve a session owned by owner_id.
    Returns None if absent or owned by someone else (caller raises NotFound).
    """
    orm = await _load(db, owner_id, session_id)
    if orm is None:
        return None
    return _to_record(orm)


async def create_session(
    db: AsyncSession,
    owner_id: str,
    name: Optional[str] = None,
) -> SessionRecord:
    """Insert a fresh session with the starter fragment and an empty history."""
    orm = SessionORM(
        owner_id=owner_id,
        name=name or DEFAULT_SESSION_NAME,
        chat_history=[],
        code_body=DEFAULT_CODE_BODY,
        style_body=DEFAULT_STYLE_BODY,
    )
    db.add(orm)
    await db.flush()
    await db.refresh(orm)
    logger.info("Created session owner_id=%s session_id=%s", owner_id, orm.id)
    return _to_record(orm)


async def update_session(
    db: AsyncSession,
    owner_id: str,
    session_id: str,
    fields: dict[str, Any],
) -> Optional[SessionRecord]:
    """
    Apply a partial update. Only UPDATABLE_FIELDS are accepted.
    Returns the updated record, or None if the session is absent / not owned.
    """
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update session fields: {sorted(unknown)}")

    orm = await _load(db, owner_id, session_id)
    if orm is None:
        return None

    for field, value in fields.items():
        setattr(orm, field, _to_column_value(field, value))

    await db.flush()
    await db.refresh(orm)
    logger.info(
        "Updated session owner_id=%s session_id=%s fields=%s",
        owner_id, session_id, sorted(fields),
    )
    return _to_record(orm)


async def delete_session(
    db: AsyncSession,
    owner_id: str,
    session_id: str,
) -> bool:
    """Delete a session. Returns False if nothing matched (absent or not owned)."""
    orm = await _load(db, owner_id, session_id)
    if orm is None:
        return False
    await db.delete(orm)
    await db.flush()
    logger.info("Deleted session owner_id=%s session_id=%s", owner_id, session_id)
    return True


async def list_sessions(
    db: AsyncSession,
    owner_id: str,
) -> list[SessionRecord]:
    """All sessions for owner_id, newest first."""
    result = await db.execute(
        select(SessionORM)
        .where(SessionORM.owner_id == owner_id)
        .order_by(SessionORM.created_at.desc())
    )
    return [_to_record(orm) for orm in result.scalars().all()]
