"""
models/session.py — SQLAlchemy ORM model for component-generation sessions.

Table: component_sessions

Dual-store pattern:
  - PostgreSQL (here):  authoritative session record
  - Redis (optional):   TTL-bounded mirror used while a session is active
                        (see sessions/coordinator.py)

code_body holds the JSX fragment only. The `const GeneratedComponent = () => ...`
wrapper is rendered on the way out and never stored.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from genui.database import Base

DEFAULT_SESSION_NAME = "New Component"

DEFAULT_CODE_BODY = """<div style={{
  display: 'flex',
  alignItems: 'center',
  justifyContent: 'center',
  height: '100%',
  color: '#9CA3AF',
  fontFamily: 'sans-serif',
  fontSize: '1.25rem',
  textAlign: 'center',
  padding: '1rem'
}}>
  Hello! Describe the component you want to build in the chat.
</div>"""

DEFAULT_STYLE_BODY = "/* Your component CSS will appear here */"


class SessionORM(Base):
    """
    ORM model for one component-generation conversation.

    owner_id scopes every read and write — queries always filter on (owner_id, id).
    chat_history: ordered list of {role, content, created_at} dicts, append-only.
    """
    __tablename__ = "component_sessions"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Session UUID — matches the Redis key 'component_session:{owner}:{id}'",
    )
    owner_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        comment="Owning user identifier",
    )
    name: Mapped[str] = mapped_column(
        String(120),
        nullable=False,
        default=DEFAULT_SESSION_NAME,
    )
    chat_history: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=list,
        comment="Conversation turns in insertion order",
    )
    code_body: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=DEFAULT_CODE_BODY,
        comment="JSX fragment (single root element or fragment)",
    )
    style_body: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=DEFAULT_STYLE_BODY,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
