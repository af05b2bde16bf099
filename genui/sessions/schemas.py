"""
schemas.py — Session Pydantic v2 data contracts.

Defines:
  - ChatMessage        (single conversation turn)
  - SessionState       (fields shared by the durable record and the cache mirror)
  - SessionRecord      (durable view — adds owner and timestamps)
  - GenerateRequest, RenameRequest, CreateSessionRequest  (incoming bodies)
  - SessionResponse, SessionSummary                       (outgoing views)
  - ErrorDetail, ErrorBody, ErrorResponse                 (cross-cutting error envelope)
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Chat models
# ---------------------------------------------------------------------------

class ChatMessage(BaseModel):
    """Single turn in a session's conversation history."""
    model_config = ConfigDict(extra="ignore")

    role: Literal["user", "assistant"]
    content: str
    created_at: str = Field(default_factory=utc_now_iso)  # ISO 8601: set server-side


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------

class SessionState(BaseModel):
    """
    The mutable part of a session — exactly what the Redis mirror carries.

    code_body is the JSX fragment; style_body is the stylesheet text.
    chat_history order is conversation order and is never rearranged.
    """
    id: str
    name: str
    code_body: str
    style_body: str
    chat_history: List[ChatMessage] = Field(default_factory=list)


class SessionRecord(SessionState):
    """Durable session as read from PostgreSQL."""
    owner_id: str
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class CreateSessionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, max_length=120)


class GenerateRequest(BaseModel):
    """
    Incoming generation request.

    target_element_id restricts the edit to the element carrying
    data-gen-id="<target_element_id>" (a targeted edit).
    """
    model_config = ConfigDict(extra="forbid")

    prompt: str = Field(
        ...,
        min_length=1,
        max_length=4000,
        description="Natural-language description of the change to apply.",
    )
    target_element_id: Optional[str] = Field(
        default=None,
        max_length=120,
        description="data-gen-id of the element the edit is restricted to.",
    )


class RenameRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=120)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class SessionResponse(BaseModel):
    """
    Session view returned by every session operation.

    jsx_body: the stored fragment.
    jsx_code: the fragment wrapped in the GeneratedComponent shell and formatted.
    created_at / updated_at are absent when the view was served from the cache mirror.
    """
    id: str
    name: str
    jsx_body: str
    jsx_code: str
    css_code: str
    chat_history: List[ChatMessage]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SessionSummary(BaseModel):
    """Row in the session list."""
    id: str
    name: str
    message_count: int
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Error response models: used by main.py exception handlers (cross-cutting)
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single field-level validation or business-rule error."""
    model_config = ConfigDict(extra="forbid")

    field: Optional[str] = None   # Dot-notation field path, e.g. "prompt"
    issue: str


class ErrorBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: str                                      # VALIDATION_ERROR, NOT_FOUND, etc.
    message: str
    details: List[ErrorDetail] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """
    Standard error response format for all genui endpoints.

    Structure: {"error": {"code": "...", "message": "...", "details": [...]}}
    """
    model_config = ConfigDict(extra="forbid")

    error: ErrorBody


__all__ = [
    "ChatMessage",
    "SessionState",
    "SessionRecord",
    "CreateSessionRequest",
    "GenerateRequest",
    "RenameRequest",
    "SessionResponse",
    "SessionSummary",
    "ErrorDetail",
    "ErrorBody",
    "ErrorResponse",
]
