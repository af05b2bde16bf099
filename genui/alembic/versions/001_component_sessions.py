"""component_sessions

Revision ID: 001_component_sessions
Revises:
Create Date: 2026-10-19 00:00:00.000000 UTC

Creates the component_sessions table: one row per component-generation
conversation, scoped by owner_id. code_body stores the JSX fragment only.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_component_sessions"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "component_sessions",
        sa.Column("id", sa.String(length=36), nullable=False, comment="Session UUID — matches the Redis key 'component_session:{owner}:{id}'"),
        sa.Column("owner_id", sa.String(length=64), nullable=False, comment="Owning user identifier"),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("chat_history", postgresql.JSONB(astext_type=sa.Text()), nullable=False, comment="Conversation turns in insertion order"),
        sa.Column("code_body", sa.Text(), nullable=False, comment="JSX fragment (single root element or fragment)"),
        sa.Column("style_body", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_component_sessions_owner_id"), "component_sessions", ["owner_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_component_sessions_owner_id"), table_name="component_sessions")
    op.drop_table("component_sessions")
