"""
models/__init__.py — imports all ORM models so Alembic's env.py
sees them via Base.metadata when generating migrations.
"""
from genui.models.session import SessionORM

__all__ = ["SessionORM"]
