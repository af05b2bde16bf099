"""
coordinator.py — keeps the Redis session mirror consistent with PostgreSQL.

Protocol:
  activate            durable → mirror (full write, TTL reset)
  resolve_for_update  mirror if complete, else durable + re-activate
  commit              mirror only (changed fields, TTL refresh); durable when caching is off
  persist             mirror → durable (the only durability path after cache-side commits)
  invalidate          drop the mirror (delete)
  rename_mirror       patch the name on an existing mirror (never creates one)

Caching is enabled by constructing the coordinator with a Redis client; with
cache=None every operation goes straight to the durable store. Callers never
branch on cache availability themselves.

A mirror missing any of MIRROR_FIELDS, carrying undecodable history, or whose
id does not match its key is treated as a miss and never surfaced.
"""
import json
import logging
from typing import Any, Optional

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from genui import store
from genui.cache import MIRROR_FIELDS, SESSION_TTL, make_session_key
from genui.errors import SessionNotFoundError
from genui.sessions.schemas import ChatMessage, SessionRecord, SessionState

logger = logging.getLogger(__name__)


def _serialize_field(field: str, value: Any) -> str:
    if field == "chat_history":
        return json.dumps([
            m.model_dump() if isinstance(m, ChatMessage) else dict(m)
            for m in value
        ])
    return str(value)


class CacheCoordinator:
    """Owns every read/write of a session on behalf of the request handlers."""

    def __init__(
        self,
        db: AsyncSession,
        cache: Optional[aioredis.Redis] = None,
        ttl_seconds: int = SESSION_TTL,
    ):
        self._db = db
        self._cache = cache
        self._ttl = ttl_seconds

    @property
    def cache_enabled(self) -> bool:
        return self._cache is not None

    # ------------------------------------------------------------------
    # Mirror helpers
    # ------------------------------------------------------------------

    async def _write_mirror(self, owner_id: str, state: SessionState) -> None:
        key = make_session_key(owner_id, state.id)
        mapping = {field: _serialize_field(field, getattr(state, field)) for field in MIRROR_FIELDS}
        async with self._cache.pipeline(transaction=True) as pipe:
            pipe.hset(key, mapping=mapping)
            pipe.expire(key, self._ttl)
            await pipe.execute()

    async def _read_mirror(self, owner_id: str, session_id: str) -> Optional[SessionState]:
        key = make_session_key(owner_id, session_id)
        raw = await self._cache.hgetall(key)
        if not raw:
            return None

        missing = [f for f in MIRROR_FIELDS if f not in raw]
        if missing:
            logger.warning(
                "Incomplete session mirror owner_id=%s session_id=%s missing=%s",
                owner_id, session_id, missing,
            )
            return None
        if raw["id"] != session_id:
            logger.warning("Session mirror id mismatch owner_id=%s session_id=%s", owner_id, session_id)
            return None

        try:
            history = [ChatMessage.model_validate(m) for m in json.loads(raw["chat_history"])]
        except (ValueError, TypeError):
            logger.warning(
                "Undecodable chat history in session mirror owner_id=%s session_id=%s",
                owner_id, session_id,
            )
            return None

        return SessionState(
            id=raw["id"],
            name=raw["name"],
            code_body=raw["code_body"],
            style_body=raw["style_body"],
            chat_history=history,
        )

    async def _load_durable(self, owner_id: str, session_id: str) -> SessionRecord:
        record = await store.find_session(self._db, owner_id, session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        return record

    # ------------------------------------------------------------------
    # Protocol
    # ------------------------------------------------------------------

    async def activate(self, owner_id: str, session_id: str) -> SessionRecord:
        """
        Load the durable session and, when caching is enabled, mirror it with a fresh TTL.
        Always returns the durable view.
        """
        record = await self._load_durable(owner_id, session_id)
        if self.cache_enabled:
            await self._write_mirror(owner_id, record)
            logger.info(
                "Session activated owner_id=%s session_id=%s ttl=%ds",
                owner_id, session_id, self._ttl,
            )
        return record

    async def resolve_for_update(self, owner_id: str, session_id: str) -> SessionState:
        """Current session state: a complete mirror if there is one, otherwise the durable record."""
        if not self.cache_enabled:
            return await self._load_durable(owner_id, session_id)

        state = await self._read_mirror(owner_id, session_id)
        if state is not None:
            logger.debug("Session mirror hit owner_id=%s session_id=%s", owner_id, session_id)
            return state

        logger.info("Session mirror miss owner_id=%s session_id=%s — reactivating", owner_id, session_id)
        record = await self.activate(owner_id, session_id)
        return SessionState(**record.model_dump(include=set(MIRROR_FIELDS)))

    async def commit(self, owner_id: str, session_id: str, fields: dict[str, Any]) -> None:
        """
        Write changed fields.

        Cache enabled: mirror only, TTL refreshed; the durable store is untouched.
        Cache disabled: durable update, committed before returning.
        A mirror that vanished since resolve_for_update is not recreated from
        partial fields; the update goes to the durable store instead.
        """
        if not self.cache_enabled:
            await self._commit_durable(owner_id, session_id, fields)
            return

        key = make_session_key(owner_id, session_id)
        mapping = {field: _serialize_field(field, value) for field, value in fields.items()}
        # EXISTS runs in the same MULTI as the write, so expiry cannot slip in between
        async with self._cache.pipeline(transaction=True) as pipe:
            pipe.exists(key)
            pipe.hset(key, mapping=mapping)
            pipe.expire(key, self._ttl)
            existed, _, _ = await pipe.execute()

        if not existed:
            await self._cache.delete(key)
            logger.warning(
                "Session mirror expired before commit owner_id=%s session_id=%s — writing durable store",
                owner_id, session_id,
            )
            await self._commit_durable(owner_id, session_id, fields)
            return

        logger.info(
            "Session mirror committed owner_id=%s session_id=%s fields=%s",
            owner_id, session_id, sorted(fields),
        )

    async def _commit_durable(self, owner_id: str, session_id: str, fields: dict[str, Any]) -> None:
        """
        Update and commit the durable row. Committing here, while the caller
        still holds the session lock, lets the next generation read this one.
        """
        updated = await store.update_session(self._db, owner_id, session_id, fields)
        if updated is None:
            raise SessionNotFoundError(session_id)
        await self._db.commit()

    async def persist(self, owner_id: str, session_id: str) -> SessionRecord:
        """
        Copy the full mirror into the durable store in one update.
        Without a cache there is nothing to copy; the durable record is returned as-is.
        """
        if not self.cache_enabled:
            return await self._load_durable(owner_id, session_id)

        state = await self._read_mirror(owner_id, session_id)
        if state is None:
            raise SessionNotFoundError(session_id)

        fields = state.model_dump(include={"name", "code_body", "style_body", "chat_history"})
        record = await store.update_session(self._db, owner_id, session_id, fields)
        if record is None:
            raise SessionNotFoundError(session_id)
        logger.info("Session persisted owner_id=%s session_id=%s", owner_id, session_id)
        return record

    async def invalidate(self, owner_id: str, session_id: str) -> None:
        """Remove the mirror. Idempotent."""
        if not self.cache_enabled:
            return
        removed = await self._cache.delete(make_session_key(owner_id, session_id))
        logger.info(
            "Session mirror invalidated owner_id=%s session_id=%s removed=%d",
            owner_id, session_id, removed,
        )

    async def rename_mirror(self, owner_id: str, session_id: str, name: str) -> Optional[SessionState]:
        """
        Patch the mirrored name if a mirror exists and return the patched mirror.
        Returns None (and leaves no mirror behind) when there is nothing to patch.
        """
        if not self.cache_enabled:
            return None
        key = make_session_key(owner_id, session_id)
        async with self._cache.pipeline(transaction=True) as pipe:
            pipe.exists(key)
            pipe.hset(key, "name", name)
            existed, _ = await pipe.execute()
        if not existed:
            await self._cache.delete(key)
            return None
        return await self._read_mirror(owner_id, session_id)
