"""
cache.py — Redis connection layer for genui.

Namespace conventions:
  component_session:{owner_id}:{session_id}  → session mirror hash   TTL 1h (3600s)

Design:
  - Uses redis.asyncio (async client, part of redis-py 5.x — do NOT use aioredis separately)
  - Pool created once in lifespan, stored on app.state.redis (None when REDIS_URL is unset)
  - The mirror protocol itself lives in sessions/coordinator.py; this module only
    owns connection setup, key layout and the mirror field names
"""
import logging

import redis.asyncio as aioredis

from genui.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# TTL constants (seconds)
# ---------------------------------------------------------------------------
SESSION_TTL: int = settings.session_cache_ttl   # default 1 hour, refreshed on every activate/commit

# ---------------------------------------------------------------------------
# Key prefix constants
# ---------------------------------------------------------------------------
SESSION_PREFIX = "component_session"

# Every mirror must carry all of these; anything less is a miss
MIRROR_FIELDS: tuple[str, ...] = ("id", "name", "code_body", "style_body", "chat_history")


def make_session_key(owner_id: str, session_id: str) -> str:
    """Build Redis key for a session mirror: component_session:{owner_id}:{session_id}"""
    return f"{SESSION_PREFIX}:{owner_id}:{session_id}"


# ---------------------------------------------------------------------------
# Pool factory: called once in lifespan
# ---------------------------------------------------------------------------

async def create_redis_pool() -> aioredis.Redis | None:
    """
    Create and return an async Redis connection pool, or None when caching is disabled.
    Verifies connectivity with PING before returning.
    """
    if not settings.cache_enabled:
        logger.info("REDIS_URL not set, session caching is disabled")
        return None

    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    await client.ping()
    logger.info("Redis connection pool established at %s", settings.redis_url)
    return client
