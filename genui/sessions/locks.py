"""
locks.py — per-key asyncio locks.

Generation requests for the same session are serialized inside one worker so
two concurrent edits cannot both read the same prior state and silently drop
one another. Different sessions never wait on each other. Locks are dropped
once nobody holds or waits for them.

Created once in main.py lifespan (app.state.session_locks). Does not cover
multiple worker processes; those remain last-commit-wins.
"""
import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager


class KeyedLock:
    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
