"""Per-conversation turn serialization."""

from __future__ import annotations

import asyncio
import logging
import math
from contextlib import asynccontextmanager
from typing import AsyncIterator

from orderflow.core.errors import TurnInProgressError

logger = logging.getLogger("orderflow.concurrency")


class ConversationLocks:
    """Hand out one ``asyncio.Lock`` per conversation id.

    Turns for the same conversation queue behind each other for up to ``wait_timeout``
    seconds, after which the caller is told to retry. Independent conversations never
    contend. Locks live in process memory, so multi-worker deployments need sticky routing
    by conversation id.
    """

    def __init__(self, wait_timeout: float = 20.0) -> None:
        self.wait_timeout = wait_timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def is_busy(self, conversation_id: str) -> bool:
        lock = self._locks.get(conversation_id)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._waiters[conversation_id] = self._waiters.get(conversation_id, 0) + 1
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.wait_timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Turn lock wait timed out for conversation %s", conversation_id)
            raise TurnInProgressError(
                conversation_id, retry_after=max(1, math.ceil(self.wait_timeout / 4))
            ) from exc
        finally:
            self._waiters[conversation_id] -= 1

        try:
            yield
        finally:
            lock.release()
            if not self._waiters.get(conversation_id) and not lock.locked():
                self._locks.pop(conversation_id, None)
                self._waiters.pop(conversation_id, None)
