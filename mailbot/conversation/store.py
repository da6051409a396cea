"""In-memory conversation store with per-identifier single-flight locks.

State lives for the process lifetime only. Every read-modify-write of one
identifier's state must happen inside ``store.lock(identifier)``; locks are
FIFO, so events are processed in the order they started waiting.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mailbot.conversation.state import ConversationState

logger = logging.getLogger(__name__)


class ConversationStore:
    def __init__(self, ttl_s: float = 0):
        self._ttl_s = ttl_s
        self._states: dict[str, ConversationState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._states)

    def _expired(self, state: ConversationState) -> bool:
        if self._ttl_s <= 0:
            return False
        return time.time() - state.last_activity_at > self._ttl_s

    def get(self, identifier: str) -> ConversationState | None:
        state = self._states.get(identifier)
        if state is not None and self._expired(state):
            logger.info("Conversation %s expired in phase %s", identifier, state.phase.value)
            self.remove(identifier)
            return None
        return state

    def get_or_create(self, identifier: str) -> ConversationState:
        self.purge_expired()
        state = self.get(identifier)
        if state is None:
            state = ConversationState(identifier=identifier)
            self._states[identifier] = state
        return state

    def set(self, identifier: str, state: ConversationState) -> None:
        self._states[identifier] = state

    def remove(self, identifier: str) -> None:
        self._states.pop(identifier, None)
        lock = self._locks.get(identifier)
        if lock is not None and not lock.locked() and not self._waiters.get(identifier):
            del self._locks[identifier]

    def purge_expired(self) -> int:
        """Drop expired states and their idle locks. Returns how many were dropped."""
        if self._ttl_s <= 0:
            return 0
        expired = [i for i, state in self._states.items() if self._expired(state)]
        for identifier in expired:
            self.remove(identifier)
        if expired:
            logger.info("Purged %d expired conversations", len(expired))
        return len(expired)

    def clear(self) -> None:
        self._states.clear()

    @asynccontextmanager
    async def lock(self, identifier: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(identifier, asyncio.Lock())
        self._waiters[identifier] = self._waiters.get(identifier, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._waiters[identifier] - 1
            if remaining:
                self._waiters[identifier] = remaining
            else:
                del self._waiters[identifier]
                if identifier not in self._states and not lock.locked():
                    self._locks.pop(identifier, None)
