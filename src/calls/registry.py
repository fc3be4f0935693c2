from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from calls.session import CallSession

LOGGER = logging.getLogger(__name__)


class SessionRegistry:
    """Process-wide map from call id to its live session.

    Note: This is a single-process store. Calls are pinned to the worker that
    accepted their media stream, so no cross-process sharing is needed.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._sessions: dict[str, CallSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._sessions

    async def get(self, call_id: str) -> CallSession | None:
        async with self._lock:
            return self._sessions.get(call_id)

    async def create(self, call_id: str, factory: Callable[[], CallSession]) -> CallSession:
        """Register a new session, ending any previous session for the same call."""

        async with self._lock:
            previous = self._sessions.pop(call_id, None)
            session = factory()
            self._sessions[call_id] = session

        if previous is not None:
            LOGGER.warning("call=%s replacing existing session", call_id)
            await previous.end()

        LOGGER.info("call=%s session created (%d active)", call_id, len(self._sessions))
        return session

    async def remove(self, call_id: str) -> bool:
        """End and forget the session for ``call_id``; unknown ids are ignored."""

        async with self._lock:
            session = self._sessions.pop(call_id, None)

        if session is None:
            return False
        await session.end()
        return True

    async def discard(self, session: CallSession) -> None:
        """End ``session`` and unregister it only if it is still the current one."""

        async with self._lock:
            if self._sessions.get(session.call_id) is session:
                del self._sessions[session.call_id]
        await session.end()

    async def close_all(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()

        for session in sessions:
            await session.end()
        if sessions:
            LOGGER.info("Closed %d active sessions", len(sessions))
