from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from marketdesk.config.settings import settings
from marketdesk.session import DashboardSession

logger = logging.getLogger(__name__)

SESSION_COOKIE = "marketdesk_session"
SESSION_HEADER = "X-Dashboard-Session"


@dataclass
class _Entry:
    session: DashboardSession
    last_seen: float


class SessionRegistry:
    """One ``DashboardSession`` per viewer, keyed by an opaque session id.

    Unknown or missing ids get a freshly started session under a new id.
    Sessions idle for longer than the timeout are disposed on the next
    lookup.
    """

    def __init__(
        self,
        factory: Callable[[], DashboardSession] = DashboardSession,
        idle_timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = factory
        self._idle_timeout = (
            settings.session_idle_timeout_seconds
            if idle_timeout_seconds is None
            else idle_timeout_seconds
        )
        self._clock = clock
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    async def acquire(self, session_id: str | None) -> tuple[str, DashboardSession]:
        await self.evict_idle()
        now = self._clock()
        entry = self._entries.get(session_id) if session_id else None
        if entry is not None:
            entry.last_seen = now
            return session_id, entry.session

        new_id = uuid.uuid4().hex
        session = self._factory()
        session.start()
        self._entries[new_id] = _Entry(session=session, last_seen=now)
        logger.info(f"Opened dashboard session {new_id} ({len(self._entries)} active)")
        return new_id, session

    async def evict_idle(self) -> int:
        cutoff = self._clock() - self._idle_timeout
        expired = [key for key, entry in self._entries.items() if entry.last_seen < cutoff]
        for key in expired:
            await self.close(key)
        return len(expired)

    async def close(self, session_id: str) -> bool:
        entry = self._entries.pop(session_id, None)
        if entry is None:
            return False
        await entry.session.dispose()
        logger.info(f"Closed dashboard session {session_id}")
        return True

    async def close_all(self) -> None:
        for session_id in list(self._entries):
            await self.close(session_id)
