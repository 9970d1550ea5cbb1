"""Login session store and the background sweep that expires sessions.

A session pins a live browser between step 1 and step 2 of the login, so
it can only live in process memory.  Removal is an atomic pop: whichever
caller (request handler or sweep) pops a session first is the one that
releases its browser.

Usage::

    store = InMemorySessionStore()
    session_id = store.create(session)
    session = store.get(session_id)
    popped = store.delete(session_id)
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable
from uuid import uuid4

if TYPE_CHECKING:
    from upi_attest.browser.automation import PaymentPortalAutomation

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """One login parked between step 1 and step 2."""

    browser: Any  # BrowserHandle or a test double with ``async close()``
    automation: PaymentPortalAutomation
    account: str
    session_id: str = field(default_factory=lambda: uuid4().hex)
    created_at: float = field(default_factory=time.monotonic)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def age(self, now: float | None = None) -> float:
        """Seconds since the session was created."""
        return (time.monotonic() if now is None else now) - self.created_at


class SessionStore:
    """Abstract-ish session store interface."""

    def create(self, session: Session) -> str:
        """Store *session* and return its id."""
        raise NotImplementedError

    def get(self, session_id: str) -> Session | None:
        """Return the session or ``None`` if unknown."""
        raise NotImplementedError

    def delete(self, session_id: str) -> Session | None:
        """Remove and return the session, or ``None`` if already gone."""
        raise NotImplementedError

    def pop_expired(self, timeout_sec: float, now: float | None = None) -> list[Session]:
        """Remove and return every session older than *timeout_sec*."""
        raise NotImplementedError

    def pop_all(self) -> list[Session]:
        """Remove and return every session."""
        raise NotImplementedError

    def __len__(self) -> int:
        raise NotImplementedError


class InMemorySessionStore(SessionStore):
    """Dict-backed store guarded by a lock."""

    def __init__(self) -> None:
        self._data: dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(self, session: Session) -> str:
        with self._lock:
            if session.session_id in self._data:
                raise ValueError(f"Session {session.session_id} already exists")
            self._data[session.session_id] = session
        return session.session_id

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._data.get(session_id)

    def delete(self, session_id: str) -> Session | None:
        with self._lock:
            return self._data.pop(session_id, None)

    def pop_expired(self, timeout_sec: float, now: float | None = None) -> list[Session]:
        now = time.monotonic() if now is None else now
        with self._lock:
            expired = [sid for sid, s in self._data.items() if s.age(now) > timeout_sec]
            return [self._data.pop(sid) for sid in expired]

    def pop_all(self) -> list[Session]:
        with self._lock:
            sessions = list(self._data.values())
            self._data.clear()
        return sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


async def release_browser(browser: Any, session_id: str, reason: str) -> bool:
    """Close *browser*, logging instead of raising on failure.

    Returns:
        True if the browser closed cleanly.
    """
    try:
        await browser.close()
    except Exception:
        logger.exception("[%s] Failed to release browser (%s)", session_id, reason)
        return False
    logger.info("[%s] Browser released (%s)", session_id, reason)
    return True


class SessionSweeper:
    """Periodically evicts sessions older than the configured timeout.

    Args:
        store: The session store to sweep.
        timeout_sec: Maximum session age.
        interval_sec: Delay between sweeps.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        timeout_sec: float = 600.0,
        interval_sec: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.timeout_sec = timeout_sec
        self.interval_sec = interval_sec
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    async def sweep_once(self) -> int:
        """Evict expired sessions now; returns how many were evicted."""
        expired = self.store.pop_expired(self.timeout_sec, now=self._clock())
        for session in expired:
            logger.info("[%s] Cleaning up expired session", session.session_id)
        # Concurrent releases; each close is bounded by its own release timeout
        await asyncio.gather(*(release_browser(s.browser, s.session_id, "expired") for s in expired))
        return len(expired)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_sec)
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("Session sweep failed")

    def start(self) -> None:
        """Start the background sweep on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="session-sweeper")
            logger.info(
                "Session sweeper started (timeout=%ss, interval=%ss)",
                self.timeout_sec,
                self.interval_sec,
            )

    async def stop(self) -> None:
        """Cancel the background sweep and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Session sweeper stopped")
