"""Session storage for in-flight two-step logins."""

from upi_attest.store.session_store import (
    InMemorySessionStore,
    Session,
    SessionStore,
    SessionSweeper,
    release_browser,
)

__all__ = ["InMemorySessionStore", "Session", "SessionStore", "SessionSweeper", "release_browser"]
