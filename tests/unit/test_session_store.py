"""Unit tests for the session store and expiry sweep."""

from __future__ import annotations

import asyncio

import pytest
from conftest import FakeBrowser, FakePageDriver

from upi_attest.store.session_store import InMemorySessionStore, Session, SessionSweeper


def _session(session_id: str, created_at: float = 0.0, *, fail_close: bool = False) -> Session:
    driver = FakePageDriver()
    return Session(
        browser=FakeBrowser(driver, fail_close=fail_close),
        automation=None,  # type: ignore[arg-type]
        account="buyer@example.com",
        session_id=session_id,
        created_at=created_at,
    )


class TestInMemorySessionStore:
    """Basic store semantics."""

    def test_create_and_get(self) -> None:
        store = InMemorySessionStore()
        s = _session("s1")
        assert store.create(s) == "s1"
        assert store.get("s1") is s
        assert len(store) == 1

    def test_get_missing_returns_none(self) -> None:
        assert InMemorySessionStore().get("nope") is None

    def test_duplicate_id_rejected(self) -> None:
        store = InMemorySessionStore()
        store.create(_session("s1"))
        with pytest.raises(ValueError):
            store.create(_session("s1"))

    def test_delete_pops_once(self) -> None:
        """Only the first delete receives the session."""
        store = InMemorySessionStore()
        s = _session("s1")
        store.create(s)
        assert store.delete("s1") is s
        assert store.delete("s1") is None
        assert store.get("s1") is None

    def test_pop_expired_only_takes_old_sessions(self) -> None:
        store = InMemorySessionStore()
        store.create(_session("old", created_at=0.0))
        store.create(_session("new", created_at=500.0))
        expired = store.pop_expired(600.0, now=700.0)
        assert [s.session_id for s in expired] == ["old"]
        assert store.get("new") is not None

    def test_pop_all(self) -> None:
        store = InMemorySessionStore()
        store.create(_session("a"))
        store.create(_session("b"))
        assert {s.session_id for s in store.pop_all()} == {"a", "b"}
        assert len(store) == 0

    def test_generated_ids_are_unique(self) -> None:
        driver = FakePageDriver()
        a = Session(browser=FakeBrowser(driver), automation=None, account="x")  # type: ignore[arg-type]
        b = Session(browser=FakeBrowser(driver), automation=None, account="x")  # type: ignore[arg-type]
        assert a.session_id != b.session_id


class TestSessionSweeper:
    """Expiry sweep: eviction and browser release."""

    @pytest.mark.anyio
    async def test_evicts_and_releases_expired(self) -> None:
        store = InMemorySessionStore()
        old, fresh = _session("old", 0.0), _session("fresh", 650.0)
        store.create(old)
        store.create(fresh)
        sweeper = SessionSweeper(store, timeout_sec=600, interval_sec=60, clock=lambda: 700.0)

        assert await sweeper.sweep_once() == 1

        assert store.get("old") is None
        assert store.get("fresh") is fresh
        assert old.browser.close_calls == 1
        assert fresh.browser.close_calls == 0

    @pytest.mark.anyio
    async def test_releases_at_most_once_across_sweeps(self) -> None:
        store = InMemorySessionStore()
        s = _session("s1", 0.0)
        store.create(s)
        sweeper = SessionSweeper(store, timeout_sec=600, clock=lambda: 1000.0)

        await sweeper.sweep_once()
        await sweeper.sweep_once()

        assert s.browser.close_calls == 1

    @pytest.mark.anyio
    async def test_sweep_and_delete_race_releases_once(self) -> None:
        """A handler deleting after the sweep popped gets nothing to release."""
        store = InMemorySessionStore()
        s = _session("s1", 0.0)
        store.create(s)
        sweeper = SessionSweeper(store, timeout_sec=600, clock=lambda: 1000.0)

        await sweeper.sweep_once()
        assert store.delete("s1") is None
        assert s.browser.close_calls == 1

    @pytest.mark.anyio
    async def test_release_failure_does_not_block_others(self) -> None:
        store = InMemorySessionStore()
        broken = _session("broken", 0.0, fail_close=True)
        healthy = _session("healthy", 0.0)
        store.create(broken)
        store.create(healthy)
        sweeper = SessionSweeper(store, timeout_sec=600, clock=lambda: 1000.0)

        assert await sweeper.sweep_once() == 2

        assert healthy.browser.close_calls == 1
        assert broken.browser.close_calls == 1
        assert len(store) == 0

    @pytest.mark.anyio
    async def test_background_loop_sweeps(self) -> None:
        store = InMemorySessionStore()
        s = _session("s1", 0.0)
        store.create(s)
        sweeper = SessionSweeper(store, timeout_sec=600, interval_sec=0.01, clock=lambda: 1000.0)

        sweeper.start()
        for _ in range(100):
            if s.browser.close_calls:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

        assert s.browser.close_calls == 1
        assert len(store) == 0

    @pytest.mark.anyio
    async def test_stop_without_start_is_noop(self) -> None:
        await SessionSweeper(InMemorySessionStore()).stop()
