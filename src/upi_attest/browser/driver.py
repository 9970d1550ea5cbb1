"""Page-driver capability interface and its Playwright implementation.

The portal automation only talks to a :class:`PageDriver`, so it can be
exercised against an in-memory fake.  :class:`PlaywrightPageDriver` adapts a
``playwright.async_api.Page`` and converts Playwright's exceptions into
:class:`~upi_attest.exceptions.DriverTimeout` / :class:`~upi_attest.exceptions.DriverError`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Literal, Protocol, runtime_checkable

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from upi_attest.exceptions import AutomationFailure, DriverError, DriverTimeout, FailureCause

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

    from upi_attest.settings.config import BrowserSettings

logger = logging.getLogger(__name__)

WaitUntil = Literal["commit", "domcontentloaded", "load", "networkidle"]


@runtime_checkable
class PageDriver(Protocol):
    """Async capabilities the portal automation needs from a browser page.

    Every method taking ``timeout_ms`` raises ``DriverTimeout`` once the
    wait expires.
    """

    @property
    def url(self) -> str: ...

    async def title(self) -> str: ...

    async def goto(self, url: str, *, wait_until: WaitUntil, timeout_ms: int) -> None: ...

    async def wait_for_selector(self, selector: str, *, timeout_ms: int) -> None: ...

    async def wait_for_load_state(self, state: WaitUntil, *, timeout_ms: int) -> None: ...

    async def wait_for_url(self, pattern: str, *, timeout_ms: int) -> None: ...

    async def fill(self, selector: str, value: str, *, timeout_ms: int) -> None: ...

    async def press(self, selector: str, key: str, *, timeout_ms: int) -> None: ...

    async def click(self, selector: str, *, timeout_ms: int) -> None: ...

    async def click_first(self, selector: str, *, timeout_ms: int) -> None: ...

    async def get_attribute(self, selector: str, name: str, *, timeout_ms: int) -> str | None: ...


@contextmanager
def _translated(action: str) -> Iterator[None]:
    """Re-raise Playwright errors from *action* as driver errors."""
    try:
        yield
    except PlaywrightTimeout as exc:
        raise DriverTimeout(f"{action}: {exc}") from exc
    except PlaywrightError as exc:
        raise DriverError(f"{action}: {exc}") from exc


class PlaywrightPageDriver:
    """:class:`PageDriver` backed by a Playwright async ``Page``."""

    def __init__(self, page: Page) -> None:
        self._page = page

    @property
    def url(self) -> str:
        return self._page.url

    async def title(self) -> str:
        with _translated("title"):
            return await self._page.title()

    async def goto(self, url: str, *, wait_until: WaitUntil, timeout_ms: int) -> None:
        with _translated(f"goto {url}"):
            await self._page.goto(url, wait_until=wait_until, timeout=timeout_ms)

    async def wait_for_selector(self, selector: str, *, timeout_ms: int) -> None:
        with _translated(f"wait_for_selector {selector}"):
            await self._page.wait_for_selector(selector, timeout=timeout_ms)

    async def wait_for_load_state(self, state: WaitUntil, *, timeout_ms: int) -> None:
        with _translated(f"wait_for_load_state {state}"):
            await self._page.wait_for_load_state(state, timeout=timeout_ms)

    async def wait_for_url(self, pattern: str, *, timeout_ms: int) -> None:
        with _translated(f"wait_for_url {pattern}"):
            await self._page.wait_for_url(pattern, timeout=timeout_ms)

    async def fill(self, selector: str, value: str, *, timeout_ms: int) -> None:
        with _translated(f"fill {selector}"):
            await self._page.fill(selector, value, timeout=timeout_ms)

    async def press(self, selector: str, key: str, *, timeout_ms: int) -> None:
        with _translated(f"press {selector}"):
            await self._page.press(selector, key, timeout=timeout_ms)

    async def click(self, selector: str, *, timeout_ms: int) -> None:
        with _translated(f"click {selector}"):
            await self._page.click(selector, timeout=timeout_ms)

    async def click_first(self, selector: str, *, timeout_ms: int) -> None:
        with _translated(f"click first {selector}"):
            await self._page.locator(selector).first.click(timeout=timeout_ms)

    async def get_attribute(self, selector: str, name: str, *, timeout_ms: int) -> str | None:
        with _translated(f"get_attribute {selector}[{name}]"):
            return await self._page.locator(selector).get_attribute(name, timeout=timeout_ms)


# ---------------------------------------------------------------------------
# Browser lifecycle
# ---------------------------------------------------------------------------


class BrowserHandle:
    """One isolated browser + context + page, owned by exactly one session.

    :meth:`close` releases the browser at most once, even when the sweep
    and a request handler race to close the same handle.
    """

    def __init__(
        self,
        browser: Browser,
        context: BrowserContext,
        page: Page,
        *,
        release_timeout_sec: float = 10.0,
    ) -> None:
        self._browser = browser
        self._context = context
        self.driver: PageDriver = PlaywrightPageDriver(page)
        self._release_timeout_sec = release_timeout_sec
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def _release(self) -> None:
        try:
            await self._context.close()
        finally:
            await self._browser.close()

    async def close(self) -> None:
        """Close the context and then the browser; later calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        await asyncio.wait_for(self._release(), timeout=self._release_timeout_sec)
        logger.debug("Browser released")


class BrowserLauncher:
    """Launches one chromium browser per login session.

    A single Playwright driver process is started lazily and shared; browsers
    and contexts are never shared between sessions.
    """

    def __init__(self, settings: BrowserSettings | None = None) -> None:
        if settings is None:
            from upi_attest.settings import get_settings

            settings = get_settings().browser
        self._settings = settings
        self._playwright: Playwright | None = None
        self._start_lock = asyncio.Lock()

    async def _ensure_started(self) -> Playwright:
        async with self._start_lock:
            if self._playwright is None:
                from playwright.async_api import async_playwright

                self._playwright = await async_playwright().start()
                logger.info("Playwright started")
        return self._playwright

    async def launch(self) -> BrowserHandle:
        """Launch a fresh headless browser with one new context and page.

        Raises:
            AutomationFailure: If the browser cannot be launched.
        """
        try:
            pw = await self._ensure_started()
            browser = await pw.chromium.launch(
                headless=self._settings.headless,
                args=list(self._settings.launch_args),
            )
        except PlaywrightError as exc:
            raise AutomationFailure(FailureCause.DRIVER_ERROR, f"Browser launch failed: {exc}") from exc

        context_args = {"user_agent": self._settings.user_agent} if self._settings.user_agent else {}
        try:
            context = await browser.new_context(**context_args)
            page = await context.new_page()
        except PlaywrightError as exc:
            await browser.close()
            raise AutomationFailure(FailureCause.DRIVER_ERROR, f"Browser context setup failed: {exc}") from exc

        return BrowserHandle(
            browser,
            context,
            page,
            release_timeout_sec=self._settings.release_timeout_sec,
        )

    async def stop(self) -> None:
        """Stop the shared Playwright driver, if it was started."""
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            finally:
                self._playwright = None
            logger.info("Playwright stopped")
