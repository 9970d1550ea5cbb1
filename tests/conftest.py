"""upi-attest test configuration — shared fixtures and browser fakes."""

from __future__ import annotations

import json
from typing import Any

import pytest

from upi_attest.exceptions import DriverError, DriverTimeout

# Hardhat's well-known development mnemonic; account 0 is below
TEST_MNEMONIC = "test test test test test test test test test test test junk"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings_cache(monkeypatch: pytest.MonkeyPatch):
    """Clear the settings LRU cache and process-wide signer between tests."""
    from upi_attest.settings.config import get_settings
    from upi_attest.signer.eip712 import reset_signer

    monkeypatch.delenv("MNEMONIC", raising=False)
    monkeypatch.delenv("UPI_ATTEST_SIGNER__MNEMONIC", raising=False)
    get_settings.cache_clear()
    reset_signer()
    yield
    get_settings.cache_clear()
    reset_signer()


@pytest.fixture()
def portal_settings():
    """Portal settings with the default selectors and timeouts."""
    from upi_attest.settings.config import PortalSettings

    return PortalSettings()


@pytest.fixture()
def signer():
    """Signer derived from the development mnemonic with the default domain."""
    from upi_attest.signer.eip712 import AttestationSigner

    return AttestationSigner.from_mnemonic(TEST_MNEMONIC)


# ---------------------------------------------------------------------------
# Receipt data
# ---------------------------------------------------------------------------


def make_receipt(
    *,
    amount: Any = 500000,
    status: Any = "SUCCESS",
    receiver: Any = "merchant@bank",
    tx_id: Any = "T123",
) -> dict[str, Any]:
    """Build a receipt payload in the portal's nested shape."""
    return {
        "paymentStatusDetails": {"paymentAmount": amount, "status": status},
        "paymentEntityOfTypePaymentMethodEntity": {
            "paymentMethodInstruments": [{"unmaskedVpaId": receiver}],
        },
        "identifierEntities": [{"identifierValues": [{"ctaTitle": tx_id}]}],
    }


@pytest.fixture()
def receipt_json() -> str:
    return json.dumps(make_receipt())


# ---------------------------------------------------------------------------
# Browser fakes
# ---------------------------------------------------------------------------

DEFAULT_PRESENT = {
    "#ap_email",
    "#ap_password",
    "#auth-mfa-otpcode",
    "#transaction-desktop > a",
    "#payui-transaction-receipt-id",
}


class FakePageDriver:
    """In-memory :class:`PageDriver` scripted by which selectors exist.

    Args:
        present: Selectors that ``wait_for_selector`` finds.
        receipt: Value returned for the receipt's ``data`` attribute.
        goto_times_out: Make the initial navigation time out.
        redirect_times_out: Make the post-OTP redirect wait time out.
        crash_on: Method name that raises ``DriverError``.
    """

    def __init__(
        self,
        *,
        present: set[str] | None = None,
        receipt: str | None = None,
        goto_times_out: bool = False,
        redirect_times_out: bool = False,
        crash_on: str | None = None,
    ) -> None:
        self.present = set(DEFAULT_PRESENT if present is None else present)
        self.receipt = receipt
        self.goto_times_out = goto_times_out
        self.redirect_times_out = redirect_times_out
        self.crash_on = crash_on
        self.calls: list[tuple[str, Any]] = []
        self.input_timeouts: list[int] = []
        self.filled: dict[str, str] = {}
        self._url = "about:blank"

    def _record(self, name: str, arg: Any = None) -> None:
        self.calls.append((name, arg))
        if self.crash_on == name:
            raise DriverError(f"{name}: target closed")

    def called(self, name: str) -> list[Any]:
        return [arg for call, arg in self.calls if call == name]

    @property
    def url(self) -> str:
        return self._url

    async def title(self) -> str:
        return "Amazon Pay"

    async def goto(self, url: str, *, wait_until: str, timeout_ms: int) -> None:
        self._record("goto", url)
        if self.goto_times_out:
            raise DriverTimeout(f"goto {url}: Timeout {timeout_ms}ms exceeded")
        self._url = url

    async def wait_for_selector(self, selector: str, *, timeout_ms: int) -> None:
        self._record("wait_for_selector", selector)
        if selector not in self.present:
            raise DriverTimeout(f"wait_for_selector {selector}: Timeout {timeout_ms}ms exceeded")

    async def wait_for_load_state(self, state: str, *, timeout_ms: int) -> None:
        self._record("wait_for_load_state", state)

    async def wait_for_url(self, pattern: str, *, timeout_ms: int) -> None:
        self._record("wait_for_url", pattern)
        if self.redirect_times_out:
            raise DriverTimeout(f"wait_for_url {pattern}: Timeout {timeout_ms}ms exceeded")
        self._url = "https://amazon.in/pay/history"

    async def fill(self, selector: str, value: str, *, timeout_ms: int) -> None:
        self._record("fill", selector)
        self.input_timeouts.append(timeout_ms)
        self.filled[selector] = value

    async def press(self, selector: str, key: str, *, timeout_ms: int) -> None:
        self._record("press", selector)
        self.input_timeouts.append(timeout_ms)

    async def click(self, selector: str, *, timeout_ms: int) -> None:
        self._record("click", selector)

    async def click_first(self, selector: str, *, timeout_ms: int) -> None:
        self._record("click_first", selector)
        if selector not in self.present:
            raise DriverTimeout(f"click first {selector}: Timeout {timeout_ms}ms exceeded")

    async def get_attribute(self, selector: str, name: str, *, timeout_ms: int) -> str | None:
        self._record("get_attribute", selector)
        return self.receipt


class FakeBrowser:
    """Stands in for :class:`BrowserHandle`; counts every close call."""

    def __init__(self, driver: FakePageDriver, *, fail_close: bool = False) -> None:
        self.driver = driver
        self.fail_close = fail_close
        self.close_calls = 0

    async def close(self) -> None:
        self.close_calls += 1
        if self.fail_close:
            raise RuntimeError("browser process is wedged")


class FakeLauncher:
    """Stands in for :class:`BrowserLauncher`, handing out fake browsers.

    Args:
        driver_factory: Builds the page driver for each launched browser.
    """

    def __init__(self, driver_factory=None) -> None:
        self.driver_factory = driver_factory or FakePageDriver
        self.launched: list[FakeBrowser] = []
        self.stopped = False

    async def launch(self) -> FakeBrowser:
        browser = FakeBrowser(self.driver_factory())
        self.launched.append(browser)
        return browser

    async def stop(self) -> None:
        self.stopped = True


@pytest.fixture()
def fake_launcher(receipt_json: str) -> FakeLauncher:
    """Launcher whose pages reach the OTP prompt and expose the default receipt."""
    return FakeLauncher(lambda: FakePageDriver(receipt=receipt_json))


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests that require external services or real I/O")


@pytest.fixture()
def anyio_backend() -> str:
    """Run ``@pytest.mark.anyio`` tests on asyncio, which the code is written against."""
    return "asyncio"
