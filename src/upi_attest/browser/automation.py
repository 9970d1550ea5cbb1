"""Payment portal automation — the login / OTP / receipt state machine.

One :class:`PaymentPortalAutomation` drives one browser page through::

    IDLE -> LOGGING_IN -> AWAITING_OTP -> EXTRACTING_RECEIPT -> DONE

with ``FAILED`` reachable from every non-terminal state.  Each blocking
wait carries its own timeout; a timeout or driver error moves the machine
to ``FAILED`` and surfaces as an :class:`AutomationFailure` naming the
cause.  The automation never closes the browser; its owner does.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from upi_attest.browser.receipt import parse_receipt
from upi_attest.exceptions import (
    AutomationFailure,
    DriverError,
    DriverTimeout,
    FailureCause,
    InvalidTransition,
)
from upi_attest.models.states import AutomationState, OptionalStep, is_valid_transition

if TYPE_CHECKING:
    from upi_attest.browser.driver import PageDriver
    from upi_attest.models.attestation import PaymentAttestation
    from upi_attest.settings.config import PortalSettings

logger = logging.getLogger(__name__)


class PaymentPortalAutomation:
    """Drive a payment portal session from login through receipt extraction.

    Args:
        driver: Page driver for this session's page.
        portal: Portal URLs, selectors, and step timeouts.
        session_id: Identifier used to prefix log lines.
    """

    def __init__(self, driver: PageDriver, portal: PortalSettings, session_id: str = "") -> None:
        self.driver = driver
        self.portal = portal
        self.session_id = session_id or "unknown"
        self._state = AutomationState.IDLE
        self.failure: AutomationFailure | None = None

    @property
    def state(self) -> AutomationState:
        return self._state

    # ------------------------------------------------------------------
    # State bookkeeping
    # ------------------------------------------------------------------

    def _transition(self, target: AutomationState) -> None:
        if not is_valid_transition(self._state, target):
            raise InvalidTransition(self._state.value, target.value)
        logger.debug("[%s] %s -> %s", self.session_id, self._state.value, target.value)
        self._state = target

    def _fail(self, cause: FailureCause, message: str) -> AutomationFailure:
        failed_in = self._state.value
        self._transition(AutomationState.FAILED)
        failure = AutomationFailure(cause, message, state=failed_in)
        self.failure = failure
        logger.warning("[%s] Automation failed in %s (%s): %s", self.session_id, failed_in, cause.value, message)
        return failure

    async def _wait_for(self, selector: str, timeout_ms: int, what: str) -> None:
        try:
            await self.driver.wait_for_selector(selector, timeout_ms=timeout_ms)
        except DriverTimeout as exc:
            raise self._fail(
                FailureCause.SELECTOR_NOT_FOUND,
                f"{what} ({selector}) did not appear within {timeout_ms}ms",
            ) from exc

    async def _probe_optional(self, selector: str) -> OptionalStep:
        """Report whether an optional control shows up within the short probe window."""
        try:
            await self.driver.wait_for_selector(selector, timeout_ms=self.portal.optional_step_timeout_ms)
        except DriverTimeout:
            return OptionalStep.ABSENT
        return OptionalStep.PRESENT

    async def _log_page(self) -> None:
        title = await self.driver.title()
        logger.info("[%s] Current page: %s (%s)", self.session_id, self.driver.url, title)

    # ------------------------------------------------------------------
    # Step 1
    # ------------------------------------------------------------------

    async def login(self, identifier: str, secret: str) -> None:
        """Submit credentials and stop once the OTP field is showing.

        Raises:
            AutomationFailure: On any timeout or driver error; the state
                is ``FAILED`` afterwards.
        """
        self._transition(AutomationState.LOGGING_IN)
        portal = self.portal
        try:
            logger.info("[%s] Navigating to payment history", self.session_id)
            try:
                await self.driver.goto(
                    portal.history_url,
                    wait_until="networkidle",
                    timeout_ms=portal.navigation_timeout_ms,
                )
            except DriverTimeout as exc:
                raise self._fail(
                    FailureCause.NAVIGATION_TIMEOUT,
                    f"Portal did not load within {portal.navigation_timeout_ms}ms",
                ) from exc

            await self._wait_for(portal.identifier_selector, portal.field_timeout_ms, "Identifier field")
            await self.driver.fill(portal.identifier_selector, identifier, timeout_ms=portal.field_timeout_ms)
            await self.driver.press(portal.identifier_selector, "Enter", timeout_ms=portal.field_timeout_ms)

            await self._settle()
            await self._wait_for(portal.secret_selector, portal.field_timeout_ms, "Password field")
            await self.driver.fill(portal.secret_selector, secret, timeout_ms=portal.field_timeout_ms)
            await self.driver.press(portal.secret_selector, "Enter", timeout_ms=portal.field_timeout_ms)

            if await self._probe_optional(portal.send_code_selector) is OptionalStep.PRESENT:
                logger.info("[%s] Send-code control found, requesting OTP", self.session_id)
                await self.driver.click(portal.send_code_selector, timeout_ms=portal.field_timeout_ms)
            else:
                logger.info("[%s] No send-code control, continuing", self.session_id)

            await self._wait_for(portal.otp_selector, portal.field_timeout_ms, "OTP field")
            await self._log_page()
        except DriverTimeout as exc:
            raise self._fail(FailureCause.SELECTOR_NOT_FOUND, str(exc)) from exc
        except DriverError as exc:
            raise self._fail(FailureCause.DRIVER_ERROR, str(exc)) from exc

        self._transition(AutomationState.AWAITING_OTP)
        logger.info("[%s] Waiting for OTP", self.session_id)

    # ------------------------------------------------------------------
    # Step 2
    # ------------------------------------------------------------------

    async def submit_otp(self, code: str) -> PaymentAttestation:
        """Submit the one-time code and extract the latest transaction receipt.

        Returns:
            The attestation parsed from the first transaction's receipt.

        Raises:
            AutomationFailure: On any timeout, driver error, or unparseable
                receipt; the state is ``FAILED`` afterwards.
        """
        if self._state is not AutomationState.AWAITING_OTP:
            raise InvalidTransition(self._state.value, AutomationState.EXTRACTING_RECEIPT.value)
        portal = self.portal
        try:
            await self.driver.fill(portal.otp_selector, code, timeout_ms=portal.field_timeout_ms)
            await self.driver.press(portal.otp_selector, "Enter", timeout_ms=portal.field_timeout_ms)
            logger.info("[%s] OTP submitted", self.session_id)
            self._transition(AutomationState.EXTRACTING_RECEIPT)

            try:
                await self.driver.wait_for_url(
                    portal.history_url_pattern,
                    timeout_ms=portal.otp_redirect_timeout_ms,
                )
            except DriverTimeout as exc:
                raise self._fail(
                    FailureCause.NAVIGATION_TIMEOUT,
                    f"Portal did not return to payment history within {portal.otp_redirect_timeout_ms}ms",
                ) from exc
            await self._settle()
            await self._log_page()

            try:
                await self.driver.click_first(portal.transaction_link_selector, timeout_ms=portal.receipt_timeout_ms)
            except DriverTimeout as exc:
                raise self._fail(
                    FailureCause.SELECTOR_NOT_FOUND,
                    "Could not find or click transaction link",
                ) from exc

            await self._wait_for(portal.receipt_selector, portal.receipt_timeout_ms, "Transaction receipt")
            raw = await self.driver.get_attribute(
                portal.receipt_selector,
                portal.receipt_attribute,
                timeout_ms=portal.receipt_timeout_ms,
            )
        except DriverTimeout as exc:
            raise self._fail(FailureCause.SELECTOR_NOT_FOUND, str(exc)) from exc
        except DriverError as exc:
            raise self._fail(FailureCause.DRIVER_ERROR, str(exc)) from exc

        try:
            attestation = parse_receipt(raw)
        except AutomationFailure as exc:
            raise self._fail(exc.cause, f"Failed to extract transaction data: {exc}") from exc

        self._transition(AutomationState.DONE)
        logger.info("[%s] Receipt extracted for transaction %s", self.session_id, attestation.upi_transaction_id)
        return attestation

    async def _settle(self) -> None:
        """Wait for network idle, treating a timeout as a navigation failure."""
        try:
            await self.driver.wait_for_load_state("networkidle", timeout_ms=self.portal.navigation_timeout_ms)
        except DriverTimeout as exc:
            raise self._fail(
                FailureCause.NAVIGATION_TIMEOUT,
                f"Page did not settle within {self.portal.navigation_timeout_ms}ms",
            ) from exc
