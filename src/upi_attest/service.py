"""Two-step payment verification: log in, then trade an OTP for a signed receipt.

Step 1 launches a browser, drives the portal to the OTP prompt and parks the
browser in a :class:`~upi_attest.store.session_store.Session`.  Step 2 submits
the OTP, extracts the receipt, signs it, and always tears the session down,
whether it succeeded or not.  A failed step 2 therefore cannot be retried;
the caller starts again from step 1.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable
from uuid import uuid4

from upi_attest.browser.automation import PaymentPortalAutomation
from upi_attest.exceptions import SessionBusy, SessionNotFound, ValidationError
from upi_attest.models.attestation import SignedAttestation
from upi_attest.signer.eip712 import get_signer
from upi_attest.store.session_store import Session, SessionStore, release_browser

if TYPE_CHECKING:
    from upi_attest.browser.driver import BrowserLauncher
    from upi_attest.settings.config import PortalSettings
    from upi_attest.signer.eip712 import AttestationSigner

logger = logging.getLogger(__name__)


def _require(**fields: str | None) -> None:
    missing = [name for name, value in fields.items() if not value or not value.strip()]
    if missing:
        raise ValidationError(missing)


class PaymentVerificationService:
    """Orchestrates the login session, portal automation, and signer.

    Args:
        store: Where step-1 sessions wait for step 2.
        launcher: Launches one isolated browser per login.
        portal: Portal URLs, selectors, and timeouts.
        signer_provider: Returns the process-wide signer; raises
            ``SigningError`` if it is not initialised.
    """

    def __init__(
        self,
        store: SessionStore,
        launcher: BrowserLauncher,
        portal: PortalSettings,
        *,
        signer_provider: Callable[[], AttestationSigner] = get_signer,
    ) -> None:
        self.store = store
        self.launcher = launcher
        self.portal = portal
        self._signer_provider = signer_provider

    async def start_login(self, identifier: str | None, secret: str | None) -> str:
        """Log in up to the OTP prompt and return the new session id.

        Raises:
            ValidationError: If *identifier* or *secret* is blank; no browser
                is launched in that case.
            AutomationFailure: If the portal does not reach the OTP prompt.
                The browser is released and no session is stored.
        """
        _require(identifier=identifier, secret=secret)

        session_id = uuid4().hex
        logger.info("[%s] Starting step 1: portal login", session_id)
        browser = await self.launcher.launch()
        stored = False
        try:
            automation = PaymentPortalAutomation(browser.driver, self.portal, session_id)
            await automation.login(identifier, secret)
            self.store.create(
                Session(browser=browser, automation=automation, account=identifier, session_id=session_id)
            )
            stored = True
        finally:
            if not stored:
                await release_browser(browser, session_id, "step 1 failed")

        logger.info("[%s] Step 1 completed, waiting for OTP", session_id)
        return session_id

    async def submit_otp(self, session_id: str | None, code: str | None) -> SignedAttestation:
        """Submit the OTP, extract and sign the receipt, and end the session.

        Raises:
            ValidationError: If *session_id* or *code* is blank.
            SessionNotFound: If the session is unknown or has expired.
            SessionBusy: If another OTP submission for the session is running.
            AutomationFailure: If the receipt cannot be reached or parsed.
            SigningError: If the signer is not initialised.
        """
        _require(sessionId=session_id, code=code)

        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        if session.lock.locked():
            raise SessionBusy(session_id)

        async with session.lock:
            logger.info("[%s] Starting step 2: submitting OTP", session_id)
            try:
                attestation = await session.automation.submit_otp(code)
                signer = self._signer_provider()
                signature = signer.sign(attestation)
            finally:
                # Only the caller that pops the session releases it; the sweep may have won
                popped = self.store.delete(session_id)
                if popped is not None:
                    await release_browser(popped.browser, session_id, "step 2 finished")

        logger.info("[%s] Step 2 completed, attestation signed", session_id)
        return SignedAttestation(attestation=attestation, signature=signature, signer=signer.address)

    async def shutdown(self) -> None:
        """Release every parked session (application shutdown)."""
        for session in self.store.pop_all():
            await release_browser(session.browser, session.session_id, "shutdown")
