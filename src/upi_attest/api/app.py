"""FastAPI app for upi-attest."""

from __future__ import annotations

import logging
import traceback
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from upi_attest import __version__
from upi_attest.api.login_routes import login_router
from upi_attest.api.routes import router
from upi_attest.browser.driver import BrowserLauncher
from upi_attest.exceptions import (
    AutomationFailure,
    SessionBusy,
    SessionNotFound,
    SigningError,
    UpiAttestError,
    ValidationError,
)
from upi_attest.service import PaymentVerificationService
from upi_attest.signer.eip712 import init_signer
from upi_attest.store.session_store import InMemorySessionStore, SessionStore, SessionSweeper

if TYPE_CHECKING:
    from upi_attest.settings.config import Settings
    from upi_attest.signer.eip712 import AttestationSigner

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: dict[type[UpiAttestError], int] = {
    ValidationError: 400,
    SessionNotFound: 404,
    SessionBusy: 409,
    AutomationFailure: 500,
    SigningError: 500,
}


def _error_body(exc: BaseException, *, debug: bool) -> dict:
    body: dict = {"success": False, "error": str(exc)}
    if isinstance(exc, AutomationFailure):
        body["cause"] = exc.cause.value
    if debug:
        body["details"] = "".join(traceback.format_exception(exc))
    return body


def _install_error_handlers(application: FastAPI, debug: bool) -> None:
    async def handle_upi_attest_error(request: Request, exc: UpiAttestError) -> JSONResponse:
        status = next((code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)), 500)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse(status_code=status, content=_error_body(exc, debug=debug))

    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Malformed request body", "details": jsonable_encoder(exc.errors())},
        )

    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("%s %s failed unexpectedly", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_body(exc, debug=debug))

    application.add_exception_handler(UpiAttestError, handle_upi_attest_error)
    application.add_exception_handler(RequestValidationError, handle_request_validation)
    application.add_exception_handler(Exception, handle_unexpected)


def create_app(
    settings: Settings | None = None,
    *,
    launcher: BrowserLauncher | None = None,
    store: SessionStore | None = None,
    signer: AttestationSigner | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        settings: Settings to use; defaults to :func:`get_settings`.
        launcher: Browser launcher; defaults to a Playwright launcher.
        store: Session store; defaults to an in-memory store.
        signer: Pre-built signer.  When omitted the signer is derived from
            ``settings.signer`` at startup and a missing mnemonic aborts
            startup with ``SigningError``.
    """
    if settings is None:
        from upi_attest.settings import get_settings

        settings = get_settings()

    launcher = launcher or BrowserLauncher(settings.browser)
    store = store if store is not None else InMemorySessionStore()
    sweeper = SessionSweeper(
        store,
        timeout_sec=settings.session.timeout_sec,
        interval_sec=settings.session.sweep_interval_sec,
    )
    holder: dict[str, AttestationSigner] = {}
    if signer is not None:
        holder["signer"] = signer

    def signer_provider() -> AttestationSigner:
        if "signer" not in holder:
            raise SigningError("Signer not initialised; configure MNEMONIC before starting the service")
        return holder["signer"]

    service = PaymentVerificationService(store, launcher, settings.portal, signer_provider=signer_provider)

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        if "signer" not in holder:
            holder["signer"] = init_signer(settings.signer)
        sweeper.start()
        logger.info("upi-attest %s ready (signer %s)", __version__, holder["signer"].address)
        try:
            yield
        finally:
            await sweeper.stop()
            await service.shutdown()
            await launcher.stop()

    application = FastAPI(
        title="upi-attest",
        description="Signed UPI payment attestations for escrow claims.",
        version=__version__,
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.state.settings = settings
    application.state.service = service
    application.state.sweeper = sweeper
    application.state.signer_provider = signer_provider

    _install_error_handlers(application, settings.debug)

    application.include_router(router)
    application.include_router(login_router, prefix="/login")
    application.include_router(login_router, prefix="/api/login", include_in_schema=False)
    return application
