"""Two-step login routes: credentials, then OTP for a signed attestation."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from upi_attest.models.attestation import PaymentAttestation
from upi_attest.service import PaymentVerificationService

login_router = APIRouter(tags=["login"])


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class Step1Request(BaseModel):
    """Body of ``POST /login/step1``.

    ``username`` / ``password`` are accepted for older frontends.
    """

    identifier: str | None = Field(None, validation_alias=AliasChoices("identifier", "username"))
    secret: str | None = Field(None, validation_alias=AliasChoices("secret", "password"))


class Step1Response(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    session_id: str = Field(..., alias="sessionId")
    message: str = "Login successful. Please enter the OTP sent to your device."


class Step2Request(BaseModel):
    """Body of ``POST /login/step2`` (``otp`` is accepted for ``code``)."""

    session_id: str | None = Field(None, validation_alias=AliasChoices("sessionId", "session_id"))
    code: str | None = Field(None, validation_alias=AliasChoices("code", "otp"))


class Step2Response(BaseModel):
    success: bool = True
    attestation: PaymentAttestation
    signature: str
    signer: str
    message: str = "Transaction data retrieved successfully!"


def get_service(request: Request) -> PaymentVerificationService:
    return request.app.state.service


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@login_router.post("/step1", response_model=Step1Response, response_model_by_alias=True)
async def login_step1(
    req: Step1Request,
    service: PaymentVerificationService = Depends(get_service),
) -> Step1Response:
    """Log in to the payment portal and hold the session at the OTP prompt."""
    session_id = await service.start_login(req.identifier, req.secret)
    return Step1Response(session_id=session_id)


@login_router.post("/step2", response_model=Step2Response, response_model_by_alias=True)
async def login_step2(
    req: Step2Request,
    service: PaymentVerificationService = Depends(get_service),
) -> Step2Response:
    """Submit the OTP and return the latest receipt with its EIP-712 signature."""
    signed = await service.submit_otp(req.session_id, req.code)
    return Step2Response(
        attestation=signed.attestation,
        signature=signed.signature,
        signer=signed.signer,
    )
