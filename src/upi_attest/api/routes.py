"""Service-level API routes: health and signer identity."""

from __future__ import annotations

import time

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

router = APIRouter()


class SignerAddressResponse(BaseModel):
    address: str
    message: str


class SignedGreetingResponse(BaseModel):
    message: str
    timestamp: int
    signature: str
    address: str


@router.get("/health", response_class=PlainTextResponse)
def health() -> str:
    return "OK"


@router.get("/tee-address", response_model=SignerAddressResponse)
def tee_address(request: Request) -> SignerAddressResponse:
    """Return the address whose signatures the escrow contract should trust."""
    signer = request.app.state.signer_provider()
    return SignerAddressResponse(
        address=signer.address,
        message="This is the TEE public address derived from the mnemonic",
    )


@router.get("/gm", response_model=SignedGreetingResponse)
def signed_greeting(request: Request) -> SignedGreetingResponse:
    """Sign a timestamped ``gm`` message, proving the signer key is live."""
    signer = request.app.state.signer_provider()
    timestamp = int(time.time() * 1000)
    message = f"gm{timestamp}"
    return SignedGreetingResponse(
        message=message,
        timestamp=timestamp,
        signature=signer.sign_message(message),
        address=signer.address,
    )
