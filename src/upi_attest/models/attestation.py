"""Payment attestation models.

The field aliases are the EIP-712 ``PaymentData`` member names the escrow
contract's verifier hashes, so ``model_dump(by_alias=True)`` yields the
exact typed-data message.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

# paymentTotalAmount is a uint256 in the typed data
MAX_UINT256 = 2**256 - 1


class PaymentAttestation(BaseModel):
    """Payment fields extracted from a single transaction receipt."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    payment_status_title: str = Field(..., alias="paymentStatusTitle", min_length=1)
    payment_total_amount: int = Field(..., alias="paymentTotalAmount", ge=0, le=MAX_UINT256)
    receiver_upi_id: str = Field(..., alias="receiverUpiId", min_length=1)
    upi_transaction_id: str = Field(..., alias="upiTransactionId", min_length=1)

    def to_message(self) -> dict[str, str | int]:
        """Return the typed-data message keyed by EIP-712 member names."""
        return self.model_dump(by_alias=True)


class SignedAttestation(BaseModel):
    """An attestation together with the signature binding it to the escrow domain."""

    model_config = ConfigDict(frozen=True)

    attestation: PaymentAttestation
    signature: str
    signer: str
