"""Domain models for upi-attest."""

from upi_attest.models.attestation import PaymentAttestation, SignedAttestation
from upi_attest.models.states import AutomationState, OptionalStep

__all__ = ["AutomationState", "OptionalStep", "PaymentAttestation", "SignedAttestation"]
