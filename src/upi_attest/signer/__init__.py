"""EIP-712 attestation signing."""

from upi_attest.signer.eip712 import (
    AttestationSigner,
    SigningDomain,
    get_signer,
    init_signer,
    reset_signer,
)

__all__ = ["AttestationSigner", "SigningDomain", "get_signer", "init_signer", "reset_signer"]
