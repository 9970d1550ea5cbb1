"""EIP-712 signer for payment attestations.

Signs the ``PaymentData`` struct the escrow contract verifies in
``claimFunds``::

    PaymentData(string paymentStatusTitle,uint256 paymentTotalAmount,
                string receiverUpiId,string upiTransactionId)

under a fixed domain (name, version, chain id, verifying contract).  The
key is derived once from the TEE mnemonic at startup and held for the
life of the process.  ECDSA signing in eth-account is deterministic
(RFC 6979), so identical attestations produce identical signatures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data
from eth_utils import to_checksum_address

from upi_attest.exceptions import SigningError

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

    from upi_attest.models.attestation import PaymentAttestation
    from upi_attest.settings.config import SignerSettings

logger = logging.getLogger(__name__)

PRIMARY_TYPE = "PaymentData"

PAYMENT_DATA_TYPES: dict[str, list[dict[str, str]]] = {
    PRIMARY_TYPE: [
        {"name": "paymentStatusTitle", "type": "string"},
        {"name": "paymentTotalAmount", "type": "uint256"},
        {"name": "receiverUpiId", "type": "string"},
        {"name": "upiTransactionId", "type": "string"},
    ],
}

Account.enable_unaudited_hdwallet_features()


@dataclass(frozen=True)
class SigningDomain:
    """The EIP-712 domain the escrow verifier expects."""

    name: str = "PaymentVerificationService"
    version: str = "1"
    chain_id: int = 42161
    verifying_contract: str = "0x5b866b6655234b3b6f9b3bd86f068a99622f5919"

    @classmethod
    def from_settings(cls, settings: SignerSettings) -> "SigningDomain":
        return cls(
            name=settings.domain_name,
            version=settings.domain_version,
            chain_id=settings.chain_id,
            verifying_contract=settings.verifying_contract,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": to_checksum_address(self.verifying_contract),
        }


def _hex(signature: bytes) -> str:
    # HexBytes.hex() may or may not include 0x depending on the hexbytes version
    sig_hex = signature.hex()
    return sig_hex if sig_hex.startswith("0x") else "0x" + sig_hex


class AttestationSigner:
    """Signs payment attestations with a single process-wide key.

    Args:
        account: The local signing account.
        domain: EIP-712 domain to bind signatures to.
    """

    def __init__(self, account: LocalAccount, domain: SigningDomain | None = None) -> None:
        self._account = account
        self.domain = domain or SigningDomain()

    @classmethod
    def from_mnemonic(
        cls,
        mnemonic: str,
        domain: SigningDomain | None = None,
        *,
        derivation_path: str = "m/44'/60'/0'/0/0",
    ) -> "AttestationSigner":
        """Derive the signing key from a BIP-39 mnemonic.

        Raises:
            SigningError: If the mnemonic is empty or invalid.
        """
        if not mnemonic or not mnemonic.strip():
            raise SigningError("MNEMONIC not found in environment")
        try:
            account = Account.from_mnemonic(mnemonic.strip(), account_path=derivation_path)
        except Exception as exc:
            raise SigningError(f"Could not derive signing key from mnemonic: {type(exc).__name__}") from exc
        return cls(account, domain)

    @classmethod
    def from_settings(cls, settings: SignerSettings) -> "AttestationSigner":
        return cls.from_mnemonic(
            settings.mnemonic.get_secret_value(),
            SigningDomain.from_settings(settings),
            derivation_path=settings.derivation_path,
        )

    @property
    def address(self) -> str:
        """Checksummed address of the signing key."""
        return self._account.address

    def _signable(self, attestation: PaymentAttestation):
        return encode_typed_data(
            domain_data=self.domain.as_dict(),
            message_types=PAYMENT_DATA_TYPES,
            message_data=attestation.to_message(),
        )

    def sign(self, attestation: PaymentAttestation) -> str:
        """Return the 0x-prefixed 65-byte EIP-712 signature over *attestation*."""
        signed = self._account.sign_message(self._signable(attestation))
        return _hex(signed.signature)

    def recover(self, attestation: PaymentAttestation, signature: str) -> str:
        """Return the address that produced *signature* over *attestation*."""
        return Account.recover_message(self._signable(attestation), signature=signature)

    def sign_message(self, text: str) -> str:
        """Sign an EIP-191 personal message (used by the liveness route)."""
        signed = self._account.sign_message(encode_defunct(text=text))
        return _hex(signed.signature)


# ---------------------------------------------------------------------------
# Process-wide signer
# ---------------------------------------------------------------------------

_signer: AttestationSigner | None = None


def init_signer(settings: SignerSettings | None = None) -> AttestationSigner:
    """Derive the process-wide signer from settings.

    Raises:
        SigningError: If no mnemonic is configured.
    """
    global _signer  # noqa: PLW0603
    if settings is None:
        from upi_attest.settings import get_settings

        settings = get_settings().signer
    _signer = AttestationSigner.from_settings(settings)
    logger.info("Signer initialised for %s", _signer.address)
    return _signer


def get_signer() -> AttestationSigner:
    """Return the process-wide signer.

    Raises:
        SigningError: If :func:`init_signer` has not been called.
    """
    if _signer is None:
        raise SigningError("Signer not initialised; configure MNEMONIC before starting the service")
    return _signer


def reset_signer() -> None:
    """Forget the process-wide signer (tests and shutdown)."""
    global _signer  # noqa: PLW0603
    _signer = None
