"""Receipt parsing — turn the receipt element's ``data`` attribute into an attestation.

The portal embeds the receipt as JSON on the receipt element.  Exactly four
fields are read from fixed paths; a receipt missing any of them is rejected
as a whole.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from upi_attest.exceptions import AutomationFailure, FailureCause
from upi_attest.models.attestation import MAX_UINT256, PaymentAttestation

logger = logging.getLogger(__name__)

# Paths into the receipt JSON; ints index into lists
STATUS_PATH: tuple[str | int, ...] = ("paymentStatusDetails", "status")
AMOUNT_PATH: tuple[str | int, ...] = ("paymentStatusDetails", "paymentAmount")
RECEIVER_PATH: tuple[str | int, ...] = (
    "paymentEntityOfTypePaymentMethodEntity",
    "paymentMethodInstruments",
    0,
    "unmaskedVpaId",
)
TRANSACTION_ID_PATH: tuple[str | int, ...] = (
    "identifierEntities",
    0,
    "identifierValues",
    0,
    "ctaTitle",
)


def _parse_error(message: str) -> AutomationFailure:
    return AutomationFailure(FailureCause.PARSE_ERROR, message)


def _dig(data: Any, path: tuple[str | int, ...]) -> Any:
    """Follow *path* through nested dicts/lists, raising a parse error if it breaks."""
    node = data
    for key in path:
        try:
            if isinstance(key, int):
                if not isinstance(node, list):
                    raise TypeError
                node = node[key]
            else:
                if not isinstance(node, dict):
                    raise TypeError
                node = node[key]
        except (KeyError, IndexError, TypeError):
            raise _parse_error(f"Receipt field missing: {_format_path(path)}") from None
    if node is None:
        raise _parse_error(f"Receipt field missing: {_format_path(path)}")
    return node


def _format_path(path: tuple[str | int, ...]) -> str:
    out = ""
    for key in path:
        out += f"[{key}]" if isinstance(key, int) else (f".{key}" if out else key)
    return out


def _as_text(value: Any, path: tuple[str | int, ...]) -> str:
    if not isinstance(value, str) or not value.strip():
        raise _parse_error(f"Receipt field {_format_path(path)} is not a non-empty string")
    return value


def _as_amount(value: Any) -> int:
    """Coerce the receipt amount to an integer that fits in uint256.

    Integral floats and ASCII digit strings are accepted; booleans and fractional
    values are not.
    """
    where = _format_path(AMOUNT_PATH)
    if isinstance(value, bool):
        raise _parse_error(f"Receipt field {where} is not an integer amount")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, float) and value.is_integer():
        amount = int(value)
    elif isinstance(value, str) and value.strip().isascii() and value.strip().isdecimal():
        amount = int(value.strip())
    else:
        raise _parse_error(f"Receipt field {where} is not an integer amount: {value!r}")
    if amount < 0:
        raise _parse_error(f"Receipt field {where} is negative")
    if amount > MAX_UINT256:
        raise _parse_error(f"Receipt field {where} does not fit in uint256")
    return amount


def parse_receipt(raw: str | None) -> PaymentAttestation:
    """Parse the receipt element's JSON ``data`` attribute.

    Args:
        raw: The attribute value, or ``None`` if the attribute was absent.

    Returns:
        The extracted :class:`PaymentAttestation`.

    Raises:
        AutomationFailure: With cause ``parse-error`` if the attribute is
            missing, is not JSON, or lacks any of the four fields.
    """
    if not raw:
        raise _parse_error("Transaction receipt data not found")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise _parse_error(f"Transaction receipt data is not valid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise _parse_error("Transaction receipt data is not a JSON object")

    return PaymentAttestation(
        payment_status_title=_as_text(_dig(data, STATUS_PATH), STATUS_PATH),
        payment_total_amount=_as_amount(_dig(data, AMOUNT_PATH)),
        receiver_upi_id=_as_text(_dig(data, RECEIVER_PATH), RECEIVER_PATH),
        upi_transaction_id=_as_text(_dig(data, TRANSACTION_ID_PATH), TRANSACTION_ID_PATH),
    )
