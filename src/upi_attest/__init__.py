"""upi-attest — signed UPI payment attestations for escrow claims."""

from __future__ import annotations

try:
    from importlib.metadata import version

    __version__ = version("upi-attest")
except Exception:
    __version__ = "0.0.0"
