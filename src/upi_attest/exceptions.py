"""upi-attest exception hierarchy."""

from __future__ import annotations

from enum import Enum


class UpiAttestError(Exception):
    """Base exception for all upi-attest errors."""


class ValidationError(UpiAttestError):
    """Raised when a required request input is missing or blank.

    Attributes:
        fields: Names of the offending inputs.
    """

    def __init__(self, fields: list[str], message: str | None = None) -> None:
        self.fields = fields
        super().__init__(message or f"Missing required field(s): {', '.join(fields)}")


class SessionNotFound(UpiAttestError):
    """Raised when a session id is unknown or its session has expired."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__("Invalid or expired session. Please start over.")


class SessionBusy(UpiAttestError):
    """Raised when a second OTP submission arrives while one is still running."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__("An OTP submission is already in progress for this session.")


class FailureCause(str, Enum):
    """Named causes for a failed portal automation step."""

    SELECTOR_NOT_FOUND = "selector-not-found"
    NAVIGATION_TIMEOUT = "navigation-timeout"
    PARSE_ERROR = "parse-error"
    DRIVER_ERROR = "driver-error"


class AutomationFailure(UpiAttestError):
    """Raised when the portal automation cannot complete a step.

    Attributes:
        cause: Which kind of failure occurred.
        state: The automation state the failure happened in (``None`` when
            raised outside the state machine, e.g. by the receipt parser).
    """

    def __init__(self, cause: FailureCause, message: str, state: str | None = None) -> None:
        self.cause = cause
        self.state = state
        super().__init__(message)


class SigningError(UpiAttestError):
    """Raised when the attestation signer is missing or misconfigured."""


class InvalidTransition(UpiAttestError):
    """Raised when the automation state machine is driven out of order."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Illegal automation transition {current} -> {target}")


class DriverTimeout(UpiAttestError):
    """Raised by a page driver when a bounded wait expires."""


class DriverError(UpiAttestError):
    """Raised by a page driver for any other browser-side failure."""
