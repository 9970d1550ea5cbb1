"""Portal automation state machine definitions."""

from enum import Enum


class AutomationState(str, Enum):
    """States of a single portal login and receipt extraction."""

    IDLE = "IDLE"
    LOGGING_IN = "LOGGING_IN"
    AWAITING_OTP = "AWAITING_OTP"
    EXTRACTING_RECEIPT = "EXTRACTING_RECEIPT"
    DONE = "DONE"
    FAILED = "FAILED"


class OptionalStep(str, Enum):
    """Outcome of probing for a control that may legitimately be missing."""

    PRESENT = "present"
    ABSENT = "absent"


TERMINAL_STATES = {AutomationState.DONE, AutomationState.FAILED}

# Normal transitions; FAILED is additionally valid from every non-terminal state
STATE_TRANSITIONS: dict[AutomationState, list[AutomationState]] = {
    AutomationState.IDLE: [AutomationState.LOGGING_IN],
    AutomationState.LOGGING_IN: [AutomationState.AWAITING_OTP],
    AutomationState.AWAITING_OTP: [AutomationState.EXTRACTING_RECEIPT],
    AutomationState.EXTRACTING_RECEIPT: [AutomationState.DONE],
}


def is_valid_transition(current: AutomationState, target: AutomationState) -> bool:
    """Return True if *current* may move to *target*."""
    if current in TERMINAL_STATES:
        return False
    if target is AutomationState.FAILED:
        return True
    return target in STATE_TRANSITIONS.get(current, [])
