"""Call attempt state machine."""

from enum import Enum
from typing import Set


class CallStatus(str, Enum):
    """States of a single provider call."""

    # Initial
    PENDING = "pending"

    # Live
    RINGING = "ringing"
    IN_PROGRESS = "in-progress"

    # Terminal states
    COMPLETE = "complete"
    FAILED = "failed"
    NO_ANSWER = "no-answer"


class InvalidTransitionError(Exception):
    """Raised when a call is moved along an edge the state machine forbids."""
    pass


# Valid state transitions. The COMPLETE/FAILED edges out of PENDING and
# RINGING are only taken by manual resolution after a takeover.
VALID_TRANSITIONS: dict[CallStatus, Set[CallStatus]] = {
    CallStatus.PENDING: {
        CallStatus.RINGING,
        CallStatus.COMPLETE,
        CallStatus.FAILED,
    },
    CallStatus.RINGING: {
        CallStatus.IN_PROGRESS,
        CallStatus.NO_ANSWER,
        CallStatus.COMPLETE,
        CallStatus.FAILED,
    },
    CallStatus.IN_PROGRESS: {
        CallStatus.COMPLETE,
        CallStatus.FAILED,
    },
    CallStatus.COMPLETE: set(),
    CallStatus.FAILED: set(),
    CallStatus.NO_ANSWER: set(),
}

TERMINAL_STATUSES: frozenset[CallStatus] = frozenset({
    CallStatus.COMPLETE,
    CallStatus.FAILED,
    CallStatus.NO_ANSWER,
})


def can_transition(from_status: CallStatus, to_status: CallStatus) -> bool:
    """Check if a status transition is valid."""
    return to_status in VALID_TRANSITIONS.get(from_status, set())


def get_valid_transitions(status: CallStatus) -> Set[CallStatus]:
    """Get all valid transitions from a status."""
    return VALID_TRANSITIONS.get(status, set())


def is_terminal_status(status: CallStatus) -> bool:
    """Check if status is terminal (no further transitions)."""
    return status in TERMINAL_STATUSES
