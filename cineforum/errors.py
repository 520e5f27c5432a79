"""Error kinds raised by the cineforum core.

Every error is recoverable: the operation that raised it had no effect on
the stored session. All exceptions inherit from CineforumError and carry a
stable ``code`` that callers can surface without parsing the message.
"""

from __future__ import annotations


class CineforumError(Exception):
    """Base class for all rejected cineforum operations."""

    code = "cineforum_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


# ── Lifecycle ────────────────────────────────────────────────────


class SessionNotFound(CineforumError):
    """Raised when no session exists for the given id."""

    code = "session_not_found"


class SessionClosed(CineforumError):
    """Raised when mutating a session that has already been closed."""

    code = "session_closed"


class NotAuthorized(CineforumError):
    """Raised when a non-admin member attempts a privileged operation."""

    code = "not_authorized"


class SessionContention(CineforumError):
    """Raised when a mutation keeps losing the compare-and-swap race."""

    code = "session_contention"


# ── Phases and ballots ───────────────────────────────────────────


class InvalidPhase(CineforumError):
    """Raised when an operation is not allowed in the current phase."""

    code = "invalid_phase"


class IllegalTransition(CineforumError):
    """Raised when a phase change is not an edge of the transition table."""

    code = "illegal_transition"


class UnknownCandidate(CineforumError):
    """Raised when a candidate id is not part of the session's ballot."""

    code = "unknown_candidate"


class NotCommitted(CineforumError):
    """Raised when a member who has not committed to debate votes on time."""

    code = "not_committed"


class SlotAlreadyFinal(CineforumError):
    """Raised when voting on a time slot after the final slot was chosen."""

    code = "slot_already_final"


class AlreadyResolved(CineforumError):
    """Raised when the final slot has already been written."""

    code = "already_resolved"


class ResolutionFailed(CineforumError):
    """Raised when the consensus oracle fails, times out or replies garbage.

    The session is untouched, so the administrator may simply retry.
    """

    code = "resolution_failed"


# ── Floor ────────────────────────────────────────────────────────


class FloorOccupied(CineforumError):
    """Raised when granting the floor while someone already holds it."""

    code = "floor_occupied"


class NotCurrentSpeaker(CineforumError):
    """Raised when a member who does not hold the floor tries to release it."""

    code = "not_current_speaker"


class AlreadyQueued(CineforumError):
    """Raised when raising a hand that is already raised."""

    code = "already_queued"


class AlreadySpeaking(CineforumError):
    """Raised when the current speaker raises a hand."""

    code = "already_speaking"
