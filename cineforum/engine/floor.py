"""Turn arbitration: a single shared floor and a FIFO queue of raised hands.

Releasing the floor never hands it to the next member automatically;
every grant is an explicit administrator decision.
"""

from __future__ import annotations

from cineforum.errors import (
    AlreadyQueued,
    AlreadySpeaking,
    FloorOccupied,
    InvalidPhase,
    NotCurrentSpeaker,
)
from cineforum.schemas.session import CineSession, Phase


def _require_discussion(session: CineSession) -> None:
    if session.phase != Phase.DISCUSSION:
        raise InvalidPhase(f"The floor only exists during discussion (phase: {session.phase})")


def raise_hand(session: CineSession, member_id: str) -> int:
    """Queue the member. Returns their 0-based queue position."""
    _require_discussion(session)
    if session.current_speaker_id == member_id:
        raise AlreadySpeaking(f"{member_id} already holds the floor")
    if member_id in session.speaker_queue:
        raise AlreadyQueued(f"{member_id} is already in the queue")
    session.speaker_queue.append(member_id)
    return len(session.speaker_queue) - 1


def lower_hand(session: CineSession, member_id: str) -> bool:
    """Leave the queue voluntarily. Idempotent; returns whether it changed."""
    _require_discussion(session)
    if member_id not in session.speaker_queue:
        return False
    session.speaker_queue.remove(member_id)
    return True


def grant_turn(session: CineSession, member_id: str) -> None:
    """Give the open floor to ``member_id`` (queued or not)."""
    _require_discussion(session)
    if session.current_speaker_id is not None:
        raise FloorOccupied(f"{session.current_speaker_id} holds the floor")
    if member_id in session.speaker_queue:
        session.speaker_queue.remove(member_id)
    session.current_speaker_id = member_id


def release_turn(session: CineSession, member_id: str) -> None:
    _require_discussion(session)
    if session.current_speaker_id != member_id:
        raise NotCurrentSpeaker(f"{member_id} does not hold the floor")
    session.current_speaker_id = None


def revoke_turn(session: CineSession) -> str | None:
    """Take the floor back from whoever holds it. Returns the previous speaker."""
    _require_discussion(session)
    previous = session.current_speaker_id
    session.current_speaker_id = None
    return previous


def queue_head(session: CineSession) -> str | None:
    return session.speaker_queue[0] if session.speaker_queue else None
