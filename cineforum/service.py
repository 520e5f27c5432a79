"""Cineforum service: the single entry point for session mutations.

Every mutating operation is an atomic read-modify-write of the session
document. The service loads a snapshot, applies one pure engine operation
to a private copy and writes it back with compare-and-swap on the
``version`` counter. Writers in this process queue on a per-session lock
held across the whole load, apply and swap, so they never lose a race to
each other. A swap lost to another process backs off, reloads and
re-applies the operation against the fresh state, and conflict errors
(FloorOccupied, AlreadyQueued, ...) are raised against the state that
actually won.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TypeVar

from cineforum.consensus.resolver import SlotResolver
from cineforum.engine import ballot, commitments, floor, phases, slots
from cineforum.errors import (
    AlreadyResolved,
    NotAuthorized,
    ResolutionFailed,
    SessionClosed,
    SessionContention,
    SessionNotFound,
)
from cineforum.events import EventType, SessionEventEmitter
from cineforum.persistence.session import SessionStore
from cineforum.schemas.config import ForumConfig
from cineforum.schemas.consensus import SlotDecision, VoteTally
from cineforum.schemas.messages import EventMessage, MessageRole
from cineforum.schemas.session import (
    Candidate,
    CineSession,
    CommitmentKind,
    FinalSlot,
    Member,
    Phase,
    SessionDraft,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CAS_BACKOFF = 0.02  # seconds, scaled by attempt


class CineforumService:
    """Coordinates the engine, the store, the consensus resolver and events.

    Args:
        store: Session store sharing one aiosqlite connection.
        config: Forum settings (deadlines, CAS retry budget).
        resolver: Consensus resolver; resolve/preview fail without one.
        emitter: Event emitter notified after each committed mutation.
    """

    def __init__(
        self,
        store: SessionStore,
        config: ForumConfig | None = None,
        resolver: SlotResolver | None = None,
        emitter: SessionEventEmitter | None = None,
    ) -> None:
        self._store = store
        self._config = config or ForumConfig()
        self._resolver = resolver
        self._emitter = emitter or SessionEventEmitter()
        # One writer per session inside this process
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def config(self) -> ForumConfig:
        return self._config

    @property
    def emitter(self) -> SessionEventEmitter:
        return self._emitter

    # ── Internals ─────────────────────────────────────────────

    @staticmethod
    def _require_admin(actor: Member) -> None:
        if not actor.is_admin:
            raise NotAuthorized(f"{actor.member_id} is not an administrator")

    async def _load(self, session_id: str) -> CineSession:
        session = await self._store.get_session(session_id)
        if session is None:
            raise SessionNotFound(f"Session not found: {session_id}")
        return session

    async def _mutate(
        self, session_id: str, operation: Callable[[CineSession], T],
    ) -> tuple[CineSession, T]:
        """Apply ``operation`` to the session under compare-and-swap.

        ``operation`` mutates the copy it is handed and may raise a
        CineforumError, in which case nothing is written.

        Returns:
            The committed session and the operation's return value.

        Raises:
            SessionNotFound: If the session does not exist.
            SessionClosed: If the session has been closed.
            SessionContention: After max_cas_retries lost races in a row.
        """
        full_id = await self._store.resolve_session_id(session_id)
        if full_id is None:
            raise SessionNotFound(f"Session not found: {session_id}")

        retries = self._config.max_cas_retries
        async with self._locks.setdefault(full_id, asyncio.Lock()):
            for attempt in range(1, retries + 1):
                stored = await self._load(full_id)
                if stored.is_closed:
                    raise SessionClosed(f"Session {stored.session_id} is closed")

                working = stored.model_copy(deep=True)
                result = operation(working)
                if await self._store.compare_and_swap(working, stored.version):
                    return working, result

                # Only a writer in another process can get here
                backoff = random.uniform(0, _CAS_BACKOFF * attempt)
                logger.warning(
                    "Session %s changed concurrently (attempt %d/%d), retrying in %.3fs",
                    stored.session_id, attempt, retries, backoff,
                )
                await asyncio.sleep(backoff)
        raise SessionContention(
            f"Session {session_id} is too busy, gave up after {retries} attempts",
        )

    async def _emit(self, event_type: EventType, session_id: str, **data: object) -> None:
        await self._emitter.emit(event_type, session_id, **data)

    # ── Lifecycle ─────────────────────────────────────────────

    async def create_session(self, actor: Member, draft: SessionDraft) -> CineSession:
        """Open a new cycle from the recommender's candidate supply.

        Any still-active session is closed first. Votes present in the
        supplied candidates are discarded.
        """
        self._require_admin(actor)

        active = await self._store.active_session()
        if active is not None:
            logger.info("Closing active session %s before creating a new one", active.session_id)
            await self.close_session(actor, active.session_id)

        now = datetime.now(UTC)
        session = CineSession(
            theme_title=draft.theme_title,
            theme_description=draft.theme_description,
            reasoning=draft.reasoning,
            backdrop_url=draft.backdrop_url,
            episode_number=await self._store.next_episode_number(),
            candidates=[
                Candidate(**c.model_dump(exclude={"votes"})) for c in draft.candidates
            ],
            created_at=now,
            voting_deadline=now + timedelta(days=self._config.voting_days),
            viewing_deadline=now + timedelta(days=self._config.viewing_days),
        )
        await self._store.create_session(session)
        await self._emit(
            EventType.SESSION_CREATED,
            session.session_id,
            episode_number=session.episode_number,
            theme_title=session.theme_title,
        )
        return session

    async def close_session(self, actor: Member, session_id: str) -> CineSession:
        """Archive the session. Closed sessions reject every mutation."""
        self._require_admin(actor)

        def _close(session: CineSession) -> None:
            session.closed_at = datetime.now(UTC)

        session, _ = await self._mutate(session_id, _close)
        logger.info("Closed session %s", session.session_id)
        await self._emit(EventType.SESSION_CLOSED, session.session_id)
        return session

    async def get_session(self, session_id: str) -> CineSession:
        return await self._load(session_id)

    async def active_session(self) -> CineSession | None:
        return await self._store.active_session()

    # ── Candidate ballot ──────────────────────────────────────

    async def cast_vote(self, session_id: str, member_id: str, candidate_id: str) -> None:
        session, _ = await self._mutate(
            session_id, lambda s: ballot.cast_vote(s, member_id, candidate_id),
        )
        logger.debug("Session %s: %s voted for %s", session.session_id, member_id, candidate_id)
        await self._emit(
            EventType.VOTE_CAST,
            session.session_id,
            member_id=member_id,
            candidate_id=candidate_id,
        )

    async def retract_vote(self, session_id: str, member_id: str) -> bool:
        session, removed = await self._mutate(
            session_id, lambda s: ballot.retract_vote(s, member_id),
        )
        if removed:
            await self._emit(EventType.VOTE_RETRACTED, session.session_id, member_id=member_id)
        return removed

    async def vote_of(self, session_id: str, member_id: str) -> str | None:
        return ballot.vote_of(await self._load(session_id), member_id)

    async def tally(self, session_id: str) -> VoteTally:
        return ballot.tally(await self._load(session_id))

    async def preview_winner(self, actor: Member, session_id: str) -> Candidate | None:
        """The candidate that would win if voting closed now. Read-only."""
        self._require_admin(actor)
        session = await self._load(session_id)
        winner_id = ballot.winner(session)
        return session.candidate(winner_id) if winner_id else None

    # ── Commitments and time slots ────────────────────────────

    async def toggle_commitment(
        self, session_id: str, member_id: str, kind: CommitmentKind,
    ) -> bool:
        session, committed = await self._mutate(
            session_id, lambda s: commitments.toggle_commitment(s, member_id, kind),
        )
        await self._emit(
            EventType.COMMITMENT_TOGGLED,
            session.session_id,
            member_id=member_id,
            kind=kind.value,
            committed=committed,
        )
        return committed

    async def commitment_counts(self, session_id: str) -> dict[str, int]:
        return commitments.commitment_counts(await self._load(session_id))

    async def toggle_slot_vote(self, session_id: str, member_id: str, slot_key: str) -> bool:
        session, voted = await self._mutate(
            session_id, lambda s: slots.toggle_slot_vote(s, member_id, slot_key),
        )
        await self._emit(
            EventType.SLOT_VOTE_TOGGLED,
            session.session_id,
            member_id=member_id,
            slot_key=slot_key,
            voted=voted,
        )
        return voted

    async def slot_counts(self, session_id: str) -> dict[str, int]:
        return slots.slot_counts(await self._load(session_id))

    async def _decide(self, session: CineSession) -> SlotDecision:
        if self._resolver is None:
            raise ResolutionFailed("No consensus oracle configured")
        return await self._resolver.decide(session)

    async def resolve_final_slot(self, actor: Member, session_id: str) -> FinalSlot:
        """Ask the consensus oracle for the debate time and apply it once.

        The oracle runs against a snapshot with nothing held; the decision
        is applied only if ``final_slot`` is still unset when it returns.

        Raises:
            AlreadyResolved: If a final slot exists (before or after the call).
            ResolutionFailed: If the oracle fails; the session is unchanged.
        """
        self._require_admin(actor)
        snapshot = await self._load(session_id)
        if snapshot.is_closed:
            raise SessionClosed(f"Session {snapshot.session_id} is closed")
        if snapshot.final_slot is not None:
            raise AlreadyResolved(f"Final slot already set: {snapshot.final_slot.label}")

        decision = await self._decide(snapshot)
        session, final = await self._mutate(
            session_id, lambda s: slots.apply_decision(s, decision),
        )
        logger.info("Session %s: final slot %s", session.session_id, final.label)
        await self._emit(
            EventType.FINAL_SLOT_RESOLVED,
            session.session_id,
            slot=final.slot,
            cancelled=final.cancelled,
            message=final.message,
        )
        return final

    async def preview_final_slot(self, actor: Member, session_id: str) -> SlotDecision:
        """What the oracle would decide now, without applying it."""
        self._require_admin(actor)
        return await self._decide(await self._load(session_id))

    # ── Phases ────────────────────────────────────────────────

    async def advance(
        self,
        actor: Member,
        session_id: str,
        next_phase: Phase,
        winner_id: str | None = None,
    ) -> CineSession:
        """Administrative phase move along the transition table.

        Moving voting → viewing at any time is the forced close of voting;
        the winner is computed on the same snapshot that is written.
        """
        self._require_admin(actor)
        session, previous = await self._mutate(
            session_id, lambda s: phases.advance(s, next_phase, winner_id),
        )
        logger.info(
            "Session %s: phase %s -> %s", session.session_id, previous, session.phase,
        )
        await self._emit(
            EventType.PHASE_CHANGED,
            session.session_id,
            previous=previous.value,
            phase=session.phase.value,
            winner_id=session.winner_id,
        )
        return session

    async def revert(self, actor: Member, session_id: str) -> CineSession:
        """Emergency discussion → viewing rollback."""
        self._require_admin(actor)
        session, previous = await self._mutate(session_id, phases.revert)
        logger.info("Session %s: reverted to %s", session.session_id, session.phase)
        await self._emit(
            EventType.PHASE_CHANGED,
            session.session_id,
            previous=previous.value,
            phase=session.phase.value,
            winner_id=session.winner_id,
        )
        return session

    # ── Floor ─────────────────────────────────────────────────

    async def raise_hand(self, session_id: str, member_id: str) -> int:
        """Join the speaker queue. Returns the 0-based queue position."""
        session, position = await self._mutate(
            session_id, lambda s: floor.raise_hand(s, member_id),
        )
        await self._emit(
            EventType.HAND_RAISED, session.session_id, member_id=member_id, position=position,
        )
        return position

    async def lower_hand(self, session_id: str, member_id: str) -> bool:
        session, lowered = await self._mutate(
            session_id, lambda s: floor.lower_hand(s, member_id),
        )
        if lowered:
            await self._emit(EventType.HAND_LOWERED, session.session_id, member_id=member_id)
        return lowered

    async def grant_turn(self, actor: Member, session_id: str, member_id: str) -> None:
        self._require_admin(actor)
        session, _ = await self._mutate(
            session_id, lambda s: floor.grant_turn(s, member_id),
        )
        await self._emit(EventType.TURN_GRANTED, session.session_id, member_id=member_id)

    async def release_turn(self, session_id: str, member_id: str) -> None:
        session, _ = await self._mutate(
            session_id, lambda s: floor.release_turn(s, member_id),
        )
        await self._emit(EventType.TURN_RELEASED, session.session_id, member_id=member_id)

    async def revoke_turn(self, actor: Member, session_id: str) -> str | None:
        """Take the floor back from whoever holds it. Returns the former speaker."""
        self._require_admin(actor)
        session, previous = await self._mutate(session_id, floor.revoke_turn)
        if previous is not None:
            await self._emit(EventType.TURN_REVOKED, session.session_id, member_id=previous)
        return previous

    async def queue_head(self, session_id: str) -> str | None:
        return floor.queue_head(await self._load(session_id))

    # ── Message log ───────────────────────────────────────────

    async def post_message(
        self,
        session_id: str,
        text: str,
        author: Member | None = None,
        role: MessageRole = MessageRole.PARTICIPANT,
        audio_ref: str | None = None,
    ) -> EventMessage:
        """Append to the discussion log.

        Moderator messages carry no author id. The timestamp is assigned by
        the store at append time.
        """
        session = await self._load(session_id)
        if session.is_closed:
            raise SessionClosed(f"Session {session.session_id} is closed")

        if role == MessageRole.MODERATOR:
            author_id = None
            author_name = author.display_name if author else ""
        else:
            if author is None:
                raise ValueError("Participant messages need an author")
            author_id = author.member_id
            author_name = author.display_name or author.member_id

        message = await self._store.append_message(
            EventMessage(
                session_id=session.session_id,
                author_id=author_id,
                author_name=author_name,
                role=role,
                text=text,
                audio_ref=audio_ref,
            ),
        )
        await self._emit(
            EventType.MESSAGE_APPENDED,
            session.session_id,
            message=message.model_dump(mode="json"),
        )
        return message

    async def messages(self, session_id: str) -> list[EventMessage]:
        session = await self._load(session_id)
        return await self._store.list_messages(session.session_id)

    async def recent_messages(
        self, session_id: str, limit: int | None = None,
    ) -> list[EventMessage]:
        """The bounded window of recent messages fed to the moderator."""
        session = await self._load(session_id)
        return await self._store.recent_messages(
            session.session_id, limit or self._config.moderator_window,
        )
