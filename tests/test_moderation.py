"""Tests for the moderator participation rules and the observer that
posts host lines into the live discussion."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from cineforum.events import SessionEventEmitter
from cineforum.moderation import (
    MENTION_PATTERN,
    ModeratorObserver,
    ModeratorTrigger,
    TriggerReason,
)
from cineforum.persistence.database import close_db, init_db
from cineforum.persistence.session import SessionStore
from cineforum.schemas.config import ForumConfig
from cineforum.schemas.messages import EventMessage, MessageRole
from cineforum.schemas.session import Candidate, Member, Phase, SessionDraft
from cineforum.service import CineforumService

ADMIN = Member(member_id="admin", display_name="Admin", is_admin=True)
ANA = Member(member_id="m1", display_name="Ana")
BEN = Member(member_id="m2", display_name="Ben")

# ── Factories ──────────────────────────────────────────────────────


def _rng(value: float) -> MagicMock:
    rng = MagicMock()
    rng.random.return_value = value
    return rng


def _msg(text: str, author_id: str | None = "m1", **overrides) -> EventMessage:
    role = MessageRole.MODERATOR if author_id is None else MessageRole.PARTICIPANT
    defaults = {"session_id": "s1", "author_id": author_id, "role": role, "text": text}
    defaults.update(overrides)
    return EventMessage(**defaults)


def _make_host() -> AsyncMock:
    host = AsyncMock()
    host.greet.return_value = "Welcome, Ana!"
    host.moderator_line.return_value = "Great point. What about the ending?"
    host.welcome.return_value = "Let the cineforum begin!"
    return host


async def _open(tmp_path, probability: float = 0.0):
    db = await init_db(str(tmp_path / "test.db"))
    config = ForumConfig(
        session_db_path=str(tmp_path / "test.db"),
        spontaneous_probability=probability,
        moderator_window=3,
    )
    service = CineforumService(SessionStore(db), config, emitter=SessionEventEmitter())
    session = await service.create_session(
        ADMIN,
        SessionDraft(
            theme_title="Paranoia",
            candidates=[Candidate(candidate_id="A", title="The Conversation")],
        ),
    )
    return db, service, session


def _texts(log: list[EventMessage]) -> list[tuple[MessageRole, str]]:
    return [(m.role, m.text) for m in log]


# ── ModeratorTrigger ───────────────────────────────────────────────


class TestMentionPattern:
    @pytest.mark.parametrize(
        "text", ["@host what do you think?", "hey @IA", "@moderator!", "@bot", "ok @Sistema"],
    )
    def test_matches(self, text):
        assert MENTION_PATTERN.search(text)

    @pytest.mark.parametrize("text", ["host", "email@hostname.com", "@hosting", "@ana"])
    def test_does_not_match(self, text):
        assert not MENTION_PATTERN.search(text)


class TestModeratorTrigger:
    def test_moderator_message_never_triggers(self):
        trigger = ModeratorTrigger(probability=1.0)
        assert trigger.decide(_msg("Hello all", author_id=None), []) == TriggerReason.NONE

    def test_first_message_greets(self):
        trigger = ModeratorTrigger(rng=_rng(0.99))
        earlier = [_msg("hi", author_id="m2")]
        assert trigger.decide(_msg("Hello @host"), earlier) == TriggerReason.GREETING

    def test_mention(self):
        trigger = ModeratorTrigger(rng=_rng(0.99))
        earlier = [_msg("hi"), _msg("Welcome!", author_id=None)]
        assert trigger.decide(_msg("@Host thoughts?"), earlier) == TriggerReason.MENTION

    def test_no_reply_right_after_moderator(self):
        trigger = ModeratorTrigger(probability=1.0, rng=_rng(0.0))
        earlier = [_msg("hi"), _msg("Welcome!", author_id=None)]
        assert trigger.decide(_msg("thanks"), earlier) == TriggerReason.NONE

    def test_spontaneous_below_probability(self):
        trigger = ModeratorTrigger(probability=0.2, rng=_rng(0.1))
        earlier = [_msg("hi"), _msg("hello", author_id="m2")]
        assert trigger.decide(_msg("loved it"), earlier) == TriggerReason.SPONTANEOUS

    def test_silent_above_probability(self):
        trigger = ModeratorTrigger(probability=0.2, rng=_rng(0.5))
        earlier = [_msg("hi"), _msg("hello", author_id="m2")]
        assert trigger.decide(_msg("loved it"), earlier) == TriggerReason.NONE


# ── ModeratorObserver ──────────────────────────────────────────────


class TestModeratorObserver:
    @pytest.mark.asyncio
    async def test_greets_then_answers_mentions(self, tmp_path):
        db, service, session = await _open(tmp_path)
        try:
            host = _make_host()
            observer = ModeratorObserver(service, host)
            observer.attach()
            sid = session.session_id

            await service.post_message(sid, "Hola!", author=ANA)
            await observer.drain()
            await service.post_message(sid, "Loved the sound design", author=ANA)
            await observer.drain()
            await service.post_message(sid, "@host who did the mix?", author=ANA)
            await observer.drain()

            log = await service.messages(sid)
            assert _texts(log) == [
                (MessageRole.PARTICIPANT, "Hola!"),
                (MessageRole.MODERATOR, "Welcome, Ana!"),
                (MessageRole.PARTICIPANT, "Loved the sound design"),
                (MessageRole.PARTICIPANT, "@host who did the mix?"),
                (MessageRole.MODERATOR, "Great point. What about the ending?"),
            ]
            assert log[1].author_id is None
            assert log[1].author_name == "Host"

            host.greet.assert_awaited_once_with("Ana", "Hola!", "Paranoia")
            window = host.moderator_line.call_args.args[0]
            assert [m.text for m in window] == [
                "Welcome, Ana!", "Loved the sound design", "@host who did the mix?",
            ]
        finally:
            await close_db(db)

    @pytest.mark.asyncio
    async def test_welcome_on_entering_discussion(self, tmp_path):
        db, service, session = await _open(tmp_path)
        try:
            host = _make_host()
            observer = ModeratorObserver(service, host)
            observer.attach()
            sid = session.session_id

            await service.advance(ADMIN, sid, Phase.VIEWING)
            await observer.drain()
            host.welcome.assert_not_awaited()

            await service.advance(ADMIN, sid, Phase.DISCUSSION)
            await observer.drain()

            host.welcome.assert_awaited_once_with("The Conversation", "Paranoia")
            log = await service.messages(sid)
            assert _texts(log) == [(MessageRole.MODERATOR, "Let the cineforum begin!")]
        finally:
            await close_db(db)

    @pytest.mark.asyncio
    async def test_own_messages_do_not_loop(self, tmp_path):
        db, service, session = await _open(tmp_path, probability=1.0)
        try:
            host = _make_host()
            observer = ModeratorObserver(service, host)
            observer.attach()

            await service.post_message(
                session.session_id, "Announcement", role=MessageRole.MODERATOR,
            )
            await observer.drain()

            assert len(await service.messages(session.session_id)) == 1
            host.moderator_line.assert_not_awaited()
        finally:
            await close_db(db)

    @pytest.mark.asyncio
    async def test_oracle_failure_does_not_break_append(self, tmp_path):
        db, service, session = await _open(tmp_path)
        try:
            host = _make_host()
            host.greet.side_effect = RuntimeError("boom")
            observer = ModeratorObserver(service, host)
            observer.attach()

            message = await service.post_message(session.session_id, "Hi", author=BEN)
            await observer.drain()

            log = await service.messages(session.session_id)
            assert [m.message_id for m in log] == [message.message_id]
        finally:
            await close_db(db)

    @pytest.mark.asyncio
    async def test_detach(self, tmp_path):
        db, service, session = await _open(tmp_path)
        try:
            host = _make_host()
            observer = ModeratorObserver(service, host)
            observer.attach()
            observer.detach()

            await service.post_message(session.session_id, "Hi", author=ANA)
            await observer.drain()

            host.greet.assert_not_awaited()
        finally:
            await close_db(db)
