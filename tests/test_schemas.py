"""Tests for cineforum.schemas and the error kinds."""

import uuid

import pytest
from pydantic import ValidationError

from cineforum import errors
from cineforum.schemas import (
    Candidate,
    CineSession,
    FinalSlot,
    ForumConfig,
    Phase,
    SessionDraft,
    SessionQuery,
    SlotCategory,
    SlotDecision,
    TokenUsage,
)


class TestPhase:
    def test_values(self):
        assert [p.value for p in Phase] == ["voting", "viewing", "discussion"]

    def test_from_string(self):
        assert Phase("viewing") == Phase.VIEWING


class TestCineSession:
    def test_defaults(self):
        session = CineSession()
        uuid.UUID(session.session_id)
        assert session.version == 0
        assert session.phase == Phase.VOTING
        assert session.winner is None
        assert not session.is_closed

    def test_winner_lookup(self):
        session = CineSession(
            candidates=[Candidate(candidate_id="A", title="Klute")], winner_id="A",
        )
        assert session.winner.title == "Klute"
        assert session.candidate("Z") is None

    def test_json_round_trip_keeps_sets_as_lists(self):
        session = CineSession(
            committed_debaters=["m1"], time_votes={"Fri Night 20:00": ["m1"]},
        )
        restored = CineSession.model_validate_json(session.model_dump_json())
        assert restored == session

    def test_negative_version_rejected(self):
        with pytest.raises(ValidationError):
            CineSession(version=-1)


class TestSessionDraft:
    def test_valid(self):
        draft = SessionDraft(candidates=[Candidate(candidate_id="A", title="Klute")])
        assert draft.theme_title == "Cineforum"

    def test_requires_candidates(self):
        with pytest.raises(ValidationError):
            SessionDraft(candidates=[])

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValidationError, match="unique"):
            SessionDraft(candidates=[
                Candidate(candidate_id="A", title="Klute"),
                Candidate(candidate_id="A", title="Blow Out"),
            ])


class TestFinalSlot:
    def test_label(self):
        assert FinalSlot(slot="Fri Night 20:00").label == "Fri Night 20:00"
        assert FinalSlot(cancelled=True).label == "cancelled"


class TestSlotDecision:
    def test_chosen(self):
        assert SlotDecision(chosen_slot="Fri Night 20:00").cancelled is False

    def test_cancelled(self):
        assert SlotDecision(cancelled=True).chosen_slot is None

    @pytest.mark.parametrize(
        "kwargs", [{}, {"chosen_slot": ""}, {"chosen_slot": "Fri Night 20:00", "cancelled": True}],
    )
    def test_exactly_one_outcome(self, kwargs):
        with pytest.raises(ValidationError):
            SlotDecision(**kwargs)


class TestConfigSchemas:
    def test_slot_keys(self):
        category = SlotCategory(id="fri", label="Fri Night", hours=["20:00", "21:00"])
        assert category.slot_keys() == ["Fri Night 20:00", "Fri Night 21:00"]

    def test_forum_defaults(self):
        config = ForumConfig()
        assert config.max_cas_retries == 8
        assert config.moderator_window == 10

    def test_probability_bounds(self):
        with pytest.raises(ValidationError):
            ForumConfig(spontaneous_probability=-0.1)

    def test_query_limit_bounds(self):
        with pytest.raises(ValidationError):
            SessionQuery(limit=0)

    def test_token_usage_non_negative(self):
        with pytest.raises(ValidationError):
            TokenUsage(prompt_tokens=-1, completion_tokens=0, cost=0.0)


class TestErrors:
    @pytest.mark.parametrize(
        ("cls", "code"),
        [
            (errors.SessionNotFound, "session_not_found"),
            (errors.SessionClosed, "session_closed"),
            (errors.NotAuthorized, "not_authorized"),
            (errors.SessionContention, "session_contention"),
            (errors.InvalidPhase, "invalid_phase"),
            (errors.IllegalTransition, "illegal_transition"),
            (errors.UnknownCandidate, "unknown_candidate"),
            (errors.NotCommitted, "not_committed"),
            (errors.SlotAlreadyFinal, "slot_already_final"),
            (errors.AlreadyResolved, "already_resolved"),
            (errors.ResolutionFailed, "resolution_failed"),
            (errors.FloorOccupied, "floor_occupied"),
            (errors.NotCurrentSpeaker, "not_current_speaker"),
            (errors.AlreadyQueued, "already_queued"),
            (errors.AlreadySpeaking, "already_speaking"),
        ],
    )
    def test_codes(self, cls, code):
        err = cls("detail")
        assert isinstance(err, errors.CineforumError)
        assert err.code == code
        assert err.message == "detail"

    def test_message_defaults_to_code(self):
        assert str(errors.FloorOccupied()) == "floor_occupied"
