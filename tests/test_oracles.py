"""Tests for the consensus resolver and the LLM-backed oracles.

Covers slot-decision parsing, LLMConsensusOracle and HostOracle against a
mocked provider, and SlotResolver's timeout and failure handling.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import litellm
import pytest

from cineforum.consensus.resolver import SlotResolver, build_slot_request
from cineforum.errors import InvalidPhase, ResolutionFailed
from cineforum.oracles.consensus import LLMConsensusOracle, parse_slot_decision
from cineforum.oracles.host import HostOracle, format_history
from cineforum.prompts import render_prompt
from cineforum.schemas.config import ModelConfig
from cineforum.schemas.consensus import SlotDecision, SlotRequest
from cineforum.schemas.messages import EventMessage, MessageRole
from cineforum.schemas.oracle import ModelReply
from cineforum.schemas.session import Candidate, CineSession, Phase

# ── Factories ──────────────────────────────────────────────────────


def _make_model_config(**overrides) -> ModelConfig:
    defaults = {
        "provider": "test",
        "model": "test/model-v1",
        "display_name": "Test Model",
        "api_key_env": "TEST_KEY",
        "context_window": 128000,
        "supports_structured": True,
        "cost_input": 1.0,
        "cost_output": 2.0,
    }
    defaults.update(overrides)
    return ModelConfig(**defaults)


def _make_provider(content: str = "", side_effect=None) -> MagicMock:
    provider = MagicMock()
    provider.complete = AsyncMock(
        return_value=ModelReply(content=content, model="test/model-v1"),
        side_effect=side_effect,
    )
    return provider


def _make_request(**overrides) -> SlotRequest:
    defaults = {
        "slot_counts": {"Fri Night 20:00": 3, "Sat Night 21:00": 1},
        "subject_title": "Blow Out",
        "sequence_number": 4,
    }
    defaults.update(overrides)
    return SlotRequest(**defaults)


def _make_session(**overrides) -> CineSession:
    defaults = {
        "phase": Phase.VIEWING,
        "episode_number": 4,
        "candidates": [Candidate(candidate_id="B", title="Blow Out")],
        "winner_id": "B",
        "time_votes": {"Fri Night 20:00": ["m1", "m2"]},
    }
    defaults.update(overrides)
    return CineSession(**defaults)


def _make_message(text: str, **overrides) -> EventMessage:
    defaults = {"session_id": "s1", "author_id": "m1", "author_name": "Ana", "text": text}
    defaults.update(overrides)
    return EventMessage(**defaults)


# ── parse_slot_decision ────────────────────────────────────────────


class TestParseSlotDecision:
    def test_bare_json(self):
        decision = parse_slot_decision(
            '{"chosen_slot": "Fri Night 20:00", "cancelled": false, "message": "Friday!"}',
        )
        assert decision.chosen_slot == "Fri Night 20:00"
        assert decision.message == "Friday!"

    def test_json_inside_code_fence(self):
        content = '```json\n{"chosen_slot": null, "cancelled": true, "message": "Too few"}\n```'
        decision = parse_slot_decision(content)
        assert decision.cancelled
        assert decision.chosen_slot is None

    def test_no_json(self):
        with pytest.raises(ValueError, match="No JSON"):
            parse_slot_decision("Friday at eight sounds good")

    def test_malformed_json(self):
        with pytest.raises(ValueError, match="Malformed"):
            parse_slot_decision('{"chosen_slot": "Fri Night 20:00",}')

    def test_neither_outcome(self):
        with pytest.raises(ValueError):
            parse_slot_decision('{"cancelled": false, "message": "hmm"}')

    def test_both_outcomes(self):
        with pytest.raises(ValueError):
            parse_slot_decision('{"chosen_slot": "Fri Night 20:00", "cancelled": true}')

    def test_slot_must_have_been_offered(self):
        with pytest.raises(ValueError, match="nobody voted for"):
            parse_slot_decision(
                '{"chosen_slot": "Sun Morning 10:00"}', offered={"Fri Night 20:00": 2},
            )


# ── LLMConsensusOracle ─────────────────────────────────────────────


class TestLLMConsensusOracle:
    @pytest.mark.asyncio
    async def test_decide_renders_prompt_and_parses(self):
        provider = _make_provider(
            '{"chosen_slot": "Fri Night 20:00", "cancelled": false, "message": "See you"}',
        )
        oracle = LLMConsensusOracle(_make_model_config(), timeout=20, provider=provider)

        decision = await oracle.decide(_make_request())

        assert decision.chosen_slot == "Fri Night 20:00"
        kwargs = provider.complete.call_args.kwargs
        assert kwargs["json_mode"] is True
        assert kwargs["timeout"] == 20
        assert "Blow Out" in kwargs["system"]
        assert "episode #4" in kwargs["system"]
        assert "- Fri Night 20:00: 3 available" in kwargs["system"]

    @pytest.mark.asyncio
    async def test_zero_votes_prompt(self):
        provider = _make_provider('{"cancelled": true, "message": "Nobody can make it"}')
        oracle = LLMConsensusOracle(_make_model_config(), provider=provider)

        decision = await oracle.decide(_make_request(slot_counts={}))

        assert decision.cancelled
        assert "nobody has voted" in provider.complete.call_args.kwargs["system"]

    @pytest.mark.asyncio
    async def test_unoffered_slot_rejected(self):
        provider = _make_provider('{"chosen_slot": "Sun Night 23:00"}')
        oracle = LLMConsensusOracle(_make_model_config(), provider=provider)

        with pytest.raises(ValueError):
            await oracle.decide(_make_request())


# ── SlotResolver ───────────────────────────────────────────────────


class TestSlotResolver:
    def test_build_slot_request(self):
        request = build_slot_request(_make_session())
        assert request.slot_counts == {"Fri Night 20:00": 2}
        assert request.subject_title == "Blow Out"
        assert request.sequence_number == 4

    def test_build_slot_request_needs_winner(self):
        with pytest.raises(InvalidPhase):
            build_slot_request(_make_session(phase=Phase.VOTING, winner_id=None))

    @pytest.mark.asyncio
    async def test_passes_decision_through(self):
        oracle = MagicMock()
        oracle.decide = AsyncMock(return_value=SlotDecision(chosen_slot="Fri Night 20:00"))

        decision = await SlotResolver(oracle).decide(_make_session())

        assert decision.chosen_slot == "Fri Night 20:00"

    @pytest.mark.asyncio
    async def test_timeout_becomes_resolution_failed(self):
        async def _hang(request):
            await asyncio.sleep(10)

        oracle = MagicMock()
        oracle.decide = _hang

        with pytest.raises(ResolutionFailed, match="timed out"):
            await SlotResolver(oracle, timeout=0.01).decide(_make_session())

    @pytest.mark.asyncio
    async def test_unparseable_reply_becomes_resolution_failed(self):
        oracle = LLMConsensusOracle(_make_model_config(), provider=_make_provider("no idea"))

        with pytest.raises(ResolutionFailed) as exc_info:
            await SlotResolver(oracle).decide(_make_session())
        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_non_decision_reply(self):
        oracle = MagicMock()
        oracle.decide = AsyncMock(return_value={"chosen_slot": "Fri Night 20:00"})

        with pytest.raises(ResolutionFailed):
            await SlotResolver(oracle).decide(_make_session())


# ── HostOracle ─────────────────────────────────────────────────────


class TestHostOracle:
    def test_format_history(self):
        history = format_history([
            _make_message("Great film"),
            _make_message("Agreed!", author_id=None, author_name="", role=MessageRole.MODERATOR),
        ])
        assert history == [
            {"author": "Ana", "text": "Great film"},
            {"author": "Host", "text": "Agreed!"},
        ]

    @pytest.mark.asyncio
    async def test_moderator_line_uses_window(self):
        provider = _make_provider("  What about the ending, Ana?  ")
        host = HostOracle(_make_model_config(), provider=provider)

        line = await host.moderator_line([_make_message("The ending!")], "Blow Out", "Paranoia")

        assert line == "What about the ending, Ana?"
        system = provider.complete.call_args.kwargs["system"]
        assert "Ana: The ending!" in system
        assert "Paranoia" in system

    @pytest.mark.asyncio
    async def test_falls_back_on_provider_failure(self):
        provider = _make_provider(side_effect=RuntimeError("down"))
        host = HostOracle(_make_model_config(), provider=provider)

        assert await host.greet("Ana", "hola", "Blow Out") == "Welcome to the debate, Ana!"
        assert "Welcome" in await host.welcome("Blow Out")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            litellm.NotFoundError(message="model not found", model="test", llm_provider="test"),
            TimeoutError("slow"),
            ValueError("unexpected payload"),
        ],
    )
    async def test_falls_back_on_any_provider_error(self, error, caplog):
        host = HostOracle(_make_model_config(), provider=_make_provider(side_effect=error))

        assert "Welcome" in await host.welcome("Blow Out")
        assert await host.moderator_line([], "Blow Out") != ""
        assert "using fallback" in caplog.text

    @pytest.mark.asyncio
    async def test_falls_back_on_empty_reply(self):
        host = HostOracle(_make_model_config(), provider=_make_provider("   "))
        reason = "A paranoid thriller about sound."
        assert await host.personalize("Blow Out", reason) == reason

    @pytest.mark.asyncio
    async def test_personalize_limits_tastes(self):
        provider = _make_provider("Made for you.")
        host = HostOracle(_make_model_config(), provider=provider)

        await host.personalize("Blow Out", "reason", tastes=[f"film {i}" for i in range(30)])

        system = provider.complete.call_args.kwargs["system"]
        assert "film 14" in system
        assert "film 15" not in system


def test_all_prompts_render():
    for name in ("decide_time", "moderator", "welcome", "greeting", "personalize"):
        assert render_prompt(name, subject_title="Blow Out").strip()


def test_missing_prompt():
    with pytest.raises(FileNotFoundError):
        render_prompt("does_not_exist")
