"""LLM-backed consensus oracle.

Renders the decide_time prompt, asks a model for a JSON decision and
parses it into a SlotDecision. Any failure propagates to the caller; the
resolver turns it into ResolutionFailed.
"""

from __future__ import annotations

import json
import logging
import re

from cineforum.prompts import render_prompt
from cineforum.providers.base import ModelProvider
from cineforum.providers.litellm_provider import LiteLLMProvider
from cineforum.schemas.config import ModelConfig
from cineforum.schemas.consensus import SlotDecision, SlotRequest

logger = logging.getLogger(__name__)

# Regex for pulling a JSON object out of a fenced or chatty reply
_JSON_BLOCK_RE = re.compile(r"\{.*\}", re.DOTALL)


def parse_slot_decision(content: str, offered: dict[str, int] | None = None) -> SlotDecision:
    """Parse an oracle reply into a SlotDecision.

    Accepts a bare JSON object or one embedded in surrounding text. When
    ``offered`` is given, a chosen slot must be one of its keys.

    Raises:
        ValueError: If the reply has no valid decision.
    """
    match = _JSON_BLOCK_RE.search(content or "")
    if not match:
        raise ValueError("No JSON object in consensus reply")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ValueError(f"Malformed consensus reply: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Consensus reply is not a JSON object")

    decision = SlotDecision.model_validate(data)
    if decision.chosen_slot and offered is not None and decision.chosen_slot not in offered:
        raise ValueError(f"Oracle chose a slot nobody voted for: {decision.chosen_slot!r}")
    return decision


class LLMConsensusOracle:
    """Consensus oracle that delegates the slot decision to a model."""

    def __init__(
        self,
        model_config: ModelConfig,
        timeout: int = 60,
        provider: ModelProvider | None = None,
    ) -> None:
        self._provider = provider or LiteLLMProvider(model_config)
        self._timeout = timeout

    async def decide(self, request: SlotRequest) -> SlotDecision:
        system = render_prompt(
            "decide_time",
            slot_counts=request.slot_counts,
            subject_title=request.subject_title,
            sequence_number=request.sequence_number,
        )
        reply = await self._provider.complete(
            messages=[{
                "role": "user",
                "content": "Decide the debate time as described in your instructions.",
            }],
            system=system,
            json_mode=True,
            timeout=self._timeout,
        )
        decision = parse_slot_decision(
            reply.content, request.slot_counts if request.slot_counts else None,
        )
        logger.info(
            "Consensus oracle (%s) decided: %s",
            reply.model, "cancelled" if decision.cancelled else decision.chosen_slot,
        )
        return decision
