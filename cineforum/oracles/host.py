"""LLM-backed host oracle: moderator lines, welcomes, greetings and
personalised candidate pitches.

These are presentation collaborators, not core state. Every call falls
back to a canned line when the model is unavailable, so the discussion
never stalls on the oracle.
"""

from __future__ import annotations

import logging

from cineforum.prompts import render_prompt
from cineforum.providers.base import ModelProvider
from cineforum.providers.litellm_provider import LiteLLMProvider
from cineforum.schemas.config import ModelConfig
from cineforum.schemas.messages import EventMessage, MessageRole

logger = logging.getLogger(__name__)

HOST_NAME = "Host"

_FALLBACK_MODERATOR = "What a film! What did everyone think of the pacing?"
_FALLBACK_WELCOME = (
    "Welcome, everyone! Today we debate this great film. Let the cineforum begin!"
)


def format_history(messages: list[EventMessage]) -> list[dict[str, str]]:
    """Render log entries as {author, text} pairs for the prompts."""
    history = []
    for m in messages:
        if m.role == MessageRole.MODERATOR:
            author = m.author_name or HOST_NAME
        else:
            author = m.author_name or m.author_id or "member"
        history.append({"author": author, "text": m.text})
    return history


class HostOracle:
    """Generates the host's lines for the live discussion."""

    def __init__(
        self,
        model_config: ModelConfig,
        timeout: int = 60,
        provider: ModelProvider | None = None,
    ) -> None:
        self._provider = provider or LiteLLMProvider(model_config)
        self._timeout = timeout

    async def _ask(self, template: str, fallback: str, **variables: object) -> str:
        system = render_prompt(template, **variables)
        try:
            reply = await self._provider.complete(
                messages=[{"role": "user", "content": "Write your line now."}],
                system=system,
                timeout=self._timeout,
            )
        except Exception as e:
            # Provider failures of any kind degrade to the canned line
            logger.warning("Host oracle %s failed, using fallback: %s", template, e)
            return fallback
        text = reply.content.strip()
        return text or fallback

    async def moderator_line(
        self,
        history: list[EventMessage],
        subject_title: str,
        theme_title: str = "",
    ) -> str:
        """A spontaneous or summoned moderator contribution."""
        return await self._ask(
            "moderator",
            _FALLBACK_MODERATOR,
            history=format_history(history),
            subject_title=subject_title,
            theme_title=theme_title,
        )

    async def welcome(self, subject_title: str, theme_title: str = "") -> str:
        """Opening message of the discussion room."""
        return await self._ask(
            "welcome",
            _FALLBACK_WELCOME,
            subject_title=subject_title,
            theme_title=theme_title,
        )

    async def greet(self, member_name: str, text: str, subject_title: str) -> str:
        """One-line welcome for a member's first message."""
        return await self._ask(
            "greeting",
            f"Welcome to the debate, {member_name}!",
            member_name=member_name,
            text=text,
            subject_title=subject_title,
        )

    async def personalize(
        self,
        candidate_title: str,
        generic_reason: str,
        tastes: list[str] | None = None,
    ) -> str:
        """Candidate pitch rewritten for one member. Transient display text."""
        return await self._ask(
            "personalize",
            generic_reason,
            candidate_title=candidate_title,
            generic_reason=generic_reason,
            tastes=(tastes or [])[:15],
        )
