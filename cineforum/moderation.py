"""Moderator participation in the live discussion.

ModeratorTrigger decides, from a message and the log before it, whether
the host should speak. ModeratorObserver is an optional listener on the
session event emitter that asks the HostOracle for a line and posts it as
a moderator message. Neither holds any session state of its own.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from collections.abc import Coroutine
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from cineforum.events import EventType, SessionEvent
from cineforum.oracles.host import HOST_NAME, HostOracle
from cineforum.schemas.messages import EventMessage, MessageRole
from cineforum.schemas.session import Member, Phase

if TYPE_CHECKING:
    from cineforum.service import CineforumService

logger = logging.getLogger(__name__)

MENTION_PATTERN = re.compile(
    r"@(ia|moderadora|bot|sistema|moderator|host)\b", re.IGNORECASE,
)


class TriggerReason(StrEnum):
    """Why the moderator should speak (or NONE)."""

    NONE = "none"
    GREETING = "greeting"
    MENTION = "mention"
    SPONTANEOUS = "spontaneous"


class ModeratorTrigger:
    """Stateless participation rules for the host.

    Args:
        probability: Chance of a spontaneous reply to an ordinary message.
        rng: Random source, injectable for deterministic tests.
    """

    def __init__(self, probability: float = 0.20, rng: random.Random | None = None) -> None:
        self._probability = probability
        self._rng = rng or random.Random()

    def decide(self, message: EventMessage, earlier: list[EventMessage]) -> TriggerReason:
        """Decide whether the host answers ``message``.

        ``earlier`` is the log before ``message``, oldest first.
        """
        if message.role == MessageRole.MODERATOR:
            return TriggerReason.NONE
        if not any(m.author_id == message.author_id for m in earlier):
            return TriggerReason.GREETING
        if MENTION_PATTERN.search(message.text):
            return TriggerReason.MENTION
        if earlier and earlier[-1].role == MessageRole.MODERATOR:
            return TriggerReason.NONE
        if self._rng.random() < self._probability:
            return TriggerReason.SPONTANEOUS
        return TriggerReason.NONE


class ModeratorObserver:
    """Posts host lines in reaction to session events.

    Replies run as background tasks so the member's own append returns
    immediately; ``drain()`` waits for the pending ones.
    """

    def __init__(
        self,
        service: CineforumService,
        host: HostOracle,
        trigger: ModeratorTrigger | None = None,
    ) -> None:
        self._service = service
        self._host = host
        self._trigger = trigger or ModeratorTrigger(
            service.config.spontaneous_probability,
        )
        self._tasks: set[asyncio.Task] = set()

    def attach(self) -> None:
        self._service.emitter.add_listener(self.on_event)

    def detach(self) -> None:
        self._service.emitter.remove_listener(self.on_event)

    def on_event(self, event: SessionEvent) -> None:
        if event.type == EventType.MESSAGE_APPENDED:
            message = EventMessage.model_validate(event.data["message"])
            if message.role == MessageRole.MODERATOR:
                return
            self._spawn(self._reply(message))
        elif (
            event.type == EventType.PHASE_CHANGED
            and event.data.get("phase") == Phase.DISCUSSION.value
        ):
            self._spawn(self._welcome(event.session_id))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Host reply failed: %s", task.exception())

    async def drain(self) -> None:
        """Wait until every pending host reply has been posted."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _post(self, session_id: str, text: str) -> None:
        await self._service.post_message(
            session_id,
            text,
            author=Member(member_id="host", display_name=HOST_NAME),
            role=MessageRole.MODERATOR,
        )

    async def _reply(self, message: EventMessage) -> None:
        session = await self._service.get_session(message.session_id)
        log = await self._service.messages(message.session_id)
        position = next(
            (i for i, m in enumerate(log) if m.message_id == message.message_id), len(log),
        )
        earlier = log[:position]

        reason = self._trigger.decide(message, earlier)
        if reason == TriggerReason.NONE:
            return
        logger.debug("Host replying in %s (%s)", session.session_id, reason)

        winner = session.winner
        subject = winner.title if winner else session.theme_title
        if reason == TriggerReason.GREETING:
            text = await self._host.greet(message.author_name, message.text, subject)
        else:
            window = log[-self._service.config.moderator_window:]
            text = await self._host.moderator_line(window, subject, session.theme_title)
        await self._post(session.session_id, text)

    async def _welcome(self, session_id: str) -> None:
        session = await self._service.get_session(session_id)
        winner = session.winner
        text = await self._host.welcome(
            winner.title if winner else session.theme_title, session.theme_title,
        )
        await self._post(session.session_id, text)
