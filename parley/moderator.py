"""
Moderator
=========

The moderator is a decision-maker backed by the AI provider. Given the
conversation so far it either selects the next agent to speak or hands
control back to the user. It never speaks in the chat itself; the moderated
strategy turns its decisions into short system announcements.
"""

from __future__ import annotations

import logging
from typing import Optional

from parley.agent import build_moderator_instruction
from parley.models import ChatMessage, ModeratorAction, ModeratorDecision
from parley.providers.base import AIProvider, TextOptions
from parley.tools import MODERATOR_TOOLS, PASS_CONTROL_TO_USER, SELECT_NEXT_SPEAKER

logger = logging.getLogger(__name__)


class Moderator:
    def __init__(self, provider: AIProvider, temperature: Optional[float] = None):
        self.provider = provider
        self.temperature = temperature

    async def decide(
        self,
        history: list[ChatMessage],
        participant_names: list[str],
        spoken_names: list[str],
        mentioned_names: list[str],
    ) -> Optional[ModeratorDecision]:
        """
        Ask the provider for the next moderation step.

        Returns:
            The decision from the first moderator tool call, or None when the
            provider answered without a recognised tool call (callers treat
            that as handing control back to the user).

        Raises:
            Whatever the provider raises; the moderated strategy decides how
            to handle it.
        """
        instruction = build_moderator_instruction(
            history, participant_names, spoken_names, mentioned_names
        )
        response = await self.provider.generate_with_tools(
            history,
            MODERATOR_TOOLS,
            instruction,
            TextOptions(temperature=self.temperature),
        )
        if not response.tool_calls:
            logger.info("Moderator answered without a tool call")
            return None

        call = response.tool_calls[0]
        reason = str(call.args.get("reason", ""))
        if call.name == SELECT_NEXT_SPEAKER:
            return ModeratorDecision(
                action=ModeratorAction.SELECT_NEXT_SPEAKER,
                agent_name=str(call.args.get("agent_name", "")),
                reason=reason,
            )
        if call.name == PASS_CONTROL_TO_USER:
            return ModeratorDecision(action=ModeratorAction.PASS_CONTROL_TO_USER, reason=reason)

        logger.warning(f"Moderator called unknown tool: {call.name}")
        return None
