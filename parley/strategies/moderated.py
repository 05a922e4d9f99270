"""
Moderated Strategy
==================

A moderator repeatedly picks who speaks next until it hands control back
to the user. Each pick is announced in the chat as a system message with
the moderator's reason.

Flow:
    1. Ask the moderator for a decision (history, roster, who already
       spoke this round, who the user mentioned)
    2. ``pass_control_to_user`` (or no decision) → announce and stop
    3. ``select_next_speaker`` with an unknown name → warn and ask again
    4. ``select_next_speaker`` with a valid name → announce, run that
       agent's turn, add its messages to the local history, ask again

The loop is bounded at roster size + ``moderator_extra_turns`` iterations,
counting invalid picks, so a moderator that never yields still terminates.
"""

from __future__ import annotations

import logging
from typing import Optional

from parley.exceptions import AgentTurnError
from parley.models import (
    AIAgent,
    ChatMessage,
    ChatSession,
    Command,
    ModeratorAction,
    Role,
)
from parley.strategies.base import BaseStrategy

logger = logging.getLogger(__name__)

DEFAULT_HAND_BACK_REASON = "The discussion goal has been met."
MODERATOR_ERROR_TEXT = "[Moderator]: Sorry, I encountered an error. Please try again."


class ModeratedStrategy(BaseStrategy):
    """
    Moderator-driven speaker selection.

    Example flow (Debate Chamber, user asks "Should cities ban cars?"):
        Moderator chose The Pragmatist → Pragmatist answers
        Moderator chose The Ethicist   → Ethicist answers
        Moderator passes control back  → "[Moderator]: Both angles covered."
    """

    def max_turns(self, participant_count: int) -> int:
        return participant_count + self.moderator_extra_turns

    async def handle_message(
        self,
        session: ChatSession,
        user_message: ChatMessage,
        mentioned_agents: list[AIAgent],
        command: Optional[Command] = None,
    ) -> None:
        if self.moderator is None:
            raise ValueError("ModeratedStrategy requires a moderator")

        participants = self._participants(session)
        participant_names = [p.name for p in participants]
        mentioned_names = [a.name for a in mentioned_agents]
        turn_history = self._model_history(session, user_message)
        spoken_names: list[str] = []
        pending_command = command
        max_turns = self.max_turns(len(participants))

        turns = 0
        while turns < max_turns:
            turns += 1

            try:
                decision = await self.moderator.decide(
                    turn_history, participant_names, list(spoken_names), mentioned_names
                )
            except Exception as e:
                logger.exception(f"Moderator failed in session {session.id}: {e}")
                self._announce(session, MODERATOR_ERROR_TEXT)
                break

            if decision is None or decision.action == ModeratorAction.PASS_CONTROL_TO_USER:
                reason = (decision.reason if decision else "") or DEFAULT_HAND_BACK_REASON
                self._announce(session, f"[Moderator]: {reason}")
                break

            next_agent = next((p for p in participants if p.name == decision.agent_name), None)
            if next_agent is None:
                logger.warning(f"Moderator chose an invalid agent: {decision.agent_name}")
                continue

            self._announce(session, f"[Moderator chose {next_agent.name}]: {decision.reason}")

            try:
                new_messages = await self.runner.run(
                    next_agent,
                    turn_history,
                    session.id,
                    participant_names,
                    pending_command,
                )
            except AgentTurnError as e:
                # The error message is already in the session
                logger.error(f"Error during agent '{next_agent.name}' turn: {e}")
                break

            pending_command = None
            turn_history.extend(new_messages)
            if next_agent.name not in spoken_names:
                spoken_names.append(next_agent.name)
        else:
            logger.info(
                f"Moderated loop in session {session.id} stopped after {max_turns} turns"
            )

    def _announce(self, session: ChatSession, content: str) -> None:
        self.sink.add_message(session.id, ChatMessage(role=Role.SYSTEM, content=content))
