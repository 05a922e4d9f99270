"""
Turn-Based Strategy
===================

Agents answer one after another. Each agent sees the user message plus
everything the agents before it said in this round, so later speakers can
build on or push back against earlier ones.

Example flow (3 agents):
    Pragmatist → Visionary (sees Pragmatist) → Ethicist (sees both)

If an agent's turn fails, the remaining agents don't speak this round.
"""

from __future__ import annotations

import logging
from typing import Optional

from parley.exceptions import AgentTurnError
from parley.models import AIAgent, ChatMessage, ChatSession, Command
from parley.strategies.base import BaseStrategy

logger = logging.getLogger(__name__)


class TurnBasedStrategy(BaseStrategy):
    async def handle_message(
        self,
        session: ChatSession,
        user_message: ChatMessage,
        mentioned_agents: list[AIAgent],
        command: Optional[Command] = None,
    ) -> None:
        participants = self._participants(session)
        responders = self._responders(participants, mentioned_agents)
        participant_names = [p.name for p in participants]
        turn_history = self._model_history(session, user_message)

        for idx, agent in enumerate(responders):
            try:
                new_messages = await self.runner.run(
                    agent,
                    turn_history,
                    session.id,
                    participant_names,
                    command if idx == 0 else None,
                )
            except AgentTurnError as e:
                # The error message is already in the session
                logger.error(f"Error from agent '{agent.name}' in turn-based mode: {e}")
                break
            turn_history.extend(new_messages)
