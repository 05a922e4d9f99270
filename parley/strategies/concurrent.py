"""
Concurrent Strategy
===================

Every responding agent answers at the same time, from the same history
snapshot. No agent sees another agent's answer from this round: the
answers are simultaneous takes on the user's message.

Flow:
    1. Responders = mentioned agents, or the whole roster
    2. All turns start together and are awaited together
    3. A failed turn has already posted its error message; the others
       still complete
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from parley.models import AIAgent, ChatMessage, ChatSession, Command
from parley.strategies.base import BaseStrategy

logger = logging.getLogger(__name__)


class ConcurrentStrategy(BaseStrategy):
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
        history = self._model_history(session, user_message)

        results = await asyncio.gather(
            *(
                self.runner.run(
                    agent,
                    history,
                    session.id,
                    participant_names,
                    command if idx == 0 else None,
                )
                for idx, agent in enumerate(responders)
            ),
            return_exceptions=True,
        )

        for agent, result in zip(responders, results):
            if isinstance(result, BaseException):
                logger.error(f"Agent '{agent.name}' failed in concurrent mode: {result}")
