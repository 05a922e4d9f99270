"""
Base Strategy
=============

Abstract base class for all discussion strategies. A strategy decides which
agents answer one incoming user message, and in what order.

A strategy is responsible for:
    1. Choosing the responding agents (mentions narrow the set)
    2. What history snapshot each agent sees
    3. Whether agents run in parallel or one after another
    4. When the sequence stops (completion, error, moderator hand-back)

Strategies never write agent answers themselves: the turn runner appends
them. Strategies only append system announcements through the sink.
"""

from __future__ import annotations

import abc
from typing import Optional, Protocol

from parley.agent import AgentRegistry
from parley.models import AIAgent, ChatMessage, ChatSession, Command, Role
from parley.moderator import Moderator
from parley.runner import AgentTurnRunner


class SessionSink(Protocol):
    def add_message(self, session_id: str, message: ChatMessage) -> None:
        ...  # pragma: no cover


class BaseStrategy(abc.ABC):
    """
    Abstract base class for discussion strategies.

    Subclasses must implement ``handle_message()``, which returns only after
    all agent activity it started for the user message has settled.

    Attributes:
        runner: Runs individual agent turns
        agents: Registry used to resolve the session roster
        sink: Receives system announcements (the session manager)
        moderator: Speaker-selection capability (moderated strategy only)
        moderator_extra_turns: Extra iterations allowed beyond the roster size
    """

    def __init__(
        self,
        runner: AgentTurnRunner,
        agents: AgentRegistry,
        sink: SessionSink,
        moderator: Optional[Moderator] = None,
        moderator_extra_turns: int = 3,
    ):
        self.runner = runner
        self.agents = agents
        self.sink = sink
        self.moderator = moderator
        self.moderator_extra_turns = moderator_extra_turns

    @abc.abstractmethod
    async def handle_message(
        self,
        session: ChatSession,
        user_message: ChatMessage,
        mentioned_agents: list[AIAgent],
        command: Optional[Command] = None,
    ) -> None:
        """
        Respond to one user message.

        Args:
            session: The session the message was posted to.
            user_message: The user message that triggered this dispatch.
            mentioned_agents: Participants mentioned with ``@Name``.
            command: Slash command for the first agent invocation only.
        """
        ...  # pragma: no cover

    def _participants(self, session: ChatSession) -> list[AIAgent]:
        return self.agents.resolve(session.participant_ids)

    @staticmethod
    def _responders(participants: list[AIAgent], mentioned_agents: list[AIAgent]) -> list[AIAgent]:
        return list(mentioned_agents) if mentioned_agents else participants

    @staticmethod
    def _model_history(session: ChatSession, user_message: ChatMessage) -> list[ChatMessage]:
        """History snapshot for the model: everything up to the user message, minus system messages."""
        history = list(session.history)
        if not any(m.id == user_message.id for m in history):
            history.append(user_message)
        return [m for m in history if m.role != Role.SYSTEM]
