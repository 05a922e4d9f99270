"""
Exceptions
==========

Error types raised inside Parley. None of these ever escape
``SessionManager.send_message``: the turn runner converts failures into a
visible chat message and the manager logs whatever reaches it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from parley.models import ChatMessage


class ParleyError(Exception):
    """Base class for all Parley errors."""


class ProviderError(ParleyError):
    """A language-model backend failed or returned something unusable."""


class ProviderConfigError(ProviderError):
    """A provider could not be constructed from the current configuration."""


class ToolLoopExceededError(ParleyError):
    """An agent kept requesting tools past the configured iteration bound."""

    def __init__(self, agent_name: str, max_iterations: int):
        super().__init__(
            f"Agent '{agent_name}' exceeded {max_iterations} tool iterations"
        )
        self.agent_name = agent_name
        self.max_iterations = max_iterations


class AgentTurnError(ParleyError):
    """
    An agent's turn was aborted.

    Raised by the turn runner after it has already appended the user-facing
    error message, so callers can stop their sequence without adding
    anything to history themselves.

    Attributes:
        agent_name: The agent whose turn failed
        messages: Every message the runner appended during the turn,
                  including the error message
    """

    def __init__(self, agent_name: str, messages: list[ChatMessage], cause: BaseException):
        super().__init__(f"Turn of agent '{agent_name}' failed: {cause}")
        self.agent_name = agent_name
        self.messages = messages
        self.__cause__ = cause


class SessionNotFoundError(ParleyError, KeyError):
    def __init__(self, session_id: str):
        super().__init__(f"Session '{session_id}' not found")
        self.session_id = session_id

    def __str__(self) -> str:
        return self.args[0]
