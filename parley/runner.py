"""
Agent Turn Runner
=================

Drives one agent through a complete turn: call the provider, run any tools
it asks for, feed the results back, and repeat until the agent produces its
final answer.

The turn is an explicit state machine over ``TurnState``:

    AWAITING_PROVIDER ──tool calls──▶ EXECUTING_TOOLS ──results──▶ AWAITING_PROVIDER
            │
            └──final text──▶ DONE            any exception ──▶ ERROR

Every round of tool use is appended to the session as one batch: the
``model`` message carrying the tool calls followed by one ``tool`` message
per call, in call order. The number of provider round-trips per turn is
bounded by ``max_tool_iterations``.

If any tool call of a round fails, the remaining calls of that round are
still awaited before the turn fails, and none of the round is appended.

On failure the runner appends a single user-visible apology message and
then raises ``AgentTurnError``, so strategies can both show the error and
stop their own sequence.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from parley.agent import build_agent_instruction
from parley.exceptions import AgentTurnError, ToolLoopExceededError
from parley.models import (
    AIAgent,
    ChatMessage,
    Command,
    MessageStatus,
    Note,
    ProviderResponse,
    Role,
    TurnState,
    new_id,
)
from parley.providers.base import AIProvider, TextOptions
from parley.tools import AGENT_TOOLS, SEARCH_NOTES, ToolExecutor, to_source_notes

logger = logging.getLogger(__name__)

EMPTY_ANSWER_TEXT = "I'm not sure how to respond to that."
ERROR_TEXT = "Sorry, I encountered an error. Please try again."


class MessageSink(Protocol):
    """Where the runner appends the messages it produces."""

    def add_messages(self, session_id: str, messages: list[ChatMessage]) -> None:
        ...  # pragma: no cover


class AgentTurnRunner:
    """
    Runs single agent turns against an AI provider.

    Attributes:
        provider: Backend used for every provider call in the turn
        tools: Executor for the agent tools
        sink: Receives appended messages (normally the session manager)
        max_tool_iterations: Provider round-trips allowed per turn
        temperature: Sampling temperature for agent calls
    """

    def __init__(
        self,
        provider: AIProvider,
        tools: ToolExecutor,
        sink: MessageSink,
        max_tool_iterations: int = 10,
        temperature: Optional[float] = None,
    ):
        self.provider = provider
        self.tools = tools
        self.sink = sink
        self.max_tool_iterations = max_tool_iterations
        self.temperature = temperature

    async def run(
        self,
        agent: AIAgent,
        history: list[ChatMessage],
        session_id: str,
        participant_names: list[str],
        command: Optional[Command] = None,
    ) -> list[ChatMessage]:
        """
        Run one complete turn for ``agent``.

        Args:
            agent: The agent whose turn it is.
            history: Snapshot of the conversation the agent should see.
                     The snapshot is copied; the caller's list is untouched.
            session_id: Session receiving the appended messages.
            participant_names: Display names of the whole roster.
            command: Slash command to honour on the first provider call.

        Returns:
            Every message appended during the turn, in append order.

        Raises:
            AgentTurnError: After appending the error message, if the
                            provider or a tool failed or the tool loop
                            exceeded its bound.
        """
        conversation = list(history)
        appended: list[ChatMessage] = []
        source_notes: list[Note] = []
        iterations = 0
        response = ProviderResponse()
        state = TurnState.AWAITING_PROVIDER

        logger.info(f"Agent '{agent.name}' turn started in session {session_id}")
        try:
            while state != TurnState.DONE:
                if state == TurnState.AWAITING_PROVIDER:
                    if iterations >= self.max_tool_iterations:
                        raise ToolLoopExceededError(agent.name, self.max_tool_iterations)

                    instruction = build_agent_instruction(
                        agent, participant_names, command if iterations == 0 else None
                    )
                    response = await self.provider.generate_with_tools(
                        conversation,
                        AGENT_TOOLS,
                        instruction,
                        TextOptions(temperature=self.temperature),
                    )
                    iterations += 1

                    if response.tool_calls:
                        state = TurnState.EXECUTING_TOOLS
                    else:
                        final = ChatMessage(
                            role=Role.MODEL,
                            content=response.text or EMPTY_ANSWER_TEXT,
                            persona=agent.name,
                            source_notes=to_source_notes(source_notes),
                            grounding_chunks=response.grounding_chunks,
                            status=MessageStatus.DONE,
                        )
                        self._append(session_id, [final], conversation, appended)
                        state = TurnState.DONE

                elif state == TurnState.EXECUTING_TOOLS:
                    calls = [
                        call if call.id else call.model_copy(update={"id": f"call_{new_id()}"})
                        for call in response.tool_calls
                    ]
                    request = ChatMessage(
                        role=Role.MODEL,
                        content="",
                        tool_calls=calls,
                        persona=agent.name,
                    )

                    # All calls of one response start together and settle together,
                    # so no tool is still running once the turn has ended
                    results = await asyncio.gather(
                        *(self.tools.execute(c) for c in calls), return_exceptions=True
                    )
                    failures = [r for r in results if isinstance(r, BaseException)]
                    if failures:
                        raise failures[0]

                    tool_messages = []
                    for call, result in zip(calls, results):
                        if call.name == SEARCH_NOTES:
                            source_notes = result.source_notes
                        tool_messages.append(
                            ChatMessage(
                                role=Role.TOOL,
                                content=result.content,
                                tool_call_id=call.id,
                                tool_calls=[call],
                            )
                        )

                    self._append(session_id, [request, *tool_messages], conversation, appended)
                    state = TurnState.AWAITING_PROVIDER

        except Exception as e:
            state = TurnState.ERROR
            logger.exception(f"Agent '{agent.name}' turn failed: {e}")
            error_message = ChatMessage(
                role=Role.MODEL,
                content=ERROR_TEXT,
                persona=agent.name,
                status=MessageStatus.DONE,
            )
            self._append(session_id, [error_message], conversation, appended)
            raise AgentTurnError(agent.name, appended, e) from e

        logger.info(
            f"Agent '{agent.name}' turn finished after {iterations} provider call(s)"
        )
        return appended

    def _append(
        self,
        session_id: str,
        messages: list[ChatMessage],
        conversation: list[ChatMessage],
        appended: list[ChatMessage],
    ) -> None:
        self.sink.add_messages(session_id, messages)
        conversation.extend(messages)
        appended.extend(messages)
