"""
Agents
======

Built-in agent personas, the agent registry, and the instruction builders
that turn an agent (plus the session roster and an optional slash command)
into the system instruction sent to the provider.

An agent is a persona: the same underlying model plays "The Pragmatist" or
"Creative Writer" depending on the instruction it receives. Agents never call
the provider themselves; the turn runner does that with the instruction
built here.

Usage:
    >>> registry = AgentRegistry(DEFAULT_AGENTS)
    >>> agent = registry.get_by_name("The Pragmatist")
    >>> instruction = build_agent_instruction(agent, ["The Pragmatist", "The Visionary"])
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from parley.models import AIAgent, ChatMessage, Command, Role

logger = logging.getLogger(__name__)

_NO_NAME_PREFIX = (
    "CRITICAL: You MUST respond in the primary language of the conversation. "
    'You MUST NOT prepend your name to your response (e.g., "[Your Name]:").'
)


def _builtin(agent_id: str, name: str, description: str, instruction: str,
             icon: str, color: str, age: int) -> AIAgent:
    return AIAgent(
        id=agent_id,
        name=name,
        description=description,
        system_instruction=f"{instruction}\n{_NO_NAME_PREFIX}",
        icon=icon,
        color=color,
        # Distinct timestamps keep display order stable
        created_at=datetime(2024, 1, 1) - timedelta(seconds=age),
        is_custom=False,
    )


DEFAULT_AGENTS: list[AIAgent] = [
    _builtin(
        "default-companion", "AI Companion", "Your default AI thought partner.",
        "You are a powerful AI assistant integrated into a note-taking app.\n"
        "- You can search existing notes to answer questions.\n"
        "- You can create new notes.\n"
        "- When answering a question based on a search, be concise and directly state the answer.\n"
        "- After answering from a search, ask the user if they would like you to create "
        "a new note with the synthesized information.",
        "SparklesIcon", "indigo", 0,
    ),
    _builtin(
        "default-creative-writer", "Creative Writer", "Your go-to partner for stories and ideas.",
        "You are an imaginative and creative AI assistant. Help users with stories, poems, "
        "brainstorming, and imaginative concepts. Emphasize originality and vivid language.",
        "BookOpenIcon", "rose", 1,
    ),
    _builtin(
        "default-code-assistant", "Code Assistant", "Helps with code, debugging, and tech questions.",
        "You are an expert programmer. Provide clean, efficient, well-explained code in "
        "markdown blocks with the language specified. Prioritize accuracy.",
        "CpuChipIcon", "sky", 2,
    ),
    _builtin(
        "default-pragmatist", "The Pragmatist", "Grounded, data-driven, and skeptical of grand ideas.",
        "You are The Pragmatist. You focus on immediate realities, practical applications, "
        "and potential risks. Your arguments are logical and backed by evidence.",
        "BeakerIcon", "sky", 3,
    ),
    _builtin(
        "default-visionary", "The Visionary", "Creative, forward-thinking, and optimistic about the future.",
        "You are The Visionary. You focus on long-term potential, abstract connections, "
        "and innovative concepts. Explore 'what if' scenarios.",
        "LightbulbIcon", "purple", 4,
    ),
    _builtin(
        "default-ethicist", "The Ethicist", "Focuses on moral implications, fairness, and societal impact.",
        "You are The Ethicist. Analyze topics from a moral and ethical standpoint, "
        "considering impact on society, individuals, and fairness.",
        "ShieldIcon", "green", 5,
    ),
]


class AgentRegistry:
    """
    Read-mostly collection of agents keyed by id.

    Writes replace the internal mapping instead of mutating it, so readers
    that grabbed a snapshot mid-turn never see a half-applied change.
    """

    def __init__(self, agents: Iterable[AIAgent] = ()):
        self._agents: dict[str, AIAgent] = {a.id: a for a in agents}

    def all(self) -> list[AIAgent]:
        return list(self._agents.values())

    def get(self, agent_id: str) -> Optional[AIAgent]:
        return self._agents.get(agent_id)

    def get_by_name(self, name: str) -> Optional[AIAgent]:
        for agent in self._agents.values():
            if agent.name == name:
                return agent
        return None

    def resolve(self, agent_ids: Iterable[str]) -> list[AIAgent]:
        """Return the agents for ``agent_ids`` in the given order, skipping unknown ids."""
        resolved = []
        for agent_id in agent_ids:
            agent = self._agents.get(agent_id)
            if agent is None:
                logger.warning(f"Unknown agent id in roster: {agent_id}")
                continue
            resolved.append(agent)
        return resolved

    def add(self, agent: AIAgent) -> None:
        if agent.id in self._agents:
            raise ValueError(f"Agent '{agent.id}' already exists")
        self._agents = {**self._agents, agent.id: agent}


# =============================================================================
# Instruction Builders
# =============================================================================


def build_agent_instruction(
    agent: AIAgent,
    participant_names: list[str],
    command: Optional[Command] = None,
) -> str:
    """
    Build the system instruction for one agent's turn.

    Args:
        agent: The agent whose turn it is.
        participant_names: Display names of everyone in the session.
        command: Slash command issued by the user, if this is the first
                 provider call of the first agent's turn.

    Returns:
        The system instruction string.
    """
    others = [name for name in participant_names if name != agent.name]
    instruction = f"You are {agent.name}."
    if others:
        instruction += (
            f" You are participating in a group chat with other AI agents: {', '.join(others)}.\n"
            "Messages prefixed like \"[Agent Name]: ...\" are from other AI agents. "
            "System messages like \"[Moderator chose ...]\" describe the conversation flow."
        )
    instruction += (
        "\nYou can search the user's notes and create new notes with your tools.\n"
        "Respond with your message content directly.\n\n"
        f"Your primary instructions are:\n---\n{agent.system_instruction}"
    )

    if command:
        instruction = (
            f"The user has issued a specific command: /{command.name}. "
            "You MUST follow these instructions precisely to fulfill their request.\n"
            f"--- COMMAND DEFINITION ---\n{command.definition}\n---\n"
            "After fulfilling the command, respond naturally.\n\n"
            f"Original general instructions (for context):\n{instruction}"
        )
    return instruction


def build_moderator_instruction(
    history: list[ChatMessage],
    participant_names: list[str],
    spoken_names: list[str],
    mentioned_names: list[str],
) -> str:
    """Build the moderator's instruction for one speaker-selection decision."""
    last_user_message = next(
        (m.content for m in reversed(history) if m.role == Role.USER), ""
    )
    mention_line = ""
    if mentioned_names:
        mention_line = (
            f"\n* Mentions: the user specifically mentioned [{', '.join(mentioned_names)}]. "
            "Strongly prioritize one of these agents if their expertise is relevant."
        )

    return (
        "You are an expert AI moderator orchestrating a group chat. Facilitate a productive "
        "conversation that fully addresses the user's questions and requests.\n\n"
        "Current state:\n"
        f'* Last user message: "{last_user_message}"\n'
        f"* Available agents: [{', '.join(participant_names)}]\n"
        f"* Agents who have spoken in this turn: [{', '.join(spoken_names)}]"
        f"{mention_line}\n\n"
        "Decide the next action with a tool:\n"
        "* Use select_next_speaker to call on the most relevant agent while the user's "
        "request is not fully answered. If the request involves several agents, select "
        "each one that has not spoken yet, one by one.\n"
        "* Use pass_control_to_user only when the user's latest request is satisfied.\n"
        "You MUST respond with only a tool call."
    )
