"""
Configuration Loader
====================

Loads and validates the YAML configuration file (``config.yaml``) that defines
the AI provider, the agent roster, preset chats, custom commands and default
settings for discussion sessions.

The config file is the central place to:
    - Choose and configure the language-model provider
    - Define the agents users can invite into a session
    - Create preset chats with a roster and a discussion mode
    - Tune safety bounds (tool iterations, moderator turns)

Usage:
    >>> from parley.config import load_config
    >>> config = load_config("config.yaml")
    >>> config.defaults.max_tool_iterations
    10
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from parley.agent import DEFAULT_AGENTS
from parley.commands import DEFAULT_COMMANDS
from parley.models import AIAgent, Command, DiscussionMode, PresetChat


class OpenAISettings(BaseModel):
    """
    Hosted OpenAI (or compatible proxy) settings.

    Attributes:
        api_key: API key; falls back to the ``OPENAI_API_KEY`` env var
        base_url: Optional proxy URL; falls back to ``OPENAI_BASE_URL``
        model: Default chat model
        force_json: Force ``response_format=json_object`` on non-OpenAI hosts
    """

    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model: str = "gpt-4o-mini"
    force_json: bool = False


class LMStudioSettings(BaseModel):
    """
    LM Studio connection settings.

    Attributes:
        base_url: The base URL for LM Studio's API server
        api_key: API key (LM Studio uses a dummy key, defaults to "lm-studio")
        model: LM Studio model identifier used by default
    """

    base_url: str = "http://localhost:1234/v1"
    api_key: str = "lm-studio"
    model: str = "local-model"


class ProviderSettings(BaseModel):
    """
    Which backend to use and how to reach it.

    ``name`` may be "openai" or "lm_studio". When it is empty the
    ``PARLEY_AI_PROVIDER`` env var is consulted, then the presence of an
    OpenAI key, then LM Studio is used.
    """

    name: Optional[str] = None
    timeout: float = 120.0
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    lm_studio: LMStudioSettings = Field(default_factory=LMStudioSettings)


class DefaultsConfig(BaseModel):
    """
    Default parameters applied to all sessions.

    Attributes:
        temperature: Sampling temperature for agent and moderator calls
        max_tool_iterations: Provider round-trips allowed per agent turn
        moderator_extra_turns: Moderated loop bound is roster size plus this
        discussion_mode: Mode for new sessions created without one
    """

    temperature: float = 0.7
    max_tool_iterations: int = 10
    moderator_extra_turns: int = 3
    discussion_mode: DiscussionMode = DiscussionMode.CONCURRENT


class StorageConfig(BaseModel):
    # None keeps all state in memory
    path: Optional[str] = None


DEFAULT_PRESETS: dict[str, PresetChat] = {
    "companion": PresetChat(
        name="AI Companion",
        description="A one-on-one chat with your general-purpose AI assistant.",
        participant_ids=["default-companion"],
        discussion_mode=DiscussionMode.CONCURRENT,
    ),
    "debate": PresetChat(
        name="Debate Chamber",
        description="Explore topics from multiple viewpoints with a Pragmatist, Visionary, and Ethicist.",
        participant_ids=["default-pragmatist", "default-visionary", "default-ethicist"],
        discussion_mode=DiscussionMode.MODERATED,
    ),
    "creative": PresetChat(
        name="Creative Council",
        description="Brainstorm stories, marketing copy, and novel ideas with a team of creative specialists.",
        participant_ids=["default-creative-writer", "default-visionary", "default-companion"],
        discussion_mode=DiscussionMode.CONCURRENT,
    ),
    "tech": PresetChat(
        name="Tech Review Board",
        description="Get feedback on technical ideas, code, and architecture from a pragmatic perspective.",
        participant_ids=["default-code-assistant", "default-pragmatist", "default-ethicist"],
        discussion_mode=DiscussionMode.TURN_BASED,
    ),
}


class ParleyConfig(BaseModel):
    """
    Top-level configuration container.

    Attributes:
        provider: Language-model backend settings
        defaults: Default parameters for sessions
        agents: Agent roster available to sessions
        presets: Preset chats (key → PresetChat)
        commands: Commands available in addition to the built-ins
        storage: Where sessions, agents and custom commands are persisted
    """

    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    agents: list[AIAgent] = Field(default_factory=lambda: list(DEFAULT_AGENTS))
    presets: dict[str, PresetChat] = Field(default_factory=lambda: dict(DEFAULT_PRESETS))
    commands: list[Command] = Field(default_factory=list)
    storage: StorageConfig = Field(default_factory=StorageConfig)


def load_config(config_path: str = "config.yaml") -> ParleyConfig:
    """
    Load and validate the configuration from a YAML file.

    Sections that are missing from the file fall back to their defaults,
    so a file containing only a ``provider`` section is valid and yields
    the built-in agents, presets and commands.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        A validated ``ParleyConfig`` object.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the YAML is malformed.
        pydantic.ValidationError: If the config doesn't match the expected schema.
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n"
            f"Expected location: {config_file.absolute()}\n"
            f"Please create a config.yaml file. See README.md for details."
        )

    with open(config_file, "r") as f:
        raw = yaml.safe_load(f) or {}

    provider = ProviderSettings(**(raw.get("provider") or {}))
    defaults = DefaultsConfig(**(raw.get("defaults") or {}))
    storage = StorageConfig(**(raw.get("storage") or {}))

    # Parse agents (keyed by id in YAML)
    agents = list(DEFAULT_AGENTS)
    if raw.get("agents"):
        agents = [
            AIAgent(id=key, **agent_data)
            for key, agent_data in raw["agents"].items()
        ]

    presets = dict(DEFAULT_PRESETS)
    if raw.get("presets"):
        presets = {
            key: PresetChat(**preset_data)
            for key, preset_data in raw["presets"].items()
        }

    commands = [
        Command(name=key, is_custom=True, **command_data)
        for key, command_data in (raw.get("commands") or {}).items()
    ]

    return ParleyConfig(
        provider=provider,
        defaults=defaults,
        agents=agents,
        presets=presets,
        commands=commands,
        storage=storage,
    )
