"""
Parley: Multi-Agent Chat Sessions
=================================

This package provides the orchestration core for chat sessions in which a
user talks to one or more AI agents. Agents answer concurrently, one after
another, or as picked by an AI moderator, and may search and create notes
through tools while they answer.

Main Components:
    - ``SessionManager``: Owns sessions and dispatches user messages
    - ``AgentTurnRunner``: Runs one agent turn, including the tool loop
    - ``AgentRegistry`` / ``CommandRegistry``: Agents and slash commands
    - ``get_provider``: Builds the configured language-model backend
    - ``load_config``: Loads and validates YAML configuration

Quick Start:
    >>> from parley import SessionManager, get_provider, load_config
    >>> config = load_config("config.yaml")
    >>> manager = SessionManager.from_config(config, get_provider(config.provider))
    >>> session = manager.create_session_from_preset("debate")
    >>> await manager.send_message(session.id, "Should cities ban cars?")
"""

from parley.agent import AgentRegistry, DEFAULT_AGENTS
from parley.commands import CommandRegistry, DEFAULT_COMMANDS
from parley.config import load_config, ParleyConfig
from parley.manager import SessionManager
from parley.models import (
    AIAgent,
    ChatEvent,
    ChatMessage,
    ChatSession,
    Command,
    DiscussionMode,
    EventType,
    Note,
    PresetChat,
    Role,
    ToolCall,
)
from parley.providers import AIProvider, get_provider
from parley.runner import AgentTurnRunner

__all__ = [
    "load_config",
    "ParleyConfig",
    "SessionManager",
    "AgentTurnRunner",
    "AgentRegistry",
    "CommandRegistry",
    "DEFAULT_AGENTS",
    "DEFAULT_COMMANDS",
    "AIProvider",
    "get_provider",
    "AIAgent",
    "ChatEvent",
    "ChatMessage",
    "ChatSession",
    "Command",
    "DiscussionMode",
    "EventType",
    "Note",
    "PresetChat",
    "Role",
    "ToolCall",
]

__version__ = "1.0.0"
