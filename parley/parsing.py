"""Slash-command and @mention parsing for incoming user messages."""

from __future__ import annotations

import re
from typing import Iterable, Optional

from parley.commands import CommandRegistry
from parley.models import AIAgent, Command


def parse_command(text: str, registry: CommandRegistry) -> Optional[Command]:
    """
    Resolve a leading ``/name`` token against the command registry.

    Unknown command names are not an error: the message is then plain text
    and ``None`` is returned.
    """
    if not text.startswith("/"):
        return None
    token = text.strip().split()[0]
    return registry.get_command(token[1:])


def _mention_pattern(name: str) -> re.Pattern[str]:
    # "@Name" must start a whitespace-delimited word and end on a word boundary
    return re.compile(r"(?<!\S)@" + re.escape(name) + r"(?!\w)")


def parse_mentions(text: str, participants: Iterable[AIAgent]) -> list[AIAgent]:
    """
    Return the participants mentioned as ``@Name`` in ``text``.

    Matching is exact on display names (multi-word names such as
    ``@The Pragmatist`` work). Results follow roster order and contain each
    agent at most once.
    """
    return [
        agent for agent in participants
        if _mention_pattern(agent.name).search(text)
    ]


def filter_mention_candidates(query: str, participants: Iterable[AIAgent]) -> list[AIAgent]:
    """Case-insensitive substring filter for a mention autocomplete popup."""
    needle = query.lower()
    return [agent for agent in participants if needle in agent.name.lower()]
