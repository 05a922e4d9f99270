"""
Command Registry
================

Slash commands such as ``/search`` and ``/create``. A command's
``definition`` is free text that the turn runner folds into the first
agent's instructions for the turn in which the command was issued.

Built-in commands are process-wide constants. Custom commands are created
once, appended, and never mutated or deleted.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from parley.models import Command

if TYPE_CHECKING:
    from parley.store import StateStore

logger = logging.getLogger(__name__)

CUSTOM_COMMANDS_KEY = "custom_commands"

DEFAULT_COMMANDS: list[Command] = [
    Command(
        name="search",
        params="<query>",
        description="Search your notes for a specific topic.",
        definition=(
            "The user wants to find information in their notes. Your primary goal is to use "
            "the `search_notes` tool with an appropriate query derived from the user's input. "
            "After getting the search results, present the answer concisely and directly based "
            "*only* on the provided context. You must cite the source notes you used."
        ),
        is_custom=False,
    ),
    Command(
        name="create",
        params="<title>",
        description="Create a new note with a title.",
        definition=(
            "The user wants to create a new note. Use the `create_note` tool. The user's input "
            "following the command is the title of the note. The content should be empty unless "
            "the user specifies it. Confirm the creation of the note in your response."
        ),
        is_custom=False,
    ),
]


def _log_alert(message: str) -> None:
    logger.warning(message)


class CommandRegistry:
    """
    Built-in plus custom commands.

    Appends swap in a new list rather than mutating the current one, so a
    turn that already read ``get_commands()`` keeps a consistent view.

    Attributes:
        alert: Callable used to show a user-facing alert (e.g., on a name
               collision). Defaults to a logged warning.
    """

    def __init__(
        self,
        custom_commands: Iterable[Command] = (),
        store: Optional[StateStore] = None,
        alert: Callable[[str], None] = _log_alert,
    ):
        self._store = store
        self.alert = alert
        self._custom: list[Command] = list(custom_commands)
        if store is not None:
            persisted = store.load(CUSTOM_COMMANDS_KEY, [])
            known = {c.name for c in self._custom}
            self._custom += [
                Command(**data) for data in persisted if data.get("name") not in known
            ]

    def get_commands(self) -> list[Command]:
        return [*DEFAULT_COMMANDS, *self._custom]

    def get_command(self, name: str) -> Optional[Command]:
        for command in self.get_commands():
            if command.name == name:
                return command
        return None

    def add_command(self, command: Command) -> None:
        """Append a custom command without any validation."""
        custom = command.model_copy(update={"is_custom": True})
        self._custom = [*self._custom, custom]
        if self._store is not None:
            self._store.save(
                CUSTOM_COMMANDS_KEY,
                [c.model_dump(mode="json") for c in self._custom],
            )

    def create_command(
        self,
        name: str,
        description: str,
        definition: str,
        params: str = "",
    ) -> bool:
        """
        Validate and register a new custom command.

        Returns:
            True if the command was added. False if data was missing or the
            name collides with an existing command; a collision also raises
            a user-facing alert.
        """
        name = (name or "").strip()
        if not name or not description or not definition:
            logger.error("Cannot create command: missing data.")
            return False

        if self.get_command(name) is not None:
            self.alert(f'Command "/{name}" already exists.')
            return False

        self.add_command(
            Command(name=name, params=params, description=description, definition=definition)
        )
        logger.info(f"Created custom command /{name}")
        return True
