"""
Notes Collaborator
==================

The orchestration core consumes notes through a narrow interface: create a
note, update its title/content, search the corpus, and (for thread chat)
read a note and append to its thread. ``InMemoryNotesManager`` is the
process-local implementation; corpus search asks the AI provider to pick
the most relevant note ids.
"""

from __future__ import annotations

import abc
import json
import logging
from typing import Iterable, Optional

from parley.models import ChatMessage, Note
from parley.providers.base import AIProvider, JsonOptions, JsonSchema

logger = logging.getLogger(__name__)

RETRIEVAL_SCHEMA = JsonSchema(
    type="array",
    description="An array of note IDs that are most relevant to the user's query.",
    items=JsonSchema(type="string"),
)

_PREVIEW_CHARS = 150


class NotesCollaborator(abc.ABC):
    """Operations the orchestration core needs from a notes backend."""

    @abc.abstractmethod
    def create_new_text_note(self) -> Note:
        ...  # pragma: no cover

    @abc.abstractmethod
    def update_note(
        self, note_id: str, title: Optional[str] = None, content: Optional[str] = None
    ) -> None:
        ...  # pragma: no cover

    @abc.abstractmethod
    async def search_notes_in_corpus(self, query: str) -> list[Note]:
        ...  # pragma: no cover

    @abc.abstractmethod
    def get_note(self, note_id: str) -> Optional[Note]:
        ...  # pragma: no cover

    @abc.abstractmethod
    def append_thread_message(self, note_id: str, message: ChatMessage) -> None:
        ...  # pragma: no cover


class InMemoryNotesManager(NotesCollaborator):
    """
    Notes kept in process memory, newest first.

    Attributes:
        provider: AI provider used to rank notes for corpus search
    """

    def __init__(self, provider: AIProvider, notes: Iterable[Note] = ()):
        self.provider = provider
        self._notes: list[Note] = list(notes)

    def list_notes(self) -> list[Note]:
        return list(self._notes)

    def get_note(self, note_id: str) -> Optional[Note]:
        return next((n for n in self._notes if n.id == note_id), None)

    def create_new_text_note(self) -> Note:
        note = Note()
        self._notes = [note, *self._notes]
        return note

    def update_note(
        self, note_id: str, title: Optional[str] = None, content: Optional[str] = None
    ) -> None:
        note = self.get_note(note_id)
        if note is None:
            raise KeyError(f"Note '{note_id}' not found")
        if title is not None:
            note.title = title
        if content is not None:
            note.content = content

    def append_thread_message(self, note_id: str, message: ChatMessage) -> None:
        note = self.get_note(note_id)
        if note is None:
            raise KeyError(f"Note '{note_id}' not found")
        note.thread_history = [*note.thread_history, message]

    async def search_notes_in_corpus(self, query: str) -> list[Note]:
        """
        Ask the provider for the 3-5 notes most relevant to ``query``.

        Returns an empty list when there are no notes or when retrieval
        fails, so a flaky ranking call never aborts an agent's turn.
        """
        notes = self.list_notes()
        if not notes:
            return []

        notes_for_retrieval = [
            {"id": n.id, "title": n.title, "preview": n.content[:_PREVIEW_CHARS]}
            for n in notes
        ]
        prompt = (
            "From the following list of notes, please select the IDs of the 3-5 notes "
            "that are most relevant to the user's query.\n\n"
            f'User Query: "{query}"\n\n'
            f"Note List:\n{json.dumps(notes_for_retrieval)}\n\n"
            "Return only a JSON array of the most relevant note IDs."
        )

        try:
            result = await self.provider.generate_json(
                prompt, RETRIEVAL_SCHEMA, JsonOptions(schema_name="relevant_note_ids")
            )
        except Exception as e:
            logger.error(f"Failed to retrieve relevant notes: {e}")
            return []

        # JSON-object mode wraps arrays, e.g. {"ids": [...]}
        if isinstance(result, dict):
            result = next((v for v in result.values() if isinstance(v, list)), None)
        if not isinstance(result, list):
            logger.warning(f"Retrieved relevant IDs is not an array: {result!r}")
            return []

        relevant_ids = {str(i) for i in result}
        return [n for n in notes if n.id in relevant_ids]
