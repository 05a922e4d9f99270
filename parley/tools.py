"""
Tools
=====

Tool declarations exposed to the model and the executor that runs them.

Agent tools:
    - ``search_notes(query)``: search the user's notes
    - ``create_note(title, content)``: create a new note

Moderator tools:
    - ``select_next_speaker(agent_name, reason)``
    - ``pass_control_to_user(reason)``
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from parley.models import Note, SourceNote, ToolCall
from parley.notes import NotesCollaborator
from parley.providers.base import JsonSchema, ToolDefinition

logger = logging.getLogger(__name__)

SEARCH_NOTES = "search_notes"
CREATE_NOTE = "create_note"
SELECT_NEXT_SPEAKER = "select_next_speaker"
PASS_CONTROL_TO_USER = "pass_control_to_user"

NO_RESULTS_TEXT = "No relevant notes were found for that query."


# =============================================================================
# Declarations
# =============================================================================

AGENT_TOOLS: list[ToolDefinition] = [
    ToolDefinition(
        name=SEARCH_NOTES,
        description=(
            "Searches the user's notes to find information relevant to their query. "
            "Use this to answer questions about past notes."
        ),
        parameters=JsonSchema(
            type="object",
            properties={
                "query": JsonSchema(
                    type="string",
                    description="The specific topic or question to search for in the notes.",
                ),
            },
            required=["query"],
        ),
    ),
    ToolDefinition(
        name=CREATE_NOTE,
        description=(
            "Creates a new note with a given title and content. Use this when the user "
            "explicitly asks to create a note, or to save the result of a complex task."
        ),
        parameters=JsonSchema(
            type="object",
            properties={
                "title": JsonSchema(type="string", description="The title of the new note."),
                "content": JsonSchema(
                    type="string",
                    description="The main content of the new note, formatted in Markdown.",
                ),
            },
            required=["title", "content"],
        ),
    ),
]

MODERATOR_TOOLS: list[ToolDefinition] = [
    ToolDefinition(
        name=SELECT_NEXT_SPEAKER,
        description="Selects the next AI agent to speak in the discussion.",
        parameters=JsonSchema(
            type="object",
            properties={
                "agent_name": JsonSchema(
                    type="string",
                    description="The exact name of the agent who should speak next.",
                ),
                "reason": JsonSchema(
                    type="string",
                    description="A brief reason why this agent was chosen to speak next.",
                ),
            },
            required=["agent_name", "reason"],
        ),
    ),
    ToolDefinition(
        name=PASS_CONTROL_TO_USER,
        description=(
            "Passes control back to the user when the user's request has been fulfilled "
            "or the conversation has reached a natural stopping point."
        ),
        parameters=JsonSchema(
            type="object",
            properties={
                "reason": JsonSchema(
                    type="string",
                    description="A brief, user-facing summary of what was accomplished.",
                ),
            },
            required=["reason"],
        ),
    ),
]


# =============================================================================
# Execution
# =============================================================================


@dataclass
class ToolResult:
    """
    Outcome of one tool call.

    Attributes:
        content: Text returned to the model as the tool message
        source_notes: Notes to cite on the turn's final answer (search only)
    """

    content: str
    source_notes: list[Note] = field(default_factory=list)


def format_search_results(notes: list[Note]) -> str:
    if not notes:
        return NO_RESULTS_TEXT
    sections = [
        f"Title: {note.title or 'Untitled'}\nContent:\n{note.content}"
        for note in notes
    ]
    return f"Found {len(notes)} relevant notes:\n\n" + "\n\n---\n\n".join(sections)


def to_source_notes(notes: list[Note]) -> list[SourceNote]:
    return [SourceNote(id=n.id, title=n.title or "Untitled") for n in notes]


class ToolExecutor:
    """
    Maps a tool call to its side-effecting action.

    Exceptions raised by the notes collaborator are not caught here; they
    abort the agent's turn like any provider failure.
    """

    def __init__(self, notes: NotesCollaborator):
        self.notes = notes

    async def execute(self, call: ToolCall) -> ToolResult:
        if call.name == SEARCH_NOTES:
            query = str(call.args.get("query", ""))
            found = await self.notes.search_notes_in_corpus(query)
            logger.info(f"search_notes({query!r}) returned {len(found)} notes")
            return ToolResult(content=format_search_results(found), source_notes=found)

        if call.name == CREATE_NOTE:
            title = str(call.args.get("title", ""))
            content = str(call.args.get("content", ""))
            note = self.notes.create_new_text_note()
            self.notes.update_note(note.id, title=title, content=content)
            logger.info(f"create_note created note {note.id}")
            return ToolResult(content=f'Successfully created a new note titled "{title}".')

        # Unknown tools answer with an empty result so the model can recover
        logger.warning(f"Unknown tool requested: {call.name}")
        return ToolResult(content="")
