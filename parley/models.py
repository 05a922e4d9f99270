"""
Data Models & Schemas
=====================

Pydantic models that define the data structures used throughout Parley.
These models carry the conversation state that the session manager owns
and that strategies, the turn runner and the tool executor read and append to.

Key Models:
    - ``ChatMessage``: A single entry in a session's append-only history
    - ``ToolCall``: A structured tool invocation requested by the model
    - ``ChatSession``: A conversation with a fixed roster and discussion mode
    - ``AIAgent``: A configured persona that can take a turn
    - ``Command``: A slash command that seeds agent instructions for a turn
    - ``ProviderResponse``: The outcome of one tool-capable provider call
    - ``ChatEvent``: A real-time event sent to WebSocket listeners
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


def new_id() -> str:
    """Generate a unique identifier for messages, sessions and notes."""
    return uuid.uuid4().hex


# =============================================================================
# Enums
# =============================================================================


class Role(str, enum.Enum):
    """Author role of a chat message."""

    USER = "user"
    MODEL = "model"
    SYSTEM = "system"
    TOOL = "tool"


class MessageStatus(str, enum.Enum):
    THINKING = "thinking"
    STREAMING = "streaming"
    DONE = "done"


class DiscussionMode(str, enum.Enum):
    """Policy governing which agents respond to a user message, and in what order."""

    CONCURRENT = "concurrent"    # Everyone answers at once from the same snapshot
    TURN_BASED = "turn_based"    # Agents answer one after another
    MODERATED = "moderated"      # A moderator picks each next speaker


class TurnState(str, enum.Enum):
    """States of the agent turn state machine."""

    AWAITING_PROVIDER = "awaiting_provider"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    ERROR = "error"


class ModeratorAction(str, enum.Enum):
    SELECT_NEXT_SPEAKER = "select_next_speaker"
    PASS_CONTROL_TO_USER = "pass_control_to_user"


class EventType(str, enum.Enum):
    """
    Types of real-time events sent to the frontend via WebSocket.

    Listeners receive one ``MESSAGE_ADDED`` event per appended history entry,
    which is enough to rebuild the visible transcript incrementally.
    """

    MESSAGE_ADDED = "message_added"      # A message was appended to a session
    SESSION_UPDATED = "session_updated"  # Mode or name of a session changed
    STATUS = "status"                    # Processing started / finished
    ERROR = "error"                      # A request could not be handled


# =============================================================================
# Conversation
# =============================================================================


class ToolCall(BaseModel):
    """
    A structured request from the language model to invoke a named tool.

    Attributes:
        id: Provider-issued call id (absent only for providers that don't issue one)
        name: Tool identifier (e.g., "search_notes")
        args: Tool arguments keyed by parameter name
    """

    id: Optional[str] = None
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class SourceNote(BaseModel):
    """A note cited by a final answer."""

    id: str
    title: str


class ChatMessage(BaseModel):
    """
    A single entry in a session's history.

    History is append-only and ordered by insertion, which is the causal
    order of the conversation. A ``model`` message either carries tool calls
    (and no answer text) or final text, never both. Every ``tool`` message
    points back at the call it answers through ``tool_call_id`` and a
    single-element ``tool_calls`` list.

    Attributes:
        id: Unique message id
        role: Who authored the message
        content: Message text (may be empty)
        tool_calls: Calls requested by a model message, or the answered call
                    for a tool message
        tool_call_id: Id of the tool call a tool message answers
        persona: Display name of the agent that produced the message
        source_notes: Notes consulted for a final answer
        grounding_chunks: Opaque web-citation records from the provider
        status: Rendering status hint
        created_at: When the message was created
    """

    id: str = Field(default_factory=new_id)
    role: Role
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: Optional[str] = None
    persona: Optional[str] = None
    source_notes: list[SourceNote] = Field(default_factory=list)
    grounding_chunks: list[dict[str, Any]] = Field(default_factory=list)
    status: Optional[MessageStatus] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def answered_call_id(self) -> Optional[str]:
        """Return the id of the tool call this tool message answers."""
        if self.tool_call_id:
            return self.tool_call_id
        if len(self.tool_calls) == 1:
            return self.tool_calls[0].id
        return None


class ChatSession(BaseModel):
    """
    A persistent conversation with a fixed agent roster.

    Attributes:
        id: Unique session id
        name: Display name
        participant_ids: Agent ids in stable display order
        discussion_mode: Policy applied to the next incoming user message
        history: Append-only message history
        created_at: When the session was created
    """

    id: str = Field(default_factory=new_id)
    name: str
    participant_ids: list[str] = Field(default_factory=list)
    discussion_mode: DiscussionMode = DiscussionMode.CONCURRENT
    history: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# Agents, Commands & Notes
# =============================================================================


class AIAgent(BaseModel):
    """
    A configured persona that can be invoked to produce a conversational turn.

    The ``name`` doubles as the lookup key for mentions and moderator
    selection, so it must be unique within a session's roster.
    """

    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    system_instruction: str = ""
    icon: str = "SparklesIcon"
    color: str = "indigo"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    is_custom: bool = False


class Command(BaseModel):
    """
    A slash command (e.g. ``/search``).

    Attributes:
        name: Unique command name, without the leading slash
        params: Human-readable parameter hint (e.g., "<query>")
        description: Short description for the command palette
        definition: Free text that seeds the agent's instructions for the turn
        is_custom: False for built-ins, True for user-created commands
    """

    name: str
    params: str = ""
    description: str = ""
    definition: str = ""
    is_custom: bool = False


class Note(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str = ""
    content: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)
    thread_history: list[ChatMessage] = Field(default_factory=list)


class PresetChat(BaseModel):
    """A ready-made roster + discussion mode the user can start a session from."""

    name: str
    description: str = ""
    participant_ids: list[str] = Field(default_factory=list)
    discussion_mode: DiscussionMode = DiscussionMode.CONCURRENT


# =============================================================================
# Provider & Moderator Results
# =============================================================================


class ProviderResponse(BaseModel):
    """
    The outcome of one tool-capable provider call.

    Either ``tool_calls`` is non-empty (the model wants tools run) or
    ``text`` holds the final answer.
    """

    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    grounding_chunks: list[dict[str, Any]] = Field(default_factory=list)


class ModeratorDecision(BaseModel):
    action: ModeratorAction
    agent_name: str = ""
    reason: str = ""


# =============================================================================
# WebSocket Events
# =============================================================================


class ChatEvent(BaseModel):
    """
    A real-time event emitted by the session manager.

    Attributes:
        type: The event type (see EventType enum)
        session_id: Session the event belongs to
        message: The appended message, for MESSAGE_ADDED events
        content: Free text (status or error detail)
        timestamp: When this event was emitted
        metadata: Optional extra data (e.g., new discussion mode)
    """

    type: EventType
    session_id: str = ""
    message: Optional[ChatMessage] = None
    content: str = ""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary for WebSocket transmission."""
        return {
            "type": self.type.value,
            "session_id": self.session_id,
            "message": self.message.model_dump(mode="json") if self.message else None,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }
