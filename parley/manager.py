"""
Session Manager
===============

The main orchestrator that owns every chat session. The manager:
    1. Creates, renames, deletes and activates sessions
    2. Is the single writer of session history (append-only)
    3. Parses incoming user messages for slash commands and @mentions
    4. Dispatches each user message to the strategy bound to the
       session's discussion mode
    5. Notifies listeners (e.g. WebSocket clients) of every change and
       persists sessions when a store is configured

This is the primary interface for running conversations, used by both the
HTTP/WebSocket server and programmatic callers.

Usage:
    >>> manager = SessionManager.from_config(config, provider)
    >>> session = manager.create_session(["default-pragmatist", "default-visionary"])
    >>> await manager.send_message(session.id, "@The Visionary what comes after cars?")
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from parley.agent import AgentRegistry
from parley.commands import CommandRegistry
from parley.config import DefaultsConfig, ParleyConfig
from parley.exceptions import SessionNotFoundError
from parley.models import (
    AIAgent,
    ChatEvent,
    ChatMessage,
    ChatSession,
    DiscussionMode,
    EventType,
    Note,
    PresetChat,
    Role,
)
from parley.moderator import Moderator
from parley.notes import InMemoryNotesManager, NotesCollaborator
from parley.parsing import parse_command, parse_mentions
from parley.providers.base import AIProvider, TextOptions
from parley.runner import ERROR_TEXT, AgentTurnRunner
from parley.store import StateStore
from parley.strategies import STRATEGY_MAP, BaseStrategy
from parley.tools import ToolExecutor

logger = logging.getLogger(__name__)

SESSIONS_KEY = "sessions"
SESSION_KEY_PREFIX = "session:"
AGENTS_KEY = "agents"

Listener = Callable[[ChatEvent], None]


class SessionManager:
    """
    Owner of the canonical session list and its histories.

    Different sessions may process messages concurrently; a single session
    ignores a new message while one is still being handled.

    Attributes:
        provider: AI backend shared by agents, moderator and thread chat
        agents: Agent roster
        commands: Slash command registry
        notes: Notes collaborator used by tools and thread chat
        defaults: Default session parameters and safety bounds
        presets: Preset chats available to ``create_session_from_preset``
        active_session_id: Session currently selected by the user
    """

    def __init__(
        self,
        provider: AIProvider,
        agents: AgentRegistry,
        commands: CommandRegistry,
        notes: NotesCollaborator,
        defaults: Optional[DefaultsConfig] = None,
        presets: Optional[dict[str, PresetChat]] = None,
        store: Optional[StateStore] = None,
    ):
        self.provider = provider
        self.agents = agents
        self.commands = commands
        self.notes = notes
        self.defaults = defaults or DefaultsConfig()
        self.presets = presets or {}
        self.store = store

        self.tools = ToolExecutor(notes)
        self.runner = AgentTurnRunner(
            provider,
            self.tools,
            sink=self,
            max_tool_iterations=self.defaults.max_tool_iterations,
            temperature=self.defaults.temperature,
        )
        self.moderator = Moderator(provider, temperature=self.defaults.temperature)
        self.strategies: dict[DiscussionMode, BaseStrategy] = {
            mode: strategy_class(
                self.runner,
                agents,
                self,
                moderator=self.moderator,
                moderator_extra_turns=self.defaults.moderator_extra_turns,
            )
            for mode, strategy_class in STRATEGY_MAP.items()
        }

        self._sessions: dict[str, ChatSession] = {}
        self._processing: set[str] = set()
        self._thread_processing: set[str] = set()
        self._listeners: list[Listener] = []
        self.active_session_id: Optional[str] = None

        if store is not None:
            self._load(store)

    @classmethod
    def from_config(
        cls,
        config: ParleyConfig,
        provider: AIProvider,
        notes: Optional[NotesCollaborator] = None,
        store: Optional[StateStore] = None,
    ) -> SessionManager:
        """Build a manager and its registries from a loaded configuration."""
        if store is None and config.storage.path:
            store = StateStore(config.storage.path)
        return cls(
            provider=provider,
            agents=AgentRegistry(config.agents),
            commands=CommandRegistry(config.commands, store=store),
            notes=notes or InMemoryNotesManager(provider),
            defaults=config.defaults,
            presets=config.presets,
            store=store,
        )

    def _load(self, store: StateStore) -> None:
        for data in store.load(AGENTS_KEY, []):
            agent = AIAgent(**data)
            if self.agents.get(agent.id) is None:
                self.agents.add(agent)
        for session_id in store.load(SESSIONS_KEY, []):
            data = store.load(_session_key(session_id))
            if data is None:
                logger.warning(f"Session {session_id} is indexed but missing from the store")
                continue
            session = ChatSession(**data)
            self._sessions[session.id] = session
        if self._sessions:
            self.active_session_id = next(iter(self._sessions))
        logger.info(f"Loaded {len(self._sessions)} sessions from {store.db_path}")

    def _save_session(self, session: ChatSession) -> None:
        if self.store is not None:
            self.store.save(_session_key(session.id), session.model_dump(mode="json"))

    def _save_session_index(self) -> None:
        if self.store is not None:
            self.store.save(SESSIONS_KEY, list(self._sessions))

    # =========================================================================
    # Listeners
    # =========================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener for ``ChatEvent``s; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: ChatEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Event listener failed: {e}")

    # =========================================================================
    # Agents
    # =========================================================================

    def create_agent(self, agent: AIAgent) -> AIAgent:
        """Add a custom agent to the roster."""
        agent = agent.model_copy(update={"is_custom": True})
        self.agents.add(agent)
        if self.store is not None:
            self.store.save(
                AGENTS_KEY,
                [a.model_dump(mode="json") for a in self.agents.all() if a.is_custom],
            )
        return agent

    # =========================================================================
    # Session Lifecycle
    # =========================================================================

    def list_sessions(self) -> list[ChatSession]:
        """Sessions, newest first."""
        return list(self._sessions.values())

    def get_session(self, session_id: str) -> ChatSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    @property
    def active_session(self) -> Optional[ChatSession]:
        if self.active_session_id is None:
            return None
        return self._sessions.get(self.active_session_id)

    def set_active_session(self, session_id: str) -> None:
        self.get_session(session_id)
        self.active_session_id = session_id

    def create_session(
        self,
        participant_ids: Iterable[str],
        discussion_mode: Optional[DiscussionMode] = None,
        name: Optional[str] = None,
    ) -> ChatSession:
        """
        Create a session and make it the active one.

        Unknown agent ids are dropped; duplicate ids are collapsed.

        Raises:
            ValueError: If no participant resolves to a known agent, or two
                        participants share a display name.
        """
        unique_ids = list(dict.fromkeys(participant_ids))
        participants = self.agents.resolve(unique_ids)
        if not participants:
            raise ValueError("Cannot create a session with no participants.")

        names = [p.name for p in participants]
        if len(set(names)) != len(names):
            raise ValueError(f"Participant names must be unique within a session: {names}")

        if name is None:
            if len(participants) > 1:
                name = f"Group Chat with {', '.join(names[:2])}{'...' if len(names) > 2 else ''}"
            else:
                name = f"Chat with {names[0]}"

        session = ChatSession(
            name=name,
            participant_ids=[p.id for p in participants],
            discussion_mode=discussion_mode or self.defaults.discussion_mode,
        )
        # Newest first
        self._sessions = {session.id: session, **self._sessions}
        self.active_session_id = session.id
        self._save_session(session)
        self._save_session_index()
        logger.info(
            f"Created session '{session.name}' ({session.discussion_mode.value}) "
            f"with {len(participants)} participant(s)"
        )
        return session

    def create_session_from_preset(self, preset_key: str) -> ChatSession:
        if preset_key not in self.presets:
            raise KeyError(
                f"Preset '{preset_key}' not found. Available: {list(self.presets.keys())}"
            )
        preset = self.presets[preset_key]
        return self.create_session(preset.participant_ids, preset.discussion_mode, preset.name)

    def rename_session(self, session_id: str, name: str) -> None:
        session = self.get_session(session_id)
        session.name = name
        self._save_session(session)
        self._emit(ChatEvent(
            type=EventType.SESSION_UPDATED, session_id=session_id, metadata={"name": name},
        ))

    def delete_session(self, session_id: str) -> None:
        self.get_session(session_id)
        self._sessions = {k: v for k, v in self._sessions.items() if k != session_id}
        if self.active_session_id == session_id:
            self.active_session_id = next(iter(self._sessions), None)
        if self.store is not None:
            self.store.delete(_session_key(session_id))
        self._save_session_index()
        logger.info(f"Deleted session {session_id}")

    def update_session_mode(self, session_id: str, mode: DiscussionMode) -> None:
        """Switch the discussion mode; takes effect on the next user message."""
        session = self.get_session(session_id)
        session.discussion_mode = DiscussionMode(mode)
        self._save_session(session)
        self._emit(ChatEvent(
            type=EventType.SESSION_UPDATED,
            session_id=session_id,
            metadata={"discussion_mode": session.discussion_mode.value},
        ))

    # =========================================================================
    # History
    # =========================================================================

    def add_message(self, session_id: str, message: ChatMessage) -> None:
        self.add_messages(session_id, [message])

    def add_messages(self, session_id: str, messages: list[ChatMessage]) -> None:
        """
        Append messages to a session's history as one batch.

        The history list is replaced rather than mutated, so snapshots taken
        by running turns never change underneath them.
        """
        session = self.get_session(session_id)
        session.history = [*session.history, *messages]
        self._save_session(session)
        for message in messages:
            self._emit(ChatEvent(
                type=EventType.MESSAGE_ADDED, session_id=session_id, message=message,
            ))

    def is_processing(self, session_id: str) -> bool:
        return session_id in self._processing

    # =========================================================================
    # Messaging
    # =========================================================================

    async def send_message(self, session_id: str, raw_text: str) -> bool:
        """
        Post a user message and let the session's strategy respond.

        Blank messages and messages sent while the session is still busy
        are ignored. Failures inside the strategy are logged and never
        raised; agents report them in the chat.

        Returns:
            True if the message was accepted and dispatched, False if it
            was ignored.
        """
        if not raw_text or not raw_text.strip():
            return False
        if session_id in self._processing:
            logger.debug(f"Session {session_id} is busy; ignoring message")
            return False
        session = self._sessions.get(session_id)
        if session is None:
            logger.error(f"Session not found: {session_id}")
            return False

        self._processing.add(session_id)
        try:
            command = parse_command(raw_text, self.commands)
            participants = self.agents.resolve(session.participant_ids)
            mentioned_agents = parse_mentions(raw_text, participants)

            user_message = ChatMessage(role=Role.USER, content=raw_text, persona="User")
            self.add_message(session_id, user_message)

            mode = session.discussion_mode
            strategy = self.strategies[mode]
            self._emit(ChatEvent(
                type=EventType.STATUS,
                session_id=session_id,
                content="Thinking...",
                metadata={"processing": True, "discussion_mode": mode.value},
            ))
            logger.info(
                f"Dispatching message in session {session_id} ({mode.value}); "
                f"command={command.name if command else None}, "
                f"mentions={[a.name for a in mentioned_agents]}"
            )
            await strategy.handle_message(session, user_message, mentioned_agents, command)
        except Exception as e:
            logger.exception(f"Discussion failed in session {session_id}: {e}")
        finally:
            self._processing.discard(session_id)
            self._emit(ChatEvent(
                type=EventType.STATUS,
                session_id=session_id,
                metadata={"processing": False},
            ))
        return True

    async def send_thread_chat_message(self, note_id: str, text: str) -> bool:
        """
        Chat about a single note in that note's own thread.

        The reply is generated from the note's title, content and thread so
        far, and appended to the note's thread rather than to any session.
        """
        if not text or not text.strip() or note_id in self._thread_processing:
            return False
        note = self.notes.get_note(note_id)
        if note is None:
            logger.error(f"Note not found for thread chat: {note_id}")
            return False

        self._thread_processing.add(note_id)
        try:
            self.notes.append_thread_message(note_id, ChatMessage(role=Role.USER, content=text))
            try:
                updated = self.notes.get_note(note_id) or note
                reply = await self.provider.generate_text(
                    _thread_prompt(updated, text),
                    TextOptions(temperature=self.defaults.temperature),
                )
                answer = ChatMessage(role=Role.MODEL, content=reply)
            except Exception as e:
                logger.exception(f"Thread chat failed for note {note_id}: {e}")
                answer = ChatMessage(role=Role.MODEL, content=ERROR_TEXT)
            self.notes.append_thread_message(note_id, answer)
        finally:
            self._thread_processing.discard(note_id)
        return True


def _thread_prompt(note: Note, question: str) -> str:
    thread = "\n".join(
        f"{m.role.value}: {m.content}" for m in note.thread_history[-10:]
    )
    return (
        "You are an AI assistant discussing a single note with its author. "
        "Answer based on the note and the conversation so far. Be concise.\n\n"
        f"--- NOTE: {note.title or 'Untitled'} ---\n{note.content}\n\n"
        f"--- CONVERSATION ---\n{thread}\n\n"
        f"user: {question}\n\nmodel:"
    )


def _session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"
