import asyncio

import pytest

from parley.agent import DEFAULT_AGENTS, AgentRegistry
from parley.commands import CommandRegistry
from parley.config import DEFAULT_PRESETS
from parley.exceptions import SessionNotFoundError
from parley.manager import SessionManager
from parley.models import AIAgent, ChatMessage, DiscussionMode, EventType, Role
from parley.notes import InMemoryNotesManager
from parley.runner import ERROR_TEXT
from parley.store import StateStore
from tests.fakes import MODERATOR, hand_back, select

COMPANION = "default-companion"
PRAGMATIST = "default-pragmatist"
VISIONARY = "default-visionary"
ETHICIST = "default-ethicist"


# =============================================================================
# Session lifecycle
# =============================================================================


def test_single_agent_session_is_named_after_the_agent(manager) -> None:
    session = manager.create_session([COMPANION])

    assert session.name == "Chat with AI Companion"
    assert session.discussion_mode == DiscussionMode.CONCURRENT
    assert manager.active_session is session


def test_group_session_names(manager) -> None:
    two = manager.create_session([PRAGMATIST, VISIONARY])
    three = manager.create_session([PRAGMATIST, VISIONARY, ETHICIST])

    assert two.name == "Group Chat with The Pragmatist, The Visionary"
    assert three.name == "Group Chat with The Pragmatist, The Visionary..."


def test_explicit_name_and_mode_are_kept(manager) -> None:
    session = manager.create_session([PRAGMATIST], DiscussionMode.TURN_BASED, name="Budget")

    assert session.name == "Budget"
    assert session.discussion_mode == DiscussionMode.TURN_BASED


def test_session_requires_known_participants(manager) -> None:
    with pytest.raises(ValueError):
        manager.create_session([])
    with pytest.raises(ValueError):
        manager.create_session(["ghost"])

    session = manager.create_session(["ghost", PRAGMATIST, PRAGMATIST])
    assert session.participant_ids == [PRAGMATIST]


def test_sessions_are_listed_newest_first(manager) -> None:
    first = manager.create_session([COMPANION])
    second = manager.create_session([PRAGMATIST])

    assert [s.id for s in manager.list_sessions()] == [second.id, first.id]


def test_create_session_from_preset(manager) -> None:
    session = manager.create_session_from_preset("tech")

    assert session.name == "Tech Review Board"
    assert session.discussion_mode == DiscussionMode.TURN_BASED
    assert session.participant_ids == DEFAULT_PRESETS["tech"].participant_ids

    with pytest.raises(KeyError):
        manager.create_session_from_preset("nope")


def test_delete_moves_active_session(manager) -> None:
    older = manager.create_session([COMPANION])
    newer = manager.create_session([PRAGMATIST])

    manager.delete_session(newer.id)

    assert manager.active_session_id == older.id
    with pytest.raises(SessionNotFoundError):
        manager.get_session(newer.id)

    manager.delete_session(older.id)
    assert manager.active_session is None


def test_rename_and_activate(manager) -> None:
    first = manager.create_session([COMPANION])
    manager.create_session([PRAGMATIST])

    manager.rename_session(first.id, "Notes helper")
    manager.set_active_session(first.id)

    assert manager.active_session.name == "Notes helper"
    with pytest.raises(SessionNotFoundError):
        manager.set_active_session("missing")


def test_batch_append_leaves_earlier_snapshots_untouched(manager) -> None:
    session = manager.create_session([COMPANION])
    snapshot = session.history

    manager.add_messages(session.id, [
        ChatMessage(role=Role.MODEL, content="a"),
        ChatMessage(role=Role.MODEL, content="b"),
    ])

    assert snapshot == []
    assert [m.content for m in session.history] == ["a", "b"]


# =============================================================================
# send_message
# =============================================================================


@pytest.mark.asyncio
async def test_blank_and_unknown_messages_are_ignored(manager, provider) -> None:
    session = manager.create_session([COMPANION])

    assert await manager.send_message(session.id, "   ") is False
    assert await manager.send_message("missing", "hello") is False
    assert session.history == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_user_message_is_appended_before_answers(manager) -> None:
    session = manager.create_session([COMPANION])

    assert await manager.send_message(session.id, "Hello there")

    user, answer = session.history
    assert (user.role, user.persona, user.content) == (Role.USER, "User", "Hello there")
    assert (answer.role, answer.persona) == (Role.MODEL, "AI Companion")


@pytest.mark.asyncio
async def test_unknown_command_is_sent_as_plain_text(manager, provider) -> None:
    session = manager.create_session([COMPANION])

    await manager.send_message(session.id, "/frobnicate the notes")

    (call,) = provider.calls_for("AI Companion")
    assert "COMMAND DEFINITION" not in call.instruction
    assert call.history[-1].content == "/frobnicate the notes"


@pytest.mark.asyncio
async def test_session_ignores_messages_while_busy(manager, provider) -> None:
    session = manager.create_session([COMPANION])
    release = asyncio.Event()

    async def slow_answer():
        await release.wait()
        return "Finally."

    provider.script("AI Companion", slow_answer)

    first = asyncio.create_task(manager.send_message(session.id, "first"))
    for _ in range(5):
        await asyncio.sleep(0)

    assert manager.is_processing(session.id)
    assert await manager.send_message(session.id, "second") is False

    release.set()
    assert await first is True
    assert not manager.is_processing(session.id)
    assert [m.content for m in session.history] == ["first", "Finally."]


@pytest.mark.asyncio
async def test_different_sessions_process_in_parallel(manager, provider) -> None:
    one = manager.create_session([COMPANION])
    two = manager.create_session([PRAGMATIST])
    release = asyncio.Event()

    async def slow_answer():
        await release.wait()
        return "Later."

    provider.script("AI Companion", slow_answer)

    first = asyncio.create_task(manager.send_message(one.id, "slow"))
    await asyncio.sleep(0)

    assert await manager.send_message(two.id, "fast") is True
    assert manager.is_processing(one.id)

    release.set()
    await first


@pytest.mark.asyncio
async def test_strategy_errors_never_escape(manager) -> None:
    session = manager.create_session([COMPANION])

    async def explode(*args, **kwargs):
        raise RuntimeError("strategy bug")

    manager.strategies[DiscussionMode.CONCURRENT].handle_message = explode

    assert await manager.send_message(session.id, "hello") is True
    assert not manager.is_processing(session.id)


@pytest.mark.asyncio
async def test_mode_switch_applies_to_next_message(manager, provider) -> None:
    session = manager.create_session([PRAGMATIST, VISIONARY], DiscussionMode.CONCURRENT)
    await manager.send_message(session.id, "first")
    assert provider.calls_for(MODERATOR) == []

    manager.update_session_mode(session.id, DiscussionMode.MODERATED)
    provider.script(MODERATOR, select("The Visionary"), hand_back("Answered."))
    await manager.send_message(session.id, "second")

    assert len(provider.calls_for(MODERATOR)) == 2
    assert session.history[-1].content == "[Moderator]: Answered."


# =============================================================================
# Events
# =============================================================================


@pytest.mark.asyncio
async def test_listeners_receive_every_appended_message(manager) -> None:
    session = manager.create_session([COMPANION])
    events = []
    unsubscribe = manager.subscribe(events.append)

    await manager.send_message(session.id, "hello")

    added = [e for e in events if e.type == EventType.MESSAGE_ADDED]
    assert [e.message.id for e in added] == [m.id for m in session.history]
    statuses = [e.metadata["processing"] for e in events if e.type == EventType.STATUS]
    assert statuses == [True, False]

    unsubscribe()
    manager.update_session_mode(session.id, DiscussionMode.TURN_BASED)
    assert events[-1].type == EventType.STATUS


def test_mode_change_emits_session_update(manager) -> None:
    session = manager.create_session([COMPANION])
    events = []
    manager.subscribe(events.append)

    manager.update_session_mode(session.id, DiscussionMode.MODERATED)

    assert events[-1].type == EventType.SESSION_UPDATED
    assert events[-1].metadata == {"discussion_mode": "moderated"}


def test_failing_listener_does_not_break_appends(manager) -> None:
    session = manager.create_session([COMPANION])

    def broken(event):
        raise RuntimeError("listener bug")

    manager.subscribe(broken)
    manager.add_message(session.id, ChatMessage(role=Role.MODEL, content="still here"))

    assert session.history[-1].content == "still here"


# =============================================================================
# Thread chat
# =============================================================================


@pytest.mark.asyncio
async def test_thread_chat_answers_about_the_note(manager, provider, notes) -> None:
    provider.text_reply = "It says traffic fell by a fifth."

    assert await manager.send_thread_chat_message("n-cars", "What does this say?")

    thread = notes.get_note("n-cars").thread_history
    assert [(m.role, m.content) for m in thread] == [
        (Role.USER, "What does this say?"),
        (Role.MODEL, "It says traffic fell by a fifth."),
    ]
    assert "Congestion pricing cut traffic by 20%." in provider.text_prompts[0]


@pytest.mark.asyncio
async def test_thread_chat_failure_appends_apology(manager, provider, notes) -> None:
    provider.text_reply = RuntimeError("offline")

    assert await manager.send_thread_chat_message("n-bikes", "Summarize")

    assert notes.get_note("n-bikes").thread_history[-1].content == ERROR_TEXT


@pytest.mark.asyncio
async def test_thread_chat_ignores_blank_and_unknown(manager, provider) -> None:
    assert await manager.send_thread_chat_message("n-cars", "  ") is False
    assert await manager.send_thread_chat_message("missing", "hi") is False
    assert provider.text_prompts == []


# =============================================================================
# Persistence
# =============================================================================


@pytest.mark.asyncio
async def test_sessions_and_custom_agents_survive_restart(tmp_path, provider) -> None:
    db_path = tmp_path / "parley.db"

    def build() -> SessionManager:
        store = StateStore(db_path)
        return SessionManager(
            provider=provider,
            agents=AgentRegistry(DEFAULT_AGENTS),
            commands=CommandRegistry(store=store),
            notes=InMemoryNotesManager(provider),
            store=store,
        )

    first = build()
    agent = first.create_agent(AIAgent(id="custom-historian", name="Historian"))
    session = first.create_session([agent.id, PRAGMATIST])
    await first.send_message(session.id, "What happened in 1900?")
    first.commands.create_command("recap", "Recap the chat", "Summarize the discussion.")
    first.store.close()

    second = build()
    restored = second.get_session(session.id)
    assert restored.name == "Group Chat with Historian, The Pragmatist"
    assert [m.content for m in restored.history] == [m.content for m in session.history]
    assert second.agents.get("custom-historian").is_custom
    assert second.commands.get_command("recap") is not None
    assert second.active_session_id == session.id
    second.store.close()


class _RecordingStore(StateStore):
    def __init__(self, db_path) -> None:
        super().__init__(db_path)
        self.saved_keys: list[str] = []

    def save(self, key, value) -> None:
        self.saved_keys.append(key)
        super().save(key, value)


def _manager_with_store(provider, store: StateStore) -> SessionManager:
    return SessionManager(
        provider=provider,
        agents=AgentRegistry(DEFAULT_AGENTS),
        commands=CommandRegistry(store=store),
        notes=InMemoryNotesManager(provider),
        store=store,
    )


@pytest.mark.asyncio
async def test_appending_messages_rewrites_only_that_session(tmp_path, provider) -> None:
    store = _RecordingStore(tmp_path / "parley.db")
    manager = _manager_with_store(provider, store)
    quiet = manager.create_session([COMPANION])
    busy = manager.create_session([PRAGMATIST])
    store.saved_keys.clear()

    await manager.send_message(busy.id, "Hello")

    assert set(store.saved_keys) == {f"session:{busy.id}"}
    assert f"session:{quiet.id}" not in store.saved_keys
    store.close()


def test_deleted_session_stays_deleted_after_restart(tmp_path, provider) -> None:
    db_path = tmp_path / "parley.db"
    first = _manager_with_store(provider, StateStore(db_path))
    kept = first.create_session([COMPANION])
    dropped = first.create_session([PRAGMATIST])
    first.delete_session(dropped.id)
    assert first.store.load(f"session:{dropped.id}") is None
    first.store.close()

    second = _manager_with_store(provider, StateStore(db_path))
    assert [s.id for s in second.list_sessions()] == [kept.id]
    with pytest.raises(SessionNotFoundError):
        second.get_session(dropped.id)
    second.store.close()
