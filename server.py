"""
Parley FastAPI Server
=====================

This is the main entry point for the Parley application.
It provides:
    - A REST API for agents, commands, presets, notes and chat sessions
    - A WebSocket endpoint that streams session events in real time

Start the server:
    $ python server.py

API Documentation:
    - Swagger UI: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from parley.config import load_config
from parley.exceptions import SessionNotFoundError
from parley.manager import SessionManager
from parley.models import AIAgent, ChatEvent, ChatSession, DiscussionMode, EventType
from parley.notes import InMemoryNotesManager
from parley.providers import LMStudioProvider, get_provider

# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("parley")

# =============================================================================
# Application Setup
# =============================================================================

# Load configuration
config = load_config(
    os.environ.get("PARLEY_CONFIG", str(Path(__file__).parent / "config.yaml"))
)

# Create the session manager
provider = get_provider(config.provider)
manager = SessionManager.from_config(config, provider)


# Lifespan context manager (modern replacement for on_event)
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle for the FastAPI app."""
    # --- Startup ---
    if isinstance(manager.provider, LMStudioProvider):
        if await manager.provider.health_check():
            logger.info("Connected to LM Studio.")
        else:
            logger.warning(
                "Cannot connect to LM Studio! "
                "Make sure LM Studio is running and the local server is started "
                "on port 1234 (Developer tab → Start Server)."
            )
    else:
        logger.info(f"Using AI provider: {manager.provider.name}")

    yield  # App runs here

    # --- Shutdown ---
    await manager.provider.close()
    if manager.store is not None:
        manager.store.close()
    logger.info("Parley server shut down.")


# Create FastAPI app
app = FastAPI(
    title="Parley",
    description=(
        "Multi-agent chat sessions. Talk to several AI agents at once, "
        "one after another, or let an AI moderator pick who speaks next."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware (allow all origins for local development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SessionNotFoundError)
async def session_not_found_handler(request, exc: SessionNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


# =============================================================================
# Request Bodies
# =============================================================================


class AgentCreateRequest(BaseModel):
    name: str
    description: str = ""
    system_instruction: str = ""
    icon: str = "SparklesIcon"
    color: str = "indigo"


class CommandCreateRequest(BaseModel):
    name: str
    description: str
    definition: str
    params: str = ""


class SessionCreateRequest(BaseModel):
    """Either a preset key or an explicit roster."""
    participant_ids: list[str] = []
    discussion_mode: Optional[DiscussionMode] = None
    name: Optional[str] = None
    preset: Optional[str] = None


class ModeUpdateRequest(BaseModel):
    discussion_mode: DiscussionMode


class RenameRequest(BaseModel):
    name: str


class MessageRequest(BaseModel):
    content: str


class NoteCreateRequest(BaseModel):
    title: str = ""
    content: str = ""


def _session_summary(session: ChatSession) -> dict:
    return {
        "id": session.id,
        "name": session.name,
        "participant_ids": session.participant_ids,
        "discussion_mode": session.discussion_mode.value,
        "message_count": len(session.history),
        "processing": manager.is_processing(session.id),
        "active": session.id == manager.active_session_id,
    }


# =============================================================================
# REST API Endpoints
# =============================================================================


@app.get("/api/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        Server status and which AI provider is in use.
    """
    provider_status: dict = {"name": manager.provider.name}
    if isinstance(manager.provider, LMStudioProvider):
        provider_status["connected"] = await manager.provider.health_check()
    return {
        "status": "ok",
        "provider": provider_status,
        "sessions": len(manager.list_sessions()),
    }


@app.get("/api/agents")
async def list_agents():
    return {"agents": [a.model_dump(mode="json") for a in manager.agents.all()]}


@app.post("/api/agents")
async def create_agent(request: AgentCreateRequest):
    """Add a custom agent to the roster."""
    agent = manager.create_agent(AIAgent(**request.model_dump()))
    return agent.model_dump(mode="json")


@app.get("/api/commands")
async def list_commands():
    return {"commands": [c.model_dump(mode="json") for c in manager.commands.get_commands()]}


@app.post("/api/commands")
async def create_command(request: CommandCreateRequest):
    """
    Create a custom slash command.

    Returns 400 when data is missing or the name is already taken.
    """
    created = manager.commands.create_command(
        request.name, request.description, request.definition, request.params
    )
    if not created:
        raise HTTPException(
            status_code=400,
            detail=f'Could not create command "/{request.name}".',
        )
    return manager.commands.get_command(request.name.strip()).model_dump(mode="json")


@app.get("/api/presets")
async def list_presets():
    """List all preset chats with their roster and discussion mode."""
    return {
        key: preset.model_dump(mode="json")
        for key, preset in manager.presets.items()
    }


@app.get("/api/sessions")
async def list_sessions():
    return {"sessions": [_session_summary(s) for s in manager.list_sessions()]}


@app.post("/api/sessions")
async def create_session(request: SessionCreateRequest):
    """
    Create a session from a preset or from an explicit roster.

    Returns:
        The new session, which also becomes the active session.
    """
    try:
        if request.preset:
            session = manager.create_session_from_preset(request.preset)
        else:
            session = manager.create_session(
                request.participant_ids, request.discussion_mode, request.name
            )
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return session.model_dump(mode="json")


@app.get("/api/sessions/{session_id}")
async def get_session(session_id: str):
    session = manager.get_session(session_id)
    return {
        **session.model_dump(mode="json"),
        "processing": manager.is_processing(session_id),
    }


@app.delete("/api/sessions/{session_id}")
async def delete_session(session_id: str):
    manager.delete_session(session_id)
    return {"deleted": session_id, "active_session_id": manager.active_session_id}


@app.put("/api/sessions/{session_id}/name")
async def rename_session(session_id: str, request: RenameRequest):
    manager.rename_session(session_id, request.name)
    return _session_summary(manager.get_session(session_id))


@app.put("/api/sessions/{session_id}/mode")
async def update_session_mode(session_id: str, request: ModeUpdateRequest):
    """Switch the discussion mode; applies from the next user message on."""
    manager.update_session_mode(session_id, request.discussion_mode)
    return _session_summary(manager.get_session(session_id))


@app.post("/api/sessions/{session_id}/messages")
async def post_message(session_id: str, request: MessageRequest):
    """
    Send a user message and wait until every agent has answered.

    Returns:
        Whether the message was accepted, and the messages appended while
        handling it.
    """
    session = manager.get_session(session_id)
    before = len(session.history)
    accepted = await manager.send_message(session_id, request.content)
    history = manager.get_session(session_id).history
    return {
        "accepted": accepted,
        "messages": [m.model_dump(mode="json") for m in history[before:]],
    }


@app.get("/api/notes")
async def list_notes():
    if not isinstance(manager.notes, InMemoryNotesManager):
        return {"notes": []}
    return {"notes": [n.model_dump(mode="json") for n in manager.notes.list_notes()]}


@app.post("/api/notes")
async def create_note(request: NoteCreateRequest):
    note = manager.notes.create_new_text_note()
    manager.notes.update_note(note.id, title=request.title, content=request.content)
    return manager.notes.get_note(note.id).model_dump(mode="json")


@app.post("/api/notes/{note_id}/thread")
async def post_thread_message(note_id: str, request: MessageRequest):
    """Chat with the AI about a single note."""
    if manager.notes.get_note(note_id) is None:
        raise HTTPException(status_code=404, detail=f"Note '{note_id}' not found")
    accepted = await manager.send_thread_chat_message(note_id, request.content)
    note = manager.notes.get_note(note_id)
    return {
        "accepted": accepted,
        "thread_history": [m.model_dump(mode="json") for m in note.thread_history],
    }


# =============================================================================
# WebSocket Endpoint: Real-Time Session Events
# =============================================================================


@app.websocket("/ws/sessions/{session_id}")
async def session_websocket(websocket: WebSocket, session_id: str):
    """
    Stream a session's events and accept user messages.

    Client → server:
        {"type": "message", "content": "@The Visionary what comes next?"}

    Server → client:
        ``ChatEvent.to_dict()`` for every appended message, status change
        and mode change in this session, plus ``error`` events for
        requests that could not be handled.
    """
    await websocket.accept()
    logger.info(f"WebSocket client connected to session {session_id}")

    try:
        manager.get_session(session_id)
    except SessionNotFoundError as e:
        await websocket.send_json(
            ChatEvent(type=EventType.ERROR, session_id=session_id, content=str(e)).to_dict()
        )
        await websocket.close()
        return

    queue: asyncio.Queue[ChatEvent] = asyncio.Queue()

    def on_event(event: ChatEvent) -> None:
        if event.session_id == session_id:
            queue.put_nowait(event)

    def send_error(content: str) -> None:
        queue.put_nowait(ChatEvent(type=EventType.ERROR, session_id=session_id, content=content))

    async def forward_events() -> None:
        while True:
            event = await queue.get()
            await websocket.send_json(event.to_dict())

    unsubscribe = manager.subscribe(on_event)
    sender = asyncio.create_task(forward_events())

    try:
        while True:
            raw_message = await websocket.receive_text()
            try:
                message = json.loads(raw_message)
            except json.JSONDecodeError:
                send_error("Invalid JSON message")
                continue

            if not isinstance(message, dict):
                send_error("Invalid message: expected a JSON object.")
                continue

            if message.get("type") != "message":
                send_error("Unknown message type. Expected 'message'.")
                continue

            content = message.get("content", "")
            if not isinstance(content, str):
                send_error("Invalid message: 'content' must be a string.")
                continue

            accepted = await manager.send_message(session_id, content)
            if not accepted:
                send_error("Message ignored: it was empty or the session is busy.")

    except WebSocketDisconnect:
        logger.info("WebSocket client disconnected")
    except Exception as e:
        logger.exception(f"WebSocket error: {e}")
    finally:
        unsubscribe()
        sender.cancel()


# =============================================================================
# Entry Point
# =============================================================================


if __name__ == "__main__":
    import uvicorn

    print("\n" + "=" * 60)
    print("  Parley: Multi-Agent Chat Sessions")
    print("=" * 60)
    print(f"  Server:  http://localhost:8000")
    print(f"  API Docs: http://localhost:8000/docs")
    print(f"  Config:  {os.environ.get('PARLEY_CONFIG', os.path.abspath('config.yaml'))}")
    print("=" * 60 + "\n")

    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
