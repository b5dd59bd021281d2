"""
FastAPI Application: HTTP host for scripted conversations.

Provides:
- Sequence listing and author-time validation
- Conversation lifecycle: start, answer choices / text inputs, dispose
- Event log per conversation (trigger data actions)

Conversations delivered over HTTP run in instant mode by default so one
request returns everything up to the next interactive message.
"""
from __future__ import annotations

import dataclasses
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

# Load .env before any config is read
from dotenv import load_dotenv
load_dotenv()

import structlog
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from config.settings import get_settings
from core.context import ConversationContext
from core.engine import ConversationEngine
from core.events import RecordingEventSink
from database.store_factory import create_store
from models.schemas import InvalidResolutionError, Message, SequenceNotFoundError
from templates.content import FileContentLibrary
from templates.formatters import FormatterRegistry
from templates.registry import SequenceRegistry, parse_sequence
from templates.validation import validate_sequence

logger = structlog.get_logger()

# ──────────────────────────────────────────────────────────────
#  Bootstrap
# ──────────────────────────────────────────────────────────────

_settings_boot = get_settings()
sequence_registry = SequenceRegistry()
formatter_registry = FormatterRegistry.from_file(_settings_boot.content.formatters_path)
content_library = FileContentLibrary(_settings_boot.content.directory)


@dataclasses.dataclass
class ConversationHandle:
    engine: ConversationEngine
    events: RecordingEventSink
    created_at: str


conversations: dict[str, ConversationHandle] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    sequence_registry.load_directory(settings.sequences.directory)
    logger.info("scripted_chat_started",
                sequences=sequence_registry.ids(),
                store_backend=settings.store.backend)
    yield

    for handle in conversations.values():
        await handle.engine.dispose()
    conversations.clear()
    logger.info("scripted_chat_stopped")


# ──────────────────────────────────────────────────────────────
#  App
# ──────────────────────────────────────────────────────────────

app = FastAPI(
    title="ScriptedChat API",
    description="Scripted, branching conversation runtime",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ──────────────────────────────────────────────────────────────
#  Request/Response Models
# ──────────────────────────────────────────────────────────────

class StartConversationRequest(BaseModel):
    sequence_id: str = ""
    data: dict[str, Any] = {}
    instant: bool = True


class ChoiceRequest(BaseModel):
    index: int


class TextRequest(BaseModel):
    text: str


def _message_view(message: Message) -> dict[str, Any]:
    view: dict[str, Any] = {
        "id": message.id,
        "type": message.type.value,
        "sender": message.sender,
        "text": message.text,
    }
    if message.choices:
        view["choices"] = [c.text for c in message.choices]
    if message.selected_choice_text is not None:
        view["selected_choice_text"] = message.selected_choice_text
    if message.is_interactive and not message.choices:
        view["placeholder_text"] = message.placeholder_text
    if message.image_path:
        view["image_path"] = message.image_path
    return view


def _conversation_view(conversation_id: str, handle: ConversationHandle) -> dict[str, Any]:
    engine = handle.engine
    pending = engine.pending_message
    return {
        "conversation_id": conversation_id,
        "state": engine.state.value,
        "active_sequence_id": engine.active_sequence_id,
        "messages": [_message_view(m) for m in engine.messages],
        "pending": _message_view(pending) if pending else None,
        "created_at": handle.created_at,
    }


def _get_handle(conversation_id: str) -> ConversationHandle:
    handle = conversations.get(conversation_id)
    if handle is None:
        raise HTTPException(404, "Conversation not found")
    return handle


# ══════════════════════════════════════════════════════════════
#  HEALTH
# ══════════════════════════════════════════════════════════════

@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "sequences": len(sequence_registry.ids()),
        "conversations": len(conversations),
    }


# ══════════════════════════════════════════════════════════════
#  SEQUENCES
# ══════════════════════════════════════════════════════════════

@app.get("/api/v1/sequences")
async def list_sequences():
    return [
        {"id": s.id, "name": s.name, "description": s.description, "messages": len(s.messages)}
        for s in sequence_registry.list_all()
    ]


@app.get("/api/v1/sequences/{sequence_id}")
async def get_sequence(sequence_id: str):
    sequence = sequence_registry.get(sequence_id)
    if sequence is None:
        raise HTTPException(404, "Sequence not found")
    return sequence.model_dump(mode="json")


@app.post("/api/v1/sequences/validate")
async def validate_raw_sequence(raw: dict[str, Any]):
    """Validate authored JSON without registering it."""
    sequence, issues = parse_sequence(raw)
    if sequence is not None:
        result = validate_sequence(sequence)
        issues = result.errors + result.warnings
    errors = [i.model_dump(mode="json") for i in issues if i.severity.value == "error"]
    warnings = [i.model_dump(mode="json") for i in issues if i.severity.value == "warning"]
    return {"valid": not errors, "errors": errors, "warnings": warnings}


# ══════════════════════════════════════════════════════════════
#  CONVERSATIONS
# ══════════════════════════════════════════════════════════════

@app.post("/api/v1/conversations")
async def start_conversation(req: StartConversationRequest):
    settings = get_settings()
    conversation_id = uuid.uuid4().hex[:16]
    store = create_store(settings.store, namespace=conversation_id)
    if req.data:
        await store.set_many(req.data)

    events = RecordingEventSink()
    delivery = settings.delivery
    if req.instant:
        delivery = dataclasses.replace(delivery, instant_mode=True)

    context = ConversationContext(
        registry=sequence_registry,
        store=store,
        formatters=formatter_registry,
        content=content_library,
        events=events,
        delivery=delivery,
        session=settings.session,
        default_sequence_id=settings.sequences.default_sequence_id,
    )
    engine = ConversationEngine(context)
    try:
        await engine.start(req.sequence_id or None)
    except SequenceNotFoundError as e:
        raise HTTPException(404, str(e))

    handle = ConversationHandle(
        engine=engine,
        events=events,
        created_at=datetime.now(timezone.utc).isoformat(),
    )
    conversations[conversation_id] = handle
    await engine.join()
    logger.info("conversation_started", conversation_id=conversation_id,
                sequence_id=engine.active_sequence_id)
    return _conversation_view(conversation_id, handle)


@app.get("/api/v1/conversations")
async def list_conversations():
    return [
        {"conversation_id": cid, "state": h.engine.state.value, "active_sequence_id": h.engine.active_sequence_id}
        for cid, h in conversations.items()
    ]


@app.get("/api/v1/conversations/{conversation_id}")
async def get_conversation(conversation_id: str):
    handle = _get_handle(conversation_id)
    return _conversation_view(conversation_id, handle)


@app.post("/api/v1/conversations/{conversation_id}/choice")
async def select_choice(conversation_id: str, req: ChoiceRequest):
    handle = _get_handle(conversation_id)
    try:
        await handle.engine.select_choice(req.index)
    except InvalidResolutionError as e:
        raise HTTPException(409, str(e))
    await handle.engine.join()
    return _conversation_view(conversation_id, handle)


@app.post("/api/v1/conversations/{conversation_id}/text")
async def submit_text(conversation_id: str, req: TextRequest):
    handle = _get_handle(conversation_id)
    try:
        await handle.engine.submit_text(req.text)
    except InvalidResolutionError as e:
        raise HTTPException(409, str(e))
    await handle.engine.join()
    return _conversation_view(conversation_id, handle)


@app.get("/api/v1/conversations/{conversation_id}/data")
async def get_conversation_data(conversation_id: str):
    handle = _get_handle(conversation_id)
    return await handle.engine.data()


@app.get("/api/v1/conversations/{conversation_id}/events")
async def get_conversation_events(conversation_id: str):
    handle = _get_handle(conversation_id)
    return [{"event": name, "payload": payload} for name, payload in handle.events.events]


@app.delete("/api/v1/conversations/{conversation_id}")
async def dispose_conversation(conversation_id: str):
    handle = _get_handle(conversation_id)
    await handle.engine.dispose()
    del conversations[conversation_id]
    return {"status": "disposed", "conversation_id": conversation_id}


# ══════════════════════════════════════════════════════════════
#  Entry Point
# ══════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
