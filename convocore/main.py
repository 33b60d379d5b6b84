"""
HTTP application exposing the chat orchestrator.

Run with ``python -m convocore.main`` or mount ``create_app()`` in any ASGI
server.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
import logging

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .chatbot import (
    ChatOrchestrator, FileAttachment, Session, SessionNotFoundError, SessionStore,
    save_sessions, load_sessions
)
from .config import Settings, get_settings, configure_logging
from .database import BaseSessionStorage, create_session_storage
from .heuristics import Personality

logger = logging.getLogger(__name__)


class AttachmentModel(BaseModel):
    """File metadata sent with a message."""
    name: str = Field(..., min_length=1, max_length=255)
    size: int = Field(..., ge=0)
    mime_type: str = Field("application/octet-stream", max_length=255)


class CreateSessionRequest(BaseModel):
    title: Optional[str] = Field(None, max_length=200)


class SendMessageRequest(BaseModel):
    """Request model for chat messages."""
    message: str = Field(..., min_length=1, max_length=4000)
    attachments: List[AttachmentModel] = Field(default_factory=list)
    search_web: bool = False
    personality: Optional[str] = None


class BackendConfigRequest(BaseModel):
    api_key: Optional[str] = None
    demo_mode_enabled: Optional[bool] = None
    api_base: Optional[str] = None


class MessageResponse(BaseModel):
    """Response model for an assistant reply."""
    id: str
    session_id: str
    role: str
    content: str
    kind: str
    timestamp: str
    tier: Optional[str] = None


def _session_summary(session: Session) -> Dict[str, Any]:
    return {
        'id': session.id,
        'title': session.title,
        'message_count': len(session.messages),
        'created_at': session.created_at.isoformat(),
        'updated_at': session.updated_at.isoformat(),
    }


def _parse_personality(value: Optional[str]) -> Optional[Personality]:
    if value is None:
        return None
    try:
        return Personality.from_value(value)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


def create_app(settings: Optional[Settings] = None,
               orchestrator: Optional[ChatOrchestrator] = None,
               storage: Optional[BaseSessionStorage] = None) -> FastAPI:
    """Build the application, wiring storage and backends from settings."""
    settings = settings or get_settings()
    configure_logging(settings)

    if storage is None:
        storage = create_session_storage(settings.storage.backend, settings.storage.path)
    storage_key = settings.storage.key

    if orchestrator is None:
        session_store = load_sessions(storage, storage_key)
        orchestrator = ChatOrchestrator.from_settings(settings, session_store=session_store)

    persist_lock = asyncio.Lock()

    async def persist() -> None:
        # Snapshot on the loop; only the write runs in a worker thread
        snapshot = SessionStore.from_records(orchestrator.session_store.to_records())
        async with persist_lock:
            await asyncio.to_thread(save_sessions, snapshot, storage, storage_key)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"{settings.app_name} starting ({settings.environment.value})")
        yield
        await orchestrator.shutdown()
        await persist()
        logger.info(f"{settings.app_name} stopped")

    app = FastAPI(
        title=settings.app_name,
        description="Conversational orchestration service",
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    app.state.storage = storage

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {'status': 'ok', **orchestrator.get_status()}

    @app.post("/sessions", status_code=201)
    async def create_session(request: Optional[CreateSessionRequest] = None):
        session = orchestrator.create_session(request.title if request else None)
        await persist()
        return _session_summary(session)

    @app.get("/sessions")
    async def list_sessions():
        return [_session_summary(s) for s in orchestrator.list_sessions()]

    @app.get("/sessions/{session_id}")
    async def get_session(session_id: str):
        session = orchestrator.get_session(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return session.to_dict()

    @app.delete("/sessions/{session_id}")
    async def delete_session(session_id: str):
        if not orchestrator.delete_session(session_id):
            raise HTTPException(status_code=404, detail="Session not found")
        await persist()
        return {'deleted': True, 'id': session_id}

    @app.post("/sessions/{session_id}/messages", response_model=MessageResponse)
    async def send_message(session_id: str, request: SendMessageRequest):
        personality = _parse_personality(request.personality)
        attachments = [FileAttachment(a.name, a.size, a.mime_type) for a in request.attachments]
        try:
            reply = await orchestrator.send_message(
                session_id, request.message,
                attachments=attachments,
                search_web=request.search_web,
                personality=personality,
            )
        except SessionNotFoundError:
            raise HTTPException(status_code=404, detail="Session not found")
        await persist()

        return MessageResponse(
            id=reply.id,
            session_id=session_id,
            role=reply.role.value,
            content=reply.content,
            kind=reply.kind.value,
            timestamp=reply.timestamp.isoformat(),
            tier=reply.metadata.get('tier'),
        )

    @app.put("/config/llm")
    async def update_llm_config(request: BackendConfigRequest):
        return orchestrator.set_backend_config(
            api_key=request.api_key,
            demo_mode_enabled=request.demo_mode_enabled,
            api_base=request.api_base,
        )

    @app.get("/prompts/{personality}")
    async def canned_prompts(personality: str):
        parsed = _parse_personality(personality)
        return {'personality': parsed.value, 'prompts': orchestrator.get_canned_prompts(parsed)}

    return app


if __name__ == '__main__':
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
