"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional
from uuid import UUID

from fastapi import FastAPI, Query, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..domain.entities import Anchor, ProgressPosition
from ..domain.errors import (
    CollaborationError,
    NotFound,
    PersistenceFailure,
    ProfileConflict,
    QuotaExceeded,
)
from .config import Settings, settings
from .controller import CollaborationController

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ===== Request bodies =====


class DocumentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    author: Optional[str] = Field(default=None, max_length=200)


class ProfileCreate(BaseModel):
    username: str = Field(min_length=1, max_length=50)


class HighlightCreate(BaseModel):
    participant_id: UUID
    anchor: Anchor
    text: str
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")


class CommentCreate(BaseModel):
    participant_id: UUID
    text: str
    parent_id: Optional[UUID] = None


class ProgressReport(BaseModel):
    participant_id: UUID
    position: ProgressPosition


def status_for(error: CollaborationError) -> int:
    """Map a collaboration error to its HTTP status code."""
    if isinstance(error, NotFound):
        return 404
    if isinstance(error, ProfileConflict):
        return 409
    if isinstance(error, QuotaExceeded):
        return 429
    if isinstance(error, PersistenceFailure):
        return 503
    return 400


def create_app(
    app_settings: Optional[Settings] = None,
    controller: Optional[CollaborationController] = None,
) -> FastAPI:
    """Build the FastAPI app around a controller.

    Args:
        app_settings: Settings to use; the module singleton by default.
        controller: A prebuilt controller, e.g. one wired to test repositories.
    """
    app_settings = app_settings or settings
    controller = controller or CollaborationController.from_settings(app_settings)
    service = controller.service

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await controller.start()
        try:
            yield
        finally:
            await controller.stop()

    app = FastAPI(
        title=app_settings.app_name,
        version=app_settings.app_version,
        debug=app_settings.debug,
        lifespan=lifespan,
    )
    app.state.controller = controller

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CollaborationError)
    async def collaboration_error_handler(request: Request, exc: CollaborationError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=status_code,
            content=exc.to_message().model_dump(mode="json", exclude={"type"}),
        )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return controller.get_health_status()

    @app.post("/documents", status_code=201)
    async def create_document(body: DocumentCreate):
        """Register a document and open its shared session."""
        return await service.create_document(body.title, body.author)

    @app.get("/documents/slug/{slug}")
    async def get_document_by_slug(slug: str):
        return await service.get_document_by_slug(slug)

    @app.get("/documents/{document_id}")
    async def get_document(document_id: UUID):
        return await service.get_document(document_id)

    @app.get("/sessions/{session_id}")
    async def get_session(session_id: UUID):
        """Session details plus the live roster."""
        session, roster = await service.get_session(session_id)
        return {"session": session, "participants": roster}

    @app.get("/documents/{document_id}/highlights")
    async def list_highlights(
        document_id: UUID,
        chapter: Optional[int] = Query(None, ge=0, description="Only highlights in this chapter"),
        participant_id: Optional[UUID] = Query(None, description="Only highlights by this participant"),
    ):
        highlights = await service.list_highlights(document_id, chapter=chapter, participant_id=participant_id)
        return {"highlights": highlights}

    @app.post("/documents/{document_id}/highlights", status_code=201)
    async def create_highlight(document_id: UUID, body: HighlightCreate):
        return await service.add_highlight(document_id, body.participant_id, body.anchor, body.text, body.color)

    @app.get("/highlights/{highlight_id}/comments")
    async def list_comments(highlight_id: UUID):
        return {"comments": await service.list_comments(highlight_id)}

    @app.post("/highlights/{highlight_id}/comments", status_code=201)
    async def create_comment(highlight_id: UUID, body: CommentCreate):
        return await service.add_comment(highlight_id, body.participant_id, body.text, body.parent_id)

    @app.get("/documents/{document_id}/profiles")
    async def list_profiles(document_id: UUID):
        return {"profiles": await service.list_profiles(document_id)}

    @app.post("/documents/{document_id}/profiles", status_code=201)
    async def create_profile(document_id: UUID, body: ProfileCreate):
        return await service.create_profile(document_id, body.username)

    @app.put("/documents/{document_id}/profiles/{participant_id}/use")
    async def use_profile(document_id: UUID, participant_id: UUID):
        """Mark a profile as used so it is not purged."""
        return await service.use_profile(document_id, participant_id)

    @app.get("/documents/{document_id}/progress")
    async def list_progress(document_id: UUID):
        """Progress of readers active within the staleness window."""
        return {"progress": await service.list_progress(document_id)}

    @app.post("/documents/{document_id}/progress")
    async def report_progress(document_id: UUID, body: ProgressReport):
        outcome = await service.report_progress(document_id, body.participant_id, body.position)
        return {"outcome": outcome}

    @app.get("/documents/{document_id}/progress/{participant_id}")
    async def get_progress(document_id: UUID, participant_id: UUID):
        return await service.get_progress(document_id, participant_id)

    @app.get("/limits")
    async def get_limits():
        return controller.quota.limits

    @app.post("/limits/phase/{phase}")
    async def upgrade_phase(phase: str):
        """Replace the active limits with a scaling phase."""
        limits = await service.upgrade_phase(phase)
        return {"phase": phase, "limits": limits}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """
        WebSocket endpoint for collaborative reading sessions.

        Connection lifecycle:
        1. Client connects and sends join-session
        2. Server replies with session-roster then session-state
        3. Annotation and progress requests are fanned out to the session
        4. On disconnect the participant's slot is reclaimed and peers get user-left
        """
        await websocket.accept()
        await controller.handle_websocket_connection(websocket)

    return app


app = create_app()
