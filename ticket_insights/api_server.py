"""FastAPI server for ticket insights."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import plotly.io as pio
from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.engine import Engine

from .analytics import get_dataset_list, get_dataset_summary, get_ticket_analytics, require_dataset
from .chat import GENERIC_ERROR, ChatService, ChatSession, ChatSessionStore
from .config import Settings, configure_logging, load_settings
from .constants import REPORT_METRICS
from .db import check_database, create_db_engine, create_session_factory, init_db, session_scope
from .errors import DatasetNotFoundError, IngestionError, TicketInsightsError, ValidationError
from .ingestion import ingest_upload
from .insights import build_analytics_view, build_report
from .llm import NarrativeClient, build_dataset_context, llm_status
from .payloads import UIComponent, json_safe
from .query_engine import analyze_data_by_query
from .visualization import build_figure

logger = logging.getLogger(__name__)


class QueryPayload(BaseModel):
    query: str = ""
    chart_type: str = "auto"


class ReportPayload(BaseModel):
    report_type: str = "General"
    metrics: list[str] = Field(default_factory=lambda: list(REPORT_METRICS))


class ChatSessionPayload(BaseModel):
    dataset_id: Optional[str] = None


class ChatMessagePayload(BaseModel):
    message: str = ""


class ActiveDatasetPayload(BaseModel):
    dataset_id: str


def _figure_to_json(figure: Any) -> dict[str, Any] | None:
    if figure is None:
        return None
    return json.loads(pio.to_json(figure, validate=False))


def _status_for(exc: TicketInsightsError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, DatasetNotFoundError):
        return 404
    if isinstance(exc, IngestionError):
        return 422
    return 500


def _get_chat(request: Request, session_id: str) -> ChatSession:
    chat = request.app.state.chat_sessions.get(session_id)
    if chat is None:
        raise HTTPException(status_code=404, detail="Chat session not found")
    return chat


def create_app(settings: Settings | None = None, engine: Engine | None = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    if engine is None:
        engine = create_db_engine(settings.database_url, echo=settings.sql_echo)
    init_db(engine)
    session_factory = create_session_factory(engine)
    narrator = NarrativeClient(settings)

    app = FastAPI(title="Ticket Insights API", version="1.0.0")
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.narrator = narrator
    app.state.chat_sessions = ChatSessionStore()
    app.state.chat_service = ChatService(session_factory, narrator=narrator)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TicketInsightsError)
    async def handle_domain_error(request: Request, exc: TicketInsightsError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.error("Unhandled %s on %s: %s", type(exc).__name__, request.url.path, exc)
        else:
            logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unexpected error on %s", request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": GENERIC_ERROR})

    @app.get("/api/health")
    def health() -> dict[str, Any]:
        return {"status": "ok", "llm": llm_status(settings)}

    @app.get("/api/db-check")
    def db_check() -> JSONResponse:
        try:
            with session_scope(session_factory) as session:
                payload = check_database(session)
        except Exception as exc:
            logger.exception("Database check failed")
            return JSONResponse(status_code=500, content={"status": "error", "detail": str(exc)})
        return JSONResponse(content=json_safe({"status": "ok", **payload}))

    @app.post("/api/datasets/upload")
    async def upload_dataset(
        file: Optional[UploadFile] = File(None),
        name: Optional[str] = Form(None),
        dataset_id: Optional[str] = Form(None),
    ) -> JSONResponse:
        if file is None or not file.filename:
            raise ValidationError("No file uploaded")
        payload = await file.read()
        with session_scope(session_factory) as session:
            result = ingest_upload(session, file.filename, payload, name=name, dataset_id=dataset_id or None)
            body = result.to_dict()
        return JSONResponse(content=json_safe(body))

    @app.get("/api/datasets")
    def list_datasets() -> JSONResponse:
        with session_scope(session_factory) as session:
            datasets = get_dataset_list(session)
        return JSONResponse(content={"datasets": json_safe(datasets)})

    @app.get("/api/datasets/{dataset_id}/summary")
    def dataset_summary(dataset_id: str) -> JSONResponse:
        with session_scope(session_factory) as session:
            summary = get_dataset_summary(session, dataset_id)
        return JSONResponse(content=json_safe(summary.to_dict()))

    @app.get("/api/datasets/{dataset_id}/analytics/{metric}")
    def dataset_analytics(
        dataset_id: str,
        metric: str,
        group_by: Optional[str] = None,
        timeframe: Optional[str] = None,
    ) -> JSONResponse:
        with session_scope(session_factory) as session:
            result = get_ticket_analytics(session, dataset_id, metric, group_by=group_by, timeframe=timeframe)
        view = build_analytics_view(result)
        figure = build_figure(view.chart_type, view.chart_data, view.title)
        return JSONResponse(
            content={
                "dataset_id": dataset_id,
                "metric": result.metric,
                "analytics": json_safe(result.to_dict()),
                "view": view.to_dict(),
                "figure": _figure_to_json(figure),
            }
        )

    @app.post("/api/datasets/{dataset_id}/query")
    def query_dataset(dataset_id: str, payload: QueryPayload) -> JSONResponse:
        with session_scope(session_factory) as session:
            result = analyze_data_by_query(session, dataset_id, payload.query, chart_type=payload.chart_type)
            if narrator.enabled:
                result.narrative = narrator.narrate(result.query, build_dataset_context(session, dataset_id), result)
        return JSONResponse(content=UIComponent.data_visualization(result).to_dict())

    @app.post("/api/datasets/{dataset_id}/report")
    def dataset_report(dataset_id: str, payload: ReportPayload) -> JSONResponse:
        with session_scope(session_factory) as session:
            report = build_report(session, dataset_id, payload.report_type, payload.metrics)
        return JSONResponse(content=UIComponent.report(report).to_dict())

    @app.post("/api/chat/sessions")
    def create_chat_session(request: Request, payload: Optional[ChatSessionPayload] = None) -> JSONResponse:
        dataset_id = payload.dataset_id if payload is not None else None
        if dataset_id:
            with session_scope(session_factory) as session:
                require_dataset(session, dataset_id)
        chat = request.app.state.chat_sessions.create(active_dataset_id=dataset_id)
        logger.info("Created chat session %s", chat.session_id)
        return JSONResponse(status_code=201, content=chat.to_dict())

    @app.post("/api/chat/sessions/{session_id}/messages")
    def post_chat_message(request: Request, session_id: str, payload: ChatMessagePayload) -> JSONResponse:
        chat = _get_chat(request, session_id)
        if not payload.message.strip():
            raise ValidationError("Message is required")
        service: ChatService = request.app.state.chat_service
        reply = service.send_message(chat, payload.message)
        return JSONResponse(content={"session_id": chat.session_id, "message": reply.to_dict()})

    @app.post("/api/chat/sessions/{session_id}/dataset")
    def set_chat_dataset(request: Request, session_id: str, payload: ActiveDatasetPayload) -> JSONResponse:
        chat = _get_chat(request, session_id)
        service: ChatService = request.app.state.chat_service
        ui = service.summarize_dataset(chat, payload.dataset_id)
        return JSONResponse(content={"session_id": chat.session_id, "ui": ui.to_dict()})

    @app.get("/api/chat/sessions/{session_id}")
    def get_chat_session(request: Request, session_id: str) -> JSONResponse:
        return JSONResponse(content=_get_chat(request, session_id).to_dict())

    @app.delete("/api/chat/sessions/{session_id}")
    def delete_chat_session(request: Request, session_id: str) -> JSONResponse:
        if not request.app.state.chat_sessions.delete(session_id):
            raise HTTPException(status_code=404, detail="Chat session not found")
        logger.info("Deleted chat session %s", session_id)
        return JSONResponse(content={"session_id": session_id, "deleted": True})

    return app
