"""Chat orchestration: route a message to a tool and wrap the answer."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.orm import Session, sessionmaker

from .analytics import get_dataset_list, get_dataset_summary, get_ticket_analytics
from .constants import MAX_CHAT_SESSIONS, NO_DATASETS_MESSAGE
from .db import session_scope
from .errors import TicketInsightsError
from .insights import build_analytics_view, build_report
from .intents import (
    KIND_ANALYZE_DATA,
    KIND_GENERATE_REPORT,
    KIND_LIST_DATASETS,
    KIND_SHOW_ANALYTICS,
    KIND_UPLOAD_DATASET,
    Intent,
    detect_intent,
)
from .llm import NarrativeClient, build_dataset_context
from .payloads import ComponentType, UIComponent
from .query_engine import analyze_data_by_query

logger = logging.getLogger(__name__)

GENERIC_ERROR = "An unexpected error occurred while processing your request."


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class ChatMessage:
    role: str
    content: str
    ui: UIComponent | None = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "ui": self.ui.to_dict() if self.ui is not None else None,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class ChatSession:
    session_id: str = field(default_factory=_new_id)
    active_dataset_id: str | None = None
    messages: list[ChatMessage] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "active_dataset_id": self.active_dataset_id,
            "messages": [message.to_dict() for message in self.messages],
        }


class ChatSessionStore:
    """In-process registry of chat sessions for one app instance.

    Holds at most ``max_sessions``; creating one more drops the oldest.
    """

    def __init__(self, max_sessions: int = MAX_CHAT_SESSIONS) -> None:
        self.max_sessions = max_sessions
        self._sessions: dict[str, ChatSession] = {}

    def create(self, active_dataset_id: str | None = None) -> ChatSession:
        chat = ChatSession(active_dataset_id=active_dataset_id)
        self._sessions[chat.session_id] = chat
        while len(self._sessions) > self.max_sessions:
            evicted = next(iter(self._sessions))
            del self._sessions[evicted]
            logger.info("Evicted chat session %s", evicted)
        return chat

    def get(self, session_id: str) -> ChatSession | None:
        return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)


def _describe(ui: UIComponent) -> str:
    if ui.type is ComponentType.ERROR:
        return ui.message or GENERIC_ERROR
    if ui.type is ComponentType.ANALYTICS:
        return f"Here is the {ui.data.title.lower()}."
    if ui.type is ComponentType.DATASET_LIST:
        return f"Found {len(ui.data)} dataset(s)." if ui.data else NO_DATASETS_MESSAGE
    if ui.type is ComponentType.DATASET_SUMMARY:
        return f"Summary of dataset {ui.data.name}."
    if ui.type is ComponentType.DATA_VISUALIZATION:
        return ui.data.narrative or ui.data.summary
    if ui.type is ComponentType.REPORT:
        return ui.data.title
    return ui.message or ""


class ChatService:
    def __init__(self, session_factory: sessionmaker, narrator: NarrativeClient | None = None) -> None:
        self.session_factory = session_factory
        self.narrator = narrator

    def _resolve_dataset_id(self, session: Session, chat: ChatSession) -> str | None:
        if chat.active_dataset_id:
            return chat.active_dataset_id
        datasets = get_dataset_list(session)
        if not datasets:
            return None
        chat.active_dataset_id = datasets[0]["id"]
        return chat.active_dataset_id

    def _run_intent(
        self,
        session: Session,
        chat: ChatSession,
        intent: Intent,
        history: list[dict[str, str]] | None = None,
    ) -> UIComponent:
        if intent.kind == KIND_UPLOAD_DATASET:
            return UIComponent.dataset_upload()
        if intent.kind == KIND_LIST_DATASETS:
            return UIComponent.dataset_list(get_dataset_list(session))

        dataset_id = self._resolve_dataset_id(session, chat)
        if dataset_id is None:
            return UIComponent.error(NO_DATASETS_MESSAGE)

        if intent.kind == KIND_SHOW_ANALYTICS:
            result = get_ticket_analytics(session, dataset_id, intent.metric)
            return UIComponent.analytics(build_analytics_view(result))
        if intent.kind == KIND_GENERATE_REPORT:
            return UIComponent.report(build_report(session, dataset_id, intent.report_type or "General", intent.metrics))
        if intent.kind == KIND_ANALYZE_DATA:
            result = analyze_data_by_query(session, dataset_id, intent.query or "")
            if self.narrator is not None and self.narrator.enabled:
                context = build_dataset_context(session, dataset_id)
                result.narrative = self.narrator.narrate(result.query, context, result, history=history)
            return UIComponent.data_visualization(result)
        raise TicketInsightsError(f"Unhandled intent: {intent.kind}")

    def handle_user_message(
        self, chat: ChatSession, message: str, history: list[dict[str, str]] | None = None
    ) -> UIComponent:
        intent = detect_intent(message)
        logger.debug("Session %s: %r routed by rule %s", chat.session_id, message, intent.rule)
        with session_scope(self.session_factory) as session:
            return self._run_intent(session, chat, intent, history)

    def _guarded(self, action: Callable[[], UIComponent]) -> UIComponent:
        try:
            return action()
        except TicketInsightsError as exc:
            logger.warning("Chat request failed: %s", exc)
            return UIComponent.error(str(exc))
        except Exception:
            logger.exception("Unexpected error while handling chat request")
            return UIComponent.error(GENERIC_ERROR)

    def send_message(self, chat: ChatSession, message: str) -> ChatMessage:
        history = [{"role": turn.role, "content": turn.content} for turn in chat.messages]
        chat.messages.append(ChatMessage(role="user", content=message))
        ui = self._guarded(lambda: self.handle_user_message(chat, message, history))
        reply = ChatMessage(role="assistant", content=_describe(ui), ui=ui)
        chat.messages.append(reply)
        return reply

    def summarize_dataset(self, chat: ChatSession, dataset_id: str) -> UIComponent:
        def summarize() -> UIComponent:
            with session_scope(self.session_factory) as session:
                summary = get_dataset_summary(session, dataset_id)
            chat.active_dataset_id = dataset_id
            return UIComponent.dataset_summary(summary)

        return self._guarded(summarize)
