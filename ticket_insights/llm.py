"""Optional OpenAI narrator for free-form dataset questions."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from .analytics import require_dataset
from .config import DEFAULT_LLM_MODEL, Settings
from .constants import CHAT_HISTORY_WINDOW, SAMPLE_TICKET_LIMIT
from .models import Ticket
from .payloads import QueryResult

logger = logging.getLogger(__name__)


def _model_name(settings: Settings | None) -> str:
    if settings is not None:
        return settings.llm_model
    return os.getenv("TICKET_INSIGHTS_LLM_MODEL", DEFAULT_LLM_MODEL)


def _api_key(settings: Settings | None) -> str | None:
    if settings is not None:
        return settings.openai_api_key
    return os.getenv("OPENAI_API_KEY")


def _openai_client(settings: Settings | None = None) -> tuple[Any | None, str | None]:
    # Tests must stay offline even when the shell exports a real key.
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None, None

    api_key = _api_key(settings)
    if not api_key:
        return None, None
    try:
        from openai import OpenAI

        return OpenAI(api_key=api_key), _model_name(settings)
    except Exception as exc:
        logger.warning("OpenAI client unavailable: %s", exc)
        return None, None


def llm_status(settings: Settings | None = None) -> dict[str, Any]:
    model = _model_name(settings)
    if not _api_key(settings):
        return {"enabled": False, "model": model, "reason": "OPENAI_API_KEY not configured"}
    try:
        import openai  # noqa: F401

        return {"enabled": True, "model": model, "reason": None}
    except Exception as exc:
        return {"enabled": False, "model": model, "reason": f"OpenAI client unavailable: {exc}"}


def build_dataset_context(session: Session, dataset_id: str) -> str:
    dataset = require_dataset(session, dataset_id)
    tickets = session.scalars(
        select(Ticket).where(Ticket.dataset_id == dataset_id).order_by(Ticket.date.desc()).limit(SAMPLE_TICKET_LIMIT)
    ).all()

    lines = [
        f'You are analyzing a dataset named "{dataset.name}" containing help desk tickets.',
        "The dataset has the following structure:",
        "- Ticket ID",
        "- Date",
        "- Employee ID",
        "- Agent ID",
        "- Request Category",
        "- Issue Type",
        "- Severity",
        "- Priority",
        "- Resolution Time (Days)",
        "- Satisfaction Rate",
        "",
        "Here are some sample tickets for context:",
    ]
    for ticket in tickets:
        lines.extend(
            [
                f"- Ticket {ticket.ticket_id}:",
                f"  Category: {ticket.request_category}",
                f"  Issue: {ticket.issue_type}",
                f"  Resolution: {ticket.resolution_time} days",
                f"  Satisfaction: {ticket.satisfaction_rate}/5",
            ]
        )
    lines.extend(["", "Analyze the data and provide insights based on the user's questions."])
    return "\n".join(lines)


def _history_turns(history: list[dict[str, str]] | None) -> list[dict[str, str]]:
    turns = [
        {"role": turn["role"], "content": turn["content"]}
        for turn in history or []
        if turn.get("role") in {"user", "assistant"} and turn.get("content")
    ]
    return turns[-CHAT_HISTORY_WINDOW:]


class NarrativeClient:
    """Writes a short analyst narrative over numbers that were already computed."""

    def __init__(self, settings: Settings | None = None, client: Any | None = None, model: str | None = None) -> None:
        if client is None:
            client, model = _openai_client(settings)
        self.client = client
        self.model = model or _model_name(settings)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def narrate(
        self,
        query: str,
        context: str,
        result: QueryResult,
        history: list[dict[str, str]] | None = None,
    ) -> str | None:
        """Narrate ``result``. ``history`` holds earlier chat turns as role/content pairs, oldest first."""
        if self.client is None:
            return None

        payload = {
            "question": query,
            "summary": result.summary,
            "insights": result.insights,
            "chart_type": result.chart_type,
            "data": result.data[:25],
        }
        try:
            response = self.client.responses.create(
                model=self.model,
                temperature=0,
                input=[
                    {"role": "system", "content": context},
                    *_history_turns(history),
                    {
                        "role": "user",
                        "content": (
                            "Explain these computed results for the question in three or four sentences. "
                            "Only use the numbers provided.\n" + json.dumps(payload, default=str)
                        ),
                    },
                ],
            )
            text = (response.output_text or "").strip()
        except Exception as exc:
            logger.warning("LLM narrative failed for %r: %s", query, exc)
            return None
        return text or None
