"""Keyword router that maps a chat message onto a tool call."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from .constants import (
    METRIC_AGENT_PERFORMANCE,
    METRIC_ISSUE_DISTRIBUTION,
    METRIC_RESOLUTION_TIME,
    METRIC_SATISFACTION,
    METRIC_TICKET_TRENDS,
    REPORT_METRICS,
)

KIND_GENERATE_REPORT = "generate_report"
KIND_UPLOAD_DATASET = "upload_dataset"
KIND_LIST_DATASETS = "list_datasets"
KIND_SHOW_ANALYTICS = "show_analytics"
KIND_ANALYZE_DATA = "analyze_data"


@dataclass
class Intent:
    kind: str
    rule: str
    metric: str | None = None
    metrics: list[str] = field(default_factory=list)
    report_type: str | None = None
    query: str | None = None


def _has_any(text: str, terms: tuple[str, ...]) -> bool:
    return any(term in text for term in terms)


def _wants_report(text: str) -> bool:
    return _has_any(text, ("generate", "create")) and _has_any(text, ("report", "summary"))


def _wants_upload(text: str) -> bool:
    return "upload" in text


def _wants_dataset_list(text: str) -> bool:
    return "list" in text and "dataset" in text


def _asks_resolution(text: str) -> bool:
    return _has_any(text, ("resolution", "how long")) or ("time" in text and "resolve" in text)


def _asks_agent_performance(text: str) -> bool:
    return "agent performance" in text or ("agent" in text and "perform" in text)


def _asks_ticket_trends(text: str) -> bool:
    return "ticket" in text and _has_any(text, ("trend", "volume", "monthly", "over time", "created"))


def _asks_satisfaction(text: str) -> bool:
    return _has_any(text, ("satisfaction", "csat", "rating", "happy"))


def _asks_issue_distribution(text: str) -> bool:
    return _has_any(text, ("breakdown", "break down", "distribution")) and _has_any(
        text, ("issue", "type", "category")
    )


def _report_intent(text: str, message: str) -> Intent:
    return Intent(
        kind=KIND_GENERATE_REPORT,
        rule="generate_report",
        metrics=list(REPORT_METRICS),
        report_type="Monthly" if "monthly" in text else "General",
    )


def _analytics(rule: str, metric: str) -> Callable[[str, str], Intent]:
    def build(text: str, message: str) -> Intent:
        return Intent(kind=KIND_SHOW_ANALYTICS, rule=rule, metric=metric)

    return build


# First match wins, so the order here is the routing precedence.
INTENT_RULES: tuple[tuple[str, Callable[[str], bool], Callable[[str, str], Intent]], ...] = (
    ("generate_report", _wants_report, _report_intent),
    ("upload_dataset", _wants_upload, lambda text, message: Intent(kind=KIND_UPLOAD_DATASET, rule="upload_dataset")),
    ("list_datasets", _wants_dataset_list, lambda text, message: Intent(kind=KIND_LIST_DATASETS, rule="list_datasets")),
    ("resolution_time", _asks_resolution, _analytics("resolution_time", METRIC_RESOLUTION_TIME)),
    ("agent_performance", _asks_agent_performance, _analytics("agent_performance", METRIC_AGENT_PERFORMANCE)),
    ("ticket_trends", _asks_ticket_trends, _analytics("ticket_trends", METRIC_TICKET_TRENDS)),
    ("satisfaction", _asks_satisfaction, _analytics("satisfaction", METRIC_SATISFACTION)),
    ("issue_distribution", _asks_issue_distribution, _analytics("issue_distribution", METRIC_ISSUE_DISTRIBUTION)),
)


def detect_intent(message: str) -> Intent:
    text = (message or "").lower()
    for _name, matches, build in INTENT_RULES:
        if matches(text):
            return build(text, message)
    return Intent(kind=KIND_ANALYZE_DATA, rule="analyze_data", query=message)
