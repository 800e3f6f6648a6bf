"""Free-form dataset questions answered from aggregate queries."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from .analytics import (
    TicketFilter,
    get_agent_performance_analytics,
    get_issue_distribution_analytics,
    get_resolution_time_analytics,
    get_satisfaction_analytics,
    get_ticket_status_counts,
    require_dataset,
    safe_pct,
)
from .constants import CHART_TYPES, TOP_ISSUE_LIMIT
from .errors import ValidationError
from .insights import generate_ai_explanation
from .payloads import QueryResult

logger = logging.getLogger(__name__)


def _auto_chart_type(query: str) -> str:
    if any(term in query for term in ("distribution", "breakdown", "type")):
        return "pie"
    if "trend" in query or "over time" in query:
        return "line"
    return "bar"


def _status_rows(status: dict[str, int]) -> list[dict[str, Any]]:
    return [
        {"name": "Total Tickets", "value": status["total"]},
        {"name": "Resolved", "value": status["resolved"]},
        {"name": "Pending", "value": status["pending"]},
    ]


def _ticket_status(session: Session, scope: TicketFilter) -> tuple[str, list[dict[str, Any]], str, list[str]]:
    status = get_ticket_status_counts(session, scope)
    resolution = get_resolution_time_analytics(session, scope)
    rate = safe_pct(status["resolved"], status["total"])
    summary = (
        f"Analysis of {status['total']} total tickets shows {status['resolved']} ({rate:.1f}%) have been resolved. "
        f"The average resolution time is {resolution.avg_resolution_time:.1f} days."
    )
    insights = [
        f"Resolution rate: {rate:.1f}%",
        f"{status['pending']} tickets are still pending",
        f"Average resolution time: {resolution.avg_resolution_time:.1f} days",
        f"Fastest resolution: {resolution.fastest_resolution:.1f} days",
        f"Slowest resolution: {resolution.slowest_resolution:.1f} days",
    ]
    return "bar", _status_rows(status), summary, insights


def _issue_types(session: Session, scope: TicketFilter) -> tuple[str, list[dict[str, Any]], str, list[str]]:
    issues = get_issue_distribution_analytics(session, scope)
    data = [dict(row) for row in issues.issue_distribution[:TOP_ISSUE_LIMIT]]
    total = issues.ticket_count
    top = issues.top_issue
    top_three = sum(row["count"] for row in data[:3])
    summary = (
        f'Analysis of issue types shows "{top["type"]}" as the most common, accounting for '
        f"{safe_pct(top['count'], total):.1f}% of all tickets. "
        f"The top 3 issues account for {safe_pct(top_three, total):.1f}% of tickets."
    )
    insights = [
        f"Most common issue: {top['type']} ({top['count']} tickets)",
        f"{len(issues.issue_distribution)} distinct issue types identified",
        f"Top 3 issues account for {safe_pct(top_three, total):.1f}% of tickets",
    ]
    insights.extend(f"{row['type']}: {row['count']} tickets ({safe_pct(row['count'], total):.1f}%)" for row in data[:3])
    return "pie", data, summary, insights


def _agents(session: Session, scope: TicketFilter) -> tuple[str, list[dict[str, Any]], str, list[str]]:
    agents = get_agent_performance_analytics(session, scope)
    data = sorted(
        (
            {
                "name": f"Agent {row['agent_id']}",
                "resolution_time": row["avg_resolution_time"],
                "satisfaction": row["avg_satisfaction"],
                "tickets": row["ticket_count"],
            }
            for row in agents.agent_performance
        ),
        key=lambda row: (-row["satisfaction"], row["name"]),
    )
    top = data[0]
    team_resolution = sum(row["resolution_time"] for row in data) / len(data)
    busiest = sorted(data, key=lambda row: (-row["tickets"], row["name"]))[:3]
    summary = (
        f"Analysis of {len(data)} agents shows varying performance levels. "
        f"Top performing {top['name']} has an average satisfaction rating of {top['satisfaction']:.1f}/5 "
        f"and resolves tickets in {top['resolution_time']:.1f} days on average."
    )
    insights = [
        f"Top agent: {top['name']} ({top['satisfaction']:.1f}/5 satisfaction)",
        f"Team average resolution time: {team_resolution:.1f} days",
        f"Agents handling most tickets: {', '.join(row['name'] for row in busiest)}",
        f"{sum(1 for row in data if row['satisfaction'] >= 4)} agents maintain 4+ satisfaction rating",
    ]
    return "bar", data, summary, insights


def _satisfaction(session: Session, scope: TicketFilter) -> tuple[str, list[dict[str, Any]], str, list[str]]:
    satisfaction = get_satisfaction_analytics(session, scope)
    data = [{"name": f"{row['rating']} Stars", "value": row["count"]} for row in satisfaction.rating_distribution]
    rated = [row for row in satisfaction.rating_distribution if row["count"] > 0]
    most_common = max(rated, key=lambda row: row["count"])
    summary = (
        f"Customer satisfaction analysis shows an average rating of {satisfaction.avg_rating:.1f}/5. "
        f"{satisfaction.percentage_high:.1f}% of tickets received high satisfaction ratings (4-5 stars)."
    )
    insights = [
        f"Average satisfaction: {satisfaction.avg_rating:.1f}/5",
        f"{satisfaction.percentage_high:.1f}% tickets rated 4+ stars",
        f"Highest rating: {max(row['rating'] for row in rated)}/5",
        f"Lowest rating: {min(row['rating'] for row in rated)}/5",
        f"Most common rating: {most_common['rating']} Stars",
    ]
    return "bar", data, summary, insights


def _resolution(session: Session, scope: TicketFilter) -> tuple[str, list[dict[str, Any]], str, list[str]]:
    resolution = get_resolution_time_analytics(session, scope)
    summary = (
        f"Analysis shows an average resolution time of {resolution.avg_resolution_time:.1f} days. "
        f"{resolution.percentage_under_day:.1f}% of tickets are resolved within 24 hours."
    )
    insights = [
        f"Average resolution time: {resolution.avg_resolution_time:.1f} days",
        f"Fastest resolution: {resolution.fastest_resolution:.1f} days",
        f"Slowest resolution: {resolution.slowest_resolution:.1f} days",
        f"{resolution.percentage_under_day:.1f}% tickets resolved within 24 hours",
    ]
    return "line", resolution.data, summary, insights


def _overview(session: Session, scope: TicketFilter) -> tuple[str, list[dict[str, Any]], str, list[str]]:
    status = get_ticket_status_counts(session, scope)
    resolution = get_resolution_time_analytics(session, scope)
    satisfaction = get_satisfaction_analytics(session, scope)
    top = get_issue_distribution_analytics(session, scope).top_issue
    rate = safe_pct(status["resolved"], status["total"])
    summary = (
        f"Analysis of {status['total']} total tickets shows {status['resolved']} ({rate:.1f}%) have been resolved. "
        f"Average resolution time is {resolution.avg_resolution_time:.1f} days. "
        f"Customer satisfaction averages {satisfaction.avg_rating:.1f}/5."
    )
    insights = [
        f"{rate:.1f}% tickets resolved",
        f"{status['pending']} tickets pending",
        f"Average resolution: {resolution.avg_resolution_time:.1f} days",
        f"Customer satisfaction: {satisfaction.avg_rating:.1f}/5",
        f"Most common issue: {top['type']} ({top['count']} tickets)",
    ]
    return "bar", _status_rows(status), summary, insights


def _pick_analysis(query: str):
    if "ticket" in query and ("status" in query or "resolved" in query):
        return _ticket_status
    if "issue" in query or "type" in query or "distribution" in query:
        return _issue_types
    if "agent" in query or "performance" in query:
        return _agents
    if "satisfaction" in query or "rating" in query:
        return _satisfaction
    if "resolution" in query or "time" in query:
        return _resolution
    return _overview


def analyze_data_by_query(
    session: Session,
    dataset_id: str,
    query: str,
    chart_type: str = "auto",
) -> QueryResult:
    """Answer a free-form question about one dataset.

    ``chart_type="auto"`` lets the chosen analysis pick the chart; any
    other supported value is kept as requested.
    """
    if not query or not query.strip():
        raise ValidationError("Query is required")
    requested = (chart_type or "auto").lower()
    if requested != "auto" and requested not in CHART_TYPES:
        raise ValidationError(f"Unsupported chart type: {chart_type}. Must be one of: auto, {', '.join(CHART_TYPES)}")

    require_dataset(session, dataset_id)
    scope = TicketFilter(dataset_id=dataset_id)
    lowered = query.lower()

    if get_ticket_status_counts(session, scope)["total"] == 0:
        summary = "No tickets found for this dataset."
        return QueryResult(
            query=query,
            chart_type=_auto_chart_type(lowered) if requested == "auto" else requested,
            data=[],
            summary=summary,
            insights=[summary],
            ai_explanation=summary,
        )

    analysis = _pick_analysis(lowered)
    chosen_chart, data, summary, insights = analysis(session, scope)
    logger.debug("Query %r answered with %s", query, analysis.__name__)
    return QueryResult(
        query=query,
        chart_type=chosen_chart if requested == "auto" else requested,
        data=data,
        summary=summary,
        insights=insights,
        ai_explanation=generate_ai_explanation(lowered, data, summary, insights),
    )
