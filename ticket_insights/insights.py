"""Turn raw analytics into titled views, narratives and reports."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from .analytics import (
    AgentPerformanceAnalytics,
    AnalyticsResult,
    IssueDistributionAnalytics,
    ResolutionTimeAnalytics,
    SatisfactionAnalytics,
    TicketTrendsAnalytics,
    get_dataset_by_id,
    get_ticket_analytics,
)
from .constants import METRIC_CHART_TYPES, METRIC_GROUPING, METRIC_TITLES
from .errors import DatasetNotFoundError, ValidationError
from .payloads import AnalyticsView, ReportData, ReportSection

logger = logging.getLogger(__name__)

UNAVAILABLE_SECTION = "Unable to retrieve data for this metric."

_FIRST_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def _leading_number(text: str | None) -> float:
    match = _FIRST_NUMBER.search(text or "")
    return float(match.group()) if match else 0.0


def _lower_or(items: list[str], index: int, fallback: str) -> str:
    return items[index].lower() if len(items) > index else fallback


def _joined(insights: list[str]) -> str:
    return ", ".join(item.lower() for item in insights[:3])


def generate_ai_explanation(query: str, data: list[dict[str, Any]], summary: str, insights: list[str]) -> str:
    """Template narrative for a computed result, keyed on query vocabulary."""
    q = (query or "").lower()
    values = [float(row.get("value", row.get("count", 0)) or 0) for row in data]
    max_value = max(values, default=0.0)
    min_value = min(values, default=0.0)
    categories = len({row.get("type") or row.get("category") or row.get("name") for row in data})
    has_time = any(("date" in row) or ("period" in row) for row in data)

    if "ticket" in q and ("status" in q or "resolved" in q):
        strength = "strong" if _leading_number(insights[0] if insights else None) > 75 else "has room for improvement"
        return (
            "Based on your query about ticket status, I analyzed the resolution patterns in your dataset. "
            f"{summary} This suggests {_lower_or(insights, 0, 'varying resolution patterns')}. "
            f"Looking at the workload distribution, {_lower_or(insights, 1, 'there are some pending tickets')}. "
            f"The resolution metrics indicate that your team's performance is {strength} in terms of ticket closure rates."
        )

    if "agent" in q or "performance" in q:
        return (
            "I've conducted a detailed analysis of agent performance metrics based on your query. "
            f"{summary} The data highlights variations in individual agent effectiveness. "
            f"Notably, {_lower_or(insights, 0, 'there are variations in agent performance')}, while the team as a whole "
            f"maintains {_lower_or(insights, 1, 'different resolution times')}. "
            f"The workload distribution shows that {_lower_or(insights, 2, 'there are variations in ticket handling')}, "
            "suggesting potential opportunities for workload balancing."
        )

    if "satisfaction" in q or "rating" in q:
        outlook = (
            "strong customer satisfaction"
            if _leading_number(insights[1] if len(insights) > 1 else None) > 70
            else "areas for potential improvement"
        )
        return (
            "I've analyzed your customer satisfaction data in detail. "
            f"{summary} Most notably, {_lower_or(insights, 1, 'there are variations in satisfaction ratings')}, "
            f"which indicates {outlook}. "
            f"The distribution shows that {_lower_or(insights, 3, 'there are patterns in satisfaction ratings')}."
        )

    if "issue" in q or "type" in q:
        return (
            "I've performed a comprehensive analysis of your issue type distribution. "
            f"{summary} This analysis reveals key patterns in the types of issues your team handles. "
            f"Specifically, {_lower_or(insights, 0, 'there are various issue types')}, and "
            f"{_lower_or(insights, 2, 'there are patterns in issue distribution')}. Focusing resources on these "
            "top issues could significantly impact overall service efficiency."
        )

    if "trend" in q or "over time" in q or "pattern" in q:
        shape = "significant variations" if max_value > min_value * 1.5 else "relatively stable patterns"
        return (
            "I've analyzed the temporal patterns in your data. "
            f"{summary} The analysis spans {len(data)} data points, showing {shape} over time. "
            f"Key insights include: {_joined(insights)}. "
            "This temporal analysis can help in forecasting and resource planning."
        )

    if "compare" in q or "difference" in q or "versus" in q:
        spread = "significant disparities" if max_value > min_value * 2 else "relatively balanced distribution"
        return (
            "I've performed a comparative analysis of your data. "
            f"{summary} Across {categories} different categories, the analysis reveals {spread}. "
            f"Notable findings include: {_joined(insights)}. "
            "These comparisons highlight areas for potential optimization and improvement."
        )

    temporal = "The temporal patterns in the data suggest opportunities for trend-based optimization. " if has_time else ""
    return (
        f'I\'ve conducted a comprehensive analysis of your data based on the query "{query}". '
        f"{summary} The analysis covers {len(data)} data points across {categories} categories. "
        f"Key findings include: {_joined(insights)}. "
        f"{temporal}These insights can help inform strategic decisions and process improvements."
    )


def _metric(label: str, value: str) -> dict[str, str]:
    return {"label": label, "value": value}


def _summary_metrics(result: AnalyticsResult) -> tuple[list[dict[str, str]], str]:
    if isinstance(result, ResolutionTimeAnalytics):
        return (
            [
                _metric("Average Resolution Time", f"{result.avg_resolution_time:.2f} days"),
                _metric("Fastest Resolution", f"{result.fastest_resolution:.2f} days"),
                _metric("Slowest Resolution", f"{result.slowest_resolution:.2f} days"),
                _metric("Resolved Under 24h", f"{result.percentage_under_day:.1f}%"),
                _metric("Tickets", str(result.ticket_count)),
            ],
            f"Analysis shows an average resolution time of {result.avg_resolution_time:.1f} days. "
            f"{result.percentage_under_day:.1f}% of tickets are resolved within 24 hours.",
        )
    if isinstance(result, SatisfactionAnalytics):
        return (
            [
                _metric("Average Rating", f"{result.avg_rating:.2f}/5"),
                _metric("High Satisfaction", f"{result.percentage_high:.1f}%"),
                _metric("Low Satisfaction", f"{result.percentage_low:.1f}%"),
                _metric("Rated Tickets", str(result.ticket_count)),
            ],
            f"Customer satisfaction analysis shows an average rating of {result.avg_rating:.1f}/5. "
            f"{result.percentage_high:.1f}% of tickets received high satisfaction ratings (4-5 stars).",
        )
    if isinstance(result, IssueDistributionAnalytics):
        top = result.top_issue
        share = (top["count"] / result.ticket_count * 100.0) if result.ticket_count else 0.0
        return (
            [
                _metric("Top Issue", f"{top['type']} ({top['count']})"),
                _metric("Total Categories", str(len(result.categories))),
                _metric("Issue Types", str(len(result.issue_distribution))),
            ],
            f'Analysis of issue types shows "{top["type"]}" as the most common, '
            f"accounting for {share:.1f}% of all tickets.",
        )
    if isinstance(result, TicketTrendsAnalytics):
        return (
            [
                _metric("Total Tickets", str(result.total_tickets)),
                _metric(f"Average per {result.group_by.title()}", f"{result.avg_tickets_per_period:.1f}"),
                _metric(f"Peak {result.group_by.title()}", str(result.max_tickets_in_period)),
            ],
            f"{result.total_tickets} tickets were created across {len(result.data)} {result.group_by} periods, "
            f"averaging {result.avg_tickets_per_period:.1f} per {result.group_by}.",
        )
    if isinstance(result, AgentPerformanceAnalytics):
        return (
            [
                _metric("Agents", str(len(result.agent_performance))),
                _metric("Top Performer", f"Agent {result.top_performer['id']}"),
                _metric("Fastest Agent", f"Agent {result.fastest_agent['id']}"),
            ],
            f"Analysis of {len(result.agent_performance)} agents shows Agent {result.top_performer['id']} "
            f"with the highest average satisfaction of {result.top_performer['avg_satisfaction']:.1f}/5.",
        )
    raise ValidationError(f"Cannot shape analytics of type {type(result).__name__}")


def build_analytics_view(result: AnalyticsResult) -> AnalyticsView:
    metrics, summary = _summary_metrics(result)
    grouping = result.group_by if isinstance(result, TicketTrendsAnalytics) else METRIC_GROUPING[result.metric]
    query = result.metric.replace("_", " ")
    return AnalyticsView(
        metric=result.metric,
        title=METRIC_TITLES[result.metric],
        description=f"Analysis of {query} grouped by {grouping}",
        metrics=metrics,
        insights=list(result.insights),
        chart_type=METRIC_CHART_TYPES[result.metric],
        chart_data=[dict(row) for row in result.data],
        ai_explanation=generate_ai_explanation(query, result.data, summary, result.insights),
    )


def build_report(
    session: Session,
    dataset_id: str,
    report_type: str = "General",
    metrics: list[str] | None = None,
) -> ReportData:
    """Build one report section per metric, in order.

    A metric that fails becomes a placeholder section; the rest of the
    report is still produced.
    """
    if not metrics:
        raise ValidationError("At least one metric is required for a report")
    dataset = get_dataset_by_id(session, dataset_id)
    if dataset is None:
        raise DatasetNotFoundError(dataset_id)

    report = ReportData(
        title=f"{report_type} Report: {dataset.name}",
        dataset_id=dataset.id,
        dataset_name=dataset.name,
        report_type=report_type,
        generated_at=datetime.now(),
    )

    for metric in metrics:
        title = METRIC_TITLES.get(metric, metric.replace("_", " ").title())
        try:
            view = build_analytics_view(get_ticket_analytics(session, dataset_id, metric))
        except Exception as exc:
            logger.warning("Report section %r failed for dataset %s: %s", metric, dataset_id, exc)
            session.rollback()
            report.sections.append(ReportSection(title=title, content=UNAVAILABLE_SECTION))
            continue

        report.sections.append(
            ReportSection(
                title=view.title,
                content=view.ai_explanation,
                visualization={
                    "chart_type": view.chart_type,
                    "data": view.chart_data,
                    "summary": view.metrics,
                    "insights": view.insights,
                },
            )
        )

    logger.info("Built %s report for dataset %s with %d sections", report_type, dataset_id, len(report.sections))
    return report
