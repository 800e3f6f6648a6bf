from __future__ import annotations

import pytest

from ticket_insights.analytics import get_ticket_analytics
from ticket_insights.errors import DatasetNotFoundError, ValidationError
from ticket_insights.insights import (
    UNAVAILABLE_SECTION,
    build_analytics_view,
    build_report,
    generate_ai_explanation,
)
from ticket_insights.ingestion import ingest_dataset


@pytest.mark.parametrize(
    ("metric", "chart_type"),
    [
        ("resolution_time", "line"),
        ("satisfaction", "bar"),
        ("issue_distribution", "pie"),
        ("ticket_trends", "line"),
        ("agent_performance", "bar"),
    ],
)
def test_view_chart_type_is_fixed_per_metric(session, dataset, metric, chart_type) -> None:
    view = build_analytics_view(get_ticket_analytics(session, dataset.id, metric))

    assert view.chart_type == chart_type
    assert view.metrics
    assert view.ai_explanation


def test_issue_distribution_view(session, raw_ticket_df) -> None:
    raw_ticket_df = raw_ticket_df.head(4).copy()
    raw_ticket_df["Issue Type"] = ["A", "A", "A", "B"]
    dataset = ingest_dataset(session, raw_ticket_df, name="Issues").dataset

    result = get_ticket_analytics(session, dataset.id, "issue_distribution")
    view = build_analytics_view(result)

    assert result.top_issue == {"type": "A", "count": 3}
    assert result.categories
    assert view.chart_type == "pie"
    assert view.title == "Issue Type Distribution"
    assert {"label": "Top Issue", "value": "A (3)"} in view.metrics
    assert view.chart_data == [{"type": "A", "count": 3}, {"type": "B", "count": 1}]


def test_resolution_view_labels(session, dataset) -> None:
    view = build_analytics_view(get_ticket_analytics(session, dataset.id, "resolution_time"))

    assert view.metrics[0] == {"label": "Average Resolution Time", "value": "1.21 days"}
    assert view.description == "Analysis of resolution time grouped by date"
    assert "Average resolution time: 1.2 days" in view.insights


def test_generate_ai_explanation_templates() -> None:
    data = [{"type": "A", "count": 3}, {"type": "B", "count": 1}]

    issue = generate_ai_explanation("issue distribution", data, "Summary.", ["Most common issue: A", "x", "y"])
    assert issue.startswith("I've performed a comprehensive analysis of your issue type distribution.")
    assert "most common issue: a" in issue

    status = generate_ai_explanation("ticket status", data, "Summary.", ["Resolution rate: 80.0%", "1 pending"])
    assert "strong" in status

    fallback = generate_ai_explanation("anything else", [], "Summary.", [])
    assert 'based on the query "anything else"' in fallback
    assert "0 data points" in fallback


def test_build_report_sections_in_order(session, dataset) -> None:
    report = build_report(session, dataset.id, "Monthly", ["resolution_time", "satisfaction"])

    assert report.title == "Monthly Report: January Tickets"
    assert [section.title for section in report.sections] == [
        "Resolution Time Analysis",
        "Satisfaction Score Analysis",
    ]
    visualization = report.sections[1].visualization
    assert visualization["chart_type"] == "bar"
    assert len(visualization["data"]) == 5
    assert report.to_dict()["sections"][0]["content"]


def test_build_report_tolerates_failing_metric(session, dataset) -> None:
    report = build_report(session, dataset.id, "General", ["resolution_time", "sla_breaches", "ticket_trends"])

    assert len(report.sections) == 3
    assert report.sections[1].content == UNAVAILABLE_SECTION
    assert report.sections[1].visualization is None
    assert report.sections[2].visualization["chart_type"] == "line"


def test_build_report_validation(session, dataset) -> None:
    with pytest.raises(ValidationError):
        build_report(session, dataset.id, "General", [])
    with pytest.raises(DatasetNotFoundError):
        build_report(session, "missing", "General", ["satisfaction"])
