from __future__ import annotations

import math
from datetime import datetime

import pandas as pd
import pytest

from ticket_insights.analytics import (
    TicketFilter,
    get_dataset_by_id,
    get_dataset_list,
    get_dataset_summary,
    get_ticket_analytics,
    get_ticket_status_counts,
    timeframe_bounds,
)
from ticket_insights.constants import ANALYTICS_METRICS
from ticket_insights.errors import DatasetNotFoundError, UnsupportedMetricError
from ticket_insights.ingestion import ingest_dataset
from ticket_insights.models import Dataset


def _all_finite(value) -> bool:
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, dict):
        return all(_all_finite(v) for v in value.values())
    if isinstance(value, list):
        return all(_all_finite(v) for v in value)
    return True


def test_resolution_time_matches_arithmetic_mean(session, dataset, raw_ticket_df) -> None:
    result = get_ticket_analytics(session, dataset.id, "resolution_time")
    values = raw_ticket_df["Resolution Time (Days)"]

    assert result.avg_resolution_time == pytest.approx(values.mean())
    assert result.fastest_resolution == 0.0
    assert result.slowest_resolution == 3.5
    assert result.percentage_under_day == pytest.approx(50.0)
    assert result.ticket_count == 6
    assert [row["date"] for row in result.data] == [
        "2025-12-12",
        "2026-01-01",
        "2026-01-02",
        "2026-01-10",
        "2026-01-14",
    ]
    assert result.data[2]["avg_resolution_time"] == pytest.approx(1.5)


def test_three_row_resolution_scenario(session, raw_ticket_df) -> None:
    three = raw_ticket_df.head(3).copy()
    three["Resolution Time (Days)"] = [0.5, 1.0, 2.0]
    dataset = ingest_dataset(session, three, name="Three").dataset

    result = get_ticket_analytics(session, dataset.id, "resolution_time")

    assert result.avg_resolution_time == pytest.approx(3.5 / 3)
    assert result.percentage_under_day == pytest.approx(100 / 3)


def test_satisfaction_distribution(session, dataset) -> None:
    result = get_ticket_analytics(session, dataset.id, "satisfaction")

    assert result.avg_rating == pytest.approx(20 / 6)
    assert result.rating_distribution == [
        {"rating": 1, "count": 1},
        {"rating": 2, "count": 1},
        {"rating": 3, "count": 1},
        {"rating": 4, "count": 1},
        {"rating": 5, "count": 2},
    ]
    assert result.data == result.rating_distribution
    assert result.percentage_high == pytest.approx(50.0)
    assert result.percentage_low == pytest.approx(100 / 3)
    assert result.percentage_high + result.percentage_low <= 100


def test_issue_distribution_sums_to_ticket_count(session, dataset) -> None:
    result = get_ticket_analytics(session, dataset.id, "issue_distribution")

    assert sum(item["count"] for item in result.issue_distribution) == 6
    assert result.issue_distribution[0] == {"type": "Login", "count": 3}
    assert result.top_issue == {"type": "Login", "count": 3}
    assert result.categories == [
        {"name": "Software", "count": 3},
        {"name": "Hardware", "count": 2},
        {"name": "Network", "count": 1},
    ]
    assert result.top_category == {"name": "Software", "count": 3}
    assert result.data == result.issue_distribution


def test_issue_ties_break_by_name(session, raw_ticket_df) -> None:
    raw_ticket_df["Issue Type"] = ["Zeta", "Alpha", "Zeta", "Alpha", "Mid", "Mid"]
    dataset = ingest_dataset(session, raw_ticket_df, name="Ties").dataset

    result = get_ticket_analytics(session, dataset.id, "issue_distribution")

    assert result.top_issue == {"type": "Alpha", "count": 2}


@pytest.mark.parametrize(
    ("group_by", "expected"),
    [
        ("month", [{"period": "2025-12", "count": 1}, {"period": "2026-01", "count": 5}]),
        (
            "week",
            [
                {"period": "2025-W50", "count": 1},
                {"period": "2026-W01", "count": 3},
                {"period": "2026-W02", "count": 1},
                {"period": "2026-W03", "count": 1},
            ],
        ),
        ("bogus", [{"period": "2025-12", "count": 1}, {"period": "2026-01", "count": 5}]),
    ],
)
def test_ticket_trends_buckets(session, dataset, group_by, expected) -> None:
    result = get_ticket_analytics(session, dataset.id, "ticket_trends", group_by=group_by)

    assert result.data == expected
    assert result.total_tickets == 6
    assert result.avg_tickets_per_period == pytest.approx(6 / len(expected))
    assert result.max_tickets_in_period == max(item["count"] for item in expected)


def test_ticket_count_alias_dispatches_to_trends(session, dataset) -> None:
    result = get_ticket_analytics(session, dataset.id, "ticket_count")
    assert result.metric == "ticket_trends"
    assert result.group_by == "month"


def test_agent_performance(session, dataset) -> None:
    result = get_ticket_analytics(session, dataset.id, "agent_performance")
    by_agent = {row["agent_id"]: row for row in result.agent_performance}

    assert by_agent["A1"]["ticket_count"] == 2
    assert by_agent["A1"]["avg_satisfaction"] == pytest.approx(4.0)
    assert by_agent["A2"]["avg_resolution_time"] == pytest.approx(0.625)
    assert result.fastest_agent["id"] == "A2"
    assert result.top_performer["id"] == "A1"


@pytest.mark.parametrize("metric", ANALYTICS_METRICS)
def test_empty_dataset_yields_zero_results(session, metric) -> None:
    empty = Dataset(name="Empty")
    session.add(empty)
    session.commit()

    result = get_ticket_analytics(session, empty.id, metric)
    payload = result.to_dict()

    assert _all_finite(payload)
    assert result.insights == ["No tickets found for this dataset."]
    if metric == "issue_distribution":
        assert result.top_issue == {"type": "None", "count": 0}
    if metric == "satisfaction":
        assert [item["count"] for item in result.data] == [0, 0, 0, 0, 0]
        assert result.percentage_high == 0.0
    else:
        assert result.data == []


def test_unknown_metric_and_dataset(session, dataset) -> None:
    with pytest.raises(UnsupportedMetricError, match="Must be one of"):
        get_ticket_analytics(session, dataset.id, "sla_breaches")
    with pytest.raises(DatasetNotFoundError):
        get_ticket_analytics(session, "missing", "satisfaction")


def test_timeframe_bounds(reference_time) -> None:
    start, end = timeframe_bounds("last_7_days", reference_time)
    assert start == datetime(2026, 1, 8, 12, 0, 0)
    assert end is None

    assert timeframe_bounds("this_year", reference_time) == (datetime(2026, 1, 1), None)

    start, end = timeframe_bounds("2026-01-01_2026-01-02", reference_time)
    assert start == datetime(2026, 1, 1)
    assert end == datetime(2026, 1, 2, 23, 59, 59, 999999)

    assert timeframe_bounds("forever", reference_time) == (None, None)
    assert timeframe_bounds("start_finish", reference_time) == (None, None)
    assert timeframe_bounds(None) == (None, None)


@pytest.mark.parametrize(
    ("timeframe", "expected"),
    [("last_7_days", 2), ("this_year", 5), ("2026-01-01_2026-01-02", 3), ("unknown", 6)],
)
def test_timeframe_filters_tickets(session, dataset, reference_time, timeframe, expected) -> None:
    result = get_ticket_analytics(
        session,
        dataset.id,
        "resolution_time",
        timeframe=timeframe,
        reference_time=reference_time,
    )
    assert result.ticket_count == expected


def test_dataset_list_and_summary(session, dataset, raw_ticket_df) -> None:
    newer = ingest_dataset(session, raw_ticket_df.head(2), name="Newer").dataset

    datasets = get_dataset_list(session)
    assert [item["name"] for item in datasets] == ["Newer", "January Tickets"]
    assert datasets[0]["record_count"] == 2
    assert datasets[1]["record_count"] == 6
    assert get_dataset_by_id(session, newer.id).name == "Newer"
    assert get_dataset_by_id(session, "missing") is None

    summary = get_dataset_summary(session, dataset.id)
    assert summary.record_count == 6
    assert summary.date_range["start"].startswith("2025-12-12")
    assert summary.date_range["end"].startswith("2026-01-14")
    assert summary.avg_satisfaction_rate == pytest.approx(20 / 6)
    assert summary.top_issue_types[0] == {"name": "Login", "count": 3}
    assert summary.priority_distribution == {"P1": 2, "P2": 2, "P3": 1, "P4": 1}
    assert summary.to_dict()["metrics"]["avg_resolution_time"] == pytest.approx(7.25 / 6)

    with pytest.raises(DatasetNotFoundError):
        get_dataset_summary(session, "missing")


def test_ticket_status_counts(session, dataset) -> None:
    counts = get_ticket_status_counts(session, TicketFilter(dataset_id=dataset.id))
    assert counts == {"total": 6, "resolved": 5, "pending": 1}


def test_daily_series_matches_pandas(session, dataset, raw_ticket_df) -> None:
    result = get_ticket_analytics(session, dataset.id, "resolution_time")
    frame = raw_ticket_df.assign(day=pd.to_datetime(raw_ticket_df["Date"], format="%d/%m/%Y").dt.strftime("%Y-%m-%d"))
    expected = frame.groupby("day")["Resolution Time (Days)"].mean()

    assert {row["date"]: row["avg_resolution_time"] for row in result.data} == pytest.approx(expected.to_dict())
