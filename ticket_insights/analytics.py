"""Aggregate queries over the ticket store.

Each ``get_*_analytics`` function runs grouped aggregates for one dataset
scope and returns a metric-specific result object. ``get_ticket_analytics``
is the single dispatching entry point used by the chat and HTTP layers.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any

import pandas as pd
from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from .constants import (
    ANALYTICS_METRICS,
    HIGH_SATISFACTION_MIN,
    LOW_SATISFACTION_MAX,
    METRIC_AGENT_PERFORMANCE,
    METRIC_ALIASES,
    METRIC_ISSUE_DISTRIBUTION,
    METRIC_RESOLUTION_TIME,
    METRIC_SATISFACTION,
    METRIC_TICKET_TRENDS,
    RATING_SCALE,
    RELATIVE_TIMEFRAMES,
    TOP_ISSUE_LIMIT,
    TREND_GROUPINGS,
)
from .errors import DatasetNotFoundError, UnsupportedMetricError, ValidationError
from .models import Dataset, Ticket

logger = logging.getLogger(__name__)

NO_TICKETS_INSIGHT = "No tickets found for this dataset."


def _safe_ratio(num: float, den: float) -> float:
    if den == 0:
        return 0.0
    return float(num) / float(den)


def safe_pct(num: float, den: float) -> float:
    return _safe_ratio(num, den) * 100.0


def _as_float(value: Any) -> float:
    return float(value) if value is not None else 0.0


@dataclass(frozen=True)
class TicketFilter:
    """Dataset scope plus an optional inclusive date window."""

    dataset_id: str
    start: datetime | None = None
    end: datetime | None = None

    def clauses(self) -> list[Any]:
        conditions: list[Any] = [Ticket.dataset_id == self.dataset_id]
        if self.start is not None:
            conditions.append(Ticket.date >= self.start)
        if self.end is not None:
            conditions.append(Ticket.date <= self.end)
        return conditions


@dataclass
class ResolutionTimeAnalytics:
    avg_resolution_time: float
    fastest_resolution: float
    slowest_resolution: float
    percentage_under_day: float
    ticket_count: int
    data: list[dict[str, Any]]
    insights: list[str] = field(default_factory=list)
    metric: str = METRIC_RESOLUTION_TIME

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SatisfactionAnalytics:
    avg_rating: float
    percentage_high: float
    percentage_low: float
    ticket_count: int
    rating_distribution: list[dict[str, int]]
    data: list[dict[str, int]]
    insights: list[str] = field(default_factory=list)
    metric: str = METRIC_SATISFACTION

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class IssueDistributionAnalytics:
    issue_distribution: list[dict[str, Any]]
    categories: list[dict[str, Any]]
    top_issue: dict[str, Any]
    top_category: dict[str, Any]
    ticket_count: int
    data: list[dict[str, Any]]
    insights: list[str] = field(default_factory=list)
    metric: str = METRIC_ISSUE_DISTRIBUTION

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TicketTrendsAnalytics:
    group_by: str
    total_tickets: int
    avg_tickets_per_period: float
    max_tickets_in_period: int
    data: list[dict[str, Any]]
    insights: list[str] = field(default_factory=list)
    metric: str = METRIC_TICKET_TRENDS

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AgentPerformanceAnalytics:
    agent_performance: list[dict[str, Any]]
    fastest_agent: dict[str, Any]
    top_performer: dict[str, Any]
    ticket_count: int
    data: list[dict[str, Any]]
    insights: list[str] = field(default_factory=list)
    metric: str = METRIC_AGENT_PERFORMANCE

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


AnalyticsResult = (
    ResolutionTimeAnalytics
    | SatisfactionAnalytics
    | IssueDistributionAnalytics
    | TicketTrendsAnalytics
    | AgentPerformanceAnalytics
)


@dataclass
class DatasetSummary:
    id: str
    name: str
    description: str | None
    record_count: int
    date_range: dict[str, str]
    avg_resolution_time: float
    avg_satisfaction_rate: float
    top_issue_types: list[dict[str, Any]]
    priority_distribution: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "record_count": self.record_count,
            "date_range": self.date_range,
            "metrics": {
                "avg_resolution_time": self.avg_resolution_time,
                "avg_satisfaction_rate": self.avg_satisfaction_rate,
                "top_issue_types": self.top_issue_types,
                "priority_distribution": self.priority_distribution,
            },
        }


def resolve_metric(metric: str | None) -> str:
    key = (metric or "").strip().lower()
    key = METRIC_ALIASES.get(key, key)
    if key not in ANALYTICS_METRICS:
        raise UnsupportedMetricError(str(metric), ANALYTICS_METRICS)
    return key


def timeframe_bounds(
    timeframe: str | None,
    reference_time: datetime | None = None,
) -> tuple[datetime | None, datetime | None]:
    """Translate a timeframe keyword into a ``(start, end)`` window.

    Accepts ``last_7_days``, ``last_30_days``, ``last_90_days``,
    ``this_year`` or a custom ``YYYY-MM-DD_YYYY-MM-DD`` range whose end is
    inclusive to the end of that day. Anything else means no window.
    """
    if not timeframe:
        return None, None
    now = reference_time or datetime.now()
    key = timeframe.strip().lower()

    if key in RELATIVE_TIMEFRAMES:
        return now - timedelta(days=RELATIVE_TIMEFRAMES[key]), None
    if key == "this_year":
        return datetime(now.year, 1, 1), None

    if "_" in key:
        start_text, _, end_text = key.partition("_")
        try:
            start = pd.Timestamp(start_text).to_pydatetime()
            end = pd.Timestamp(end_text).to_pydatetime()
        except ValueError:
            logger.warning("Invalid date format in timeframe %r; ignoring it", timeframe)
            return None, None
        end = end.replace(hour=23, minute=59, second=59, microsecond=999999)
        return start, end

    logger.warning("Unrecognized timeframe %r; ignoring it", timeframe)
    return None, None


def get_dataset_by_id(session: Session, dataset_id: str) -> Dataset | None:
    return session.get(Dataset, dataset_id)


def require_dataset(session: Session, dataset_id: str | None) -> Dataset:
    if not dataset_id:
        raise ValidationError("Dataset ID is required")
    dataset = get_dataset_by_id(session, dataset_id)
    if dataset is None:
        raise DatasetNotFoundError(dataset_id)
    return dataset


def build_filter(
    dataset_id: str,
    timeframe: str | None = None,
    reference_time: datetime | None = None,
) -> TicketFilter:
    start, end = timeframe_bounds(timeframe, reference_time)
    return TicketFilter(dataset_id=dataset_id, start=start, end=end)


def _ticket_frame(session: Session, scope: TicketFilter, *columns: Any) -> pd.DataFrame:
    rows = session.execute(select(*columns).where(*scope.clauses()).order_by(Ticket.date)).all()
    frame = pd.DataFrame(rows, columns=[column.key for column in columns])
    if "date" in frame.columns:
        frame["date"] = pd.to_datetime(frame["date"])
    return frame


def get_resolution_time_analytics(session: Session, scope: TicketFilter) -> ResolutionTimeAnalytics:
    total, avg_time, fastest, slowest, under_day = session.execute(
        select(
            func.count(Ticket.id),
            func.avg(Ticket.resolution_time),
            func.min(Ticket.resolution_time),
            func.max(Ticket.resolution_time),
            func.sum(case((Ticket.resolution_time < 1, 1), else_=0)),
        ).where(*scope.clauses())
    ).one()
    total = int(total or 0)

    frame = _ticket_frame(session, scope, Ticket.date, Ticket.resolution_time)
    daily: list[dict[str, Any]] = []
    if not frame.empty:
        grouped = frame.groupby(frame["date"].dt.strftime("%Y-%m-%d"))["resolution_time"].mean().sort_index()
        daily = [{"date": day, "avg_resolution_time": float(value)} for day, value in grouped.items()]

    result = ResolutionTimeAnalytics(
        avg_resolution_time=_as_float(avg_time),
        fastest_resolution=_as_float(fastest),
        slowest_resolution=_as_float(slowest),
        percentage_under_day=safe_pct(under_day or 0, total),
        ticket_count=total,
        data=daily,
    )
    if total == 0:
        result.insights = [NO_TICKETS_INSIGHT]
    else:
        result.insights = [
            f"Average resolution time: {result.avg_resolution_time:.1f} days",
            f"Fastest resolution: {result.fastest_resolution:.1f} days",
            f"Slowest resolution: {result.slowest_resolution:.1f} days",
            f"{result.percentage_under_day:.1f}% of tickets resolved in under 24 hours",
        ]
    return result


def get_satisfaction_analytics(session: Session, scope: TicketFilter) -> SatisfactionAnalytics:
    avg_rating = session.scalar(select(func.avg(Ticket.satisfaction_rate)).where(*scope.clauses()))
    rows = session.execute(
        select(Ticket.satisfaction_rate, func.count(Ticket.id))
        .where(*scope.clauses())
        .group_by(Ticket.satisfaction_rate)
    ).all()
    counts = {int(rating): int(count) for rating, count in rows}

    distribution = [{"rating": rating, "count": counts.get(rating, 0)} for rating in RATING_SCALE]
    total = sum(counts.values())
    high = sum(count for rating, count in counts.items() if rating >= HIGH_SATISFACTION_MIN)
    low = sum(count for rating, count in counts.items() if rating <= LOW_SATISFACTION_MAX)

    result = SatisfactionAnalytics(
        avg_rating=_as_float(avg_rating),
        percentage_high=safe_pct(high, total),
        percentage_low=safe_pct(low, total),
        ticket_count=total,
        rating_distribution=distribution,
        data=[dict(item) for item in distribution],
    )
    if total == 0:
        result.insights = [NO_TICKETS_INSIGHT]
    else:
        most_common = max(distribution, key=lambda item: item["count"])
        result.insights = [
            f"Average satisfaction: {result.avg_rating:.1f}/5",
            f"{result.percentage_high:.1f}% of tickets received high satisfaction ratings (4-5)",
            f"{result.percentage_low:.1f}% of tickets received low satisfaction ratings (1-2)",
            f"Most common rating: {most_common['rating']} stars ({most_common['count']} tickets)",
        ]
    return result


def _grouped_counts(session: Session, scope: TicketFilter, column: Any) -> list[tuple[str, int]]:
    count = func.count(Ticket.id)
    rows = session.execute(
        select(column, count)
        .where(*scope.clauses())
        .group_by(column)
        .order_by(count.desc(), column.asc())
    ).all()
    return [(str(value), int(total)) for value, total in rows]


def get_issue_distribution_analytics(session: Session, scope: TicketFilter) -> IssueDistributionAnalytics:
    issues = [{"type": name, "count": count} for name, count in _grouped_counts(session, scope, Ticket.issue_type)]
    categories = [
        {"name": name, "count": count} for name, count in _grouped_counts(session, scope, Ticket.request_category)
    ]
    total = sum(item["count"] for item in issues)

    top_issue = dict(issues[0]) if issues else {"type": "None", "count": 0}
    top_category = dict(categories[0]) if categories else {"name": "None", "count": 0}

    result = IssueDistributionAnalytics(
        issue_distribution=issues,
        categories=categories,
        top_issue=top_issue,
        top_category=top_category,
        ticket_count=total,
        data=[dict(item) for item in issues],
    )
    if total == 0:
        result.insights = [NO_TICKETS_INSIGHT]
    else:
        result.insights = [
            f"Most common issue: {top_issue['type']} with {top_issue['count']} tickets",
            f"Top category: {top_category['name']} with {top_category['count']} tickets",
            f"{len(issues)} distinct issue types identified",
        ]
    return result


def _period_labels(dates: pd.Series, group_by: str) -> pd.Series:
    if group_by == "day":
        return dates.dt.strftime("%Y-%m-%d")
    if group_by == "week":
        iso = dates.dt.isocalendar()
        return iso["year"].astype(str) + "-W" + iso["week"].astype(int).map("{:02d}".format)
    return dates.dt.strftime("%Y-%m")


def get_ticket_trends_analytics(
    session: Session,
    scope: TicketFilter,
    group_by: str = "month",
) -> TicketTrendsAnalytics:
    grain = (group_by or "month").lower()
    if grain not in TREND_GROUPINGS:
        logger.debug("Unknown trend grouping %r; using month", group_by)
        grain = "month"

    frame = _ticket_frame(session, scope, Ticket.date)
    data: list[dict[str, Any]] = []
    if not frame.empty:
        counts = _period_labels(frame["date"], grain).value_counts().sort_index()
        data = [{"period": str(period), "count": int(count)} for period, count in counts.items()]

    total = int(len(frame))
    result = TicketTrendsAnalytics(
        group_by=grain,
        total_tickets=total,
        avg_tickets_per_period=_safe_ratio(total, len(data)),
        max_tickets_in_period=max((item["count"] for item in data), default=0),
        data=data,
    )
    if total == 0:
        result.insights = [NO_TICKETS_INSIGHT]
    else:
        result.insights = [
            f"Average of {result.avg_tickets_per_period:.1f} tickets per {grain}",
            f"Peak volume of {result.max_tickets_in_period} tickets in a single {grain}",
            f"Total of {total} tickets analyzed",
        ]
    return result


def get_agent_performance_analytics(session: Session, scope: TicketFilter) -> AgentPerformanceAnalytics:
    rows = session.execute(
        select(
            Ticket.agent_id,
            func.count(Ticket.id),
            func.avg(Ticket.resolution_time),
            func.avg(Ticket.satisfaction_rate),
        )
        .where(*scope.clauses())
        .group_by(Ticket.agent_id)
        .order_by(Ticket.agent_id)
    ).all()

    agents = [
        {
            "agent_id": str(agent_id),
            "ticket_count": int(count),
            "avg_resolution_time": _as_float(avg_resolution),
            "avg_satisfaction": _as_float(avg_satisfaction),
        }
        for agent_id, count, avg_resolution, avg_satisfaction in rows
    ]
    total = sum(agent["ticket_count"] for agent in agents)

    if agents:
        fastest = min(agents, key=lambda agent: agent["avg_resolution_time"])
        top = max(agents, key=lambda agent: agent["avg_satisfaction"])
        fastest_agent = {"id": fastest["agent_id"], "avg_resolution_time": fastest["avg_resolution_time"]}
        top_performer = {"id": top["agent_id"], "avg_satisfaction": top["avg_satisfaction"]}
    else:
        fastest_agent = {"id": "none", "avg_resolution_time": 0.0}
        top_performer = {"id": "none", "avg_satisfaction": 0.0}

    result = AgentPerformanceAnalytics(
        agent_performance=agents,
        fastest_agent=fastest_agent,
        top_performer=top_performer,
        ticket_count=total,
        data=[dict(agent) for agent in agents],
    )
    if total == 0:
        result.insights = [NO_TICKETS_INSIGHT]
    else:
        busiest = sorted(agents, key=lambda agent: (-agent["ticket_count"], agent["agent_id"]))[:3]
        result.insights = [
            f"Top performer: Agent {top_performer['id']} ({top_performer['avg_satisfaction']:.1f}/5 satisfaction)",
            f"Fastest agent: Agent {fastest_agent['id']} ({fastest_agent['avg_resolution_time']:.1f} days average)",
            f"Agents handling most tickets: {', '.join(agent['agent_id'] for agent in busiest)}",
            f"{sum(1 for agent in agents if agent['avg_satisfaction'] >= 4)} agents maintain 4+ satisfaction rating",
        ]
    return result


def get_ticket_analytics(
    session: Session,
    dataset_id: str,
    metric: str,
    group_by: str | None = None,
    timeframe: str | None = None,
    reference_time: datetime | None = None,
) -> AnalyticsResult:
    key = resolve_metric(metric)
    require_dataset(session, dataset_id)
    scope = build_filter(dataset_id, timeframe=timeframe, reference_time=reference_time)
    logger.debug("Computing %s analytics for dataset %s", key, dataset_id)

    if key == METRIC_RESOLUTION_TIME:
        return get_resolution_time_analytics(session, scope)
    if key == METRIC_SATISFACTION:
        return get_satisfaction_analytics(session, scope)
    if key == METRIC_ISSUE_DISTRIBUTION:
        return get_issue_distribution_analytics(session, scope)
    if key == METRIC_TICKET_TRENDS:
        return get_ticket_trends_analytics(session, scope, group_by or "month")
    return get_agent_performance_analytics(session, scope)


def get_dataset_list(session: Session) -> list[dict[str, Any]]:
    rows = session.execute(
        select(Dataset, func.count(Ticket.id))
        .outerjoin(Ticket, Ticket.dataset_id == Dataset.id)
        .group_by(Dataset.id)
        .order_by(Dataset.created_at.desc())
    ).all()
    return [
        {
            "id": dataset.id,
            "name": dataset.name,
            "description": dataset.description,
            "created_at": dataset.created_at.isoformat() if dataset.created_at else None,
            "record_count": int(count),
        }
        for dataset, count in rows
    ]


def get_dataset_summary(session: Session, dataset_id: str) -> DatasetSummary:
    dataset = require_dataset(session, dataset_id)
    scope = TicketFilter(dataset_id=dataset_id)

    count, first, last, avg_resolution, avg_satisfaction = session.execute(
        select(
            func.count(Ticket.id),
            func.min(Ticket.date),
            func.max(Ticket.date),
            func.avg(Ticket.resolution_time),
            func.avg(Ticket.satisfaction_rate),
        ).where(*scope.clauses())
    ).one()

    top_issue_types = [
        {"name": name, "count": total}
        for name, total in _grouped_counts(session, scope, Ticket.issue_type)[:TOP_ISSUE_LIMIT]
    ]
    priority_distribution = dict(_grouped_counts(session, scope, Ticket.priority))

    def _iso(value: Any) -> str:
        return pd.Timestamp(value).isoformat() if value is not None else ""

    return DatasetSummary(
        id=dataset.id,
        name=dataset.name,
        description=dataset.description,
        record_count=int(count or 0),
        date_range={"start": _iso(first), "end": _iso(last)},
        avg_resolution_time=_as_float(avg_resolution),
        avg_satisfaction_rate=_as_float(avg_satisfaction),
        top_issue_types=top_issue_types,
        priority_distribution=priority_distribution,
    )


def get_ticket_status_counts(session: Session, scope: TicketFilter) -> dict[str, int]:
    total, resolved = session.execute(
        select(
            func.count(Ticket.id),
            func.sum(case((Ticket.resolution_time > 0, 1), else_=0)),
        ).where(*scope.clauses())
    ).one()
    total = int(total or 0)
    resolved = int(resolved or 0)
    return {"total": total, "resolved": resolved, "pending": total - resolved}
