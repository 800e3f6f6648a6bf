"""Constants and keyword maps for ticket insights."""

from __future__ import annotations

from typing import Dict, List

COLUMN_ALIASES: Dict[str, List[str]] = {
    "ticket_id": ["id_ticket", "ticket_id", "ticket", "ticket_number", "incident_id", "id"],
    "date": ["date", "ticket_date", "created", "created_at", "opened_at", "open_date"],
    "employee_id": ["employee_id", "employee", "requester_id", "user_id"],
    "agent_id": ["agent_id", "agent", "assignee", "assigned_to", "technician"],
    "request_category": ["request_category", "category", "request_type"],
    "issue_type": ["issue_type", "issue", "type", "problem_type"],
    "severity": ["severity", "impact"],
    "priority": ["priority", "urgency"],
    "resolution_time": [
        "resolution_time_days",
        "resolution_time",
        "resolution_days",
        "time_to_resolve",
        "ttr",
    ],
    "satisfaction_rate": ["satisfaction_rate", "satisfaction", "csat", "rating", "satisfaction_score"],
}

TICKET_FIELDS = list(COLUMN_ALIASES.keys())

TEXT_FIELDS = [
    "employee_id",
    "agent_id",
    "request_category",
    "issue_type",
    "severity",
    "priority",
]

SUPPORTED_UPLOAD_EXTENSIONS = (".csv", ".xlsx", ".xls")

METRIC_RESOLUTION_TIME = "resolution_time"
METRIC_SATISFACTION = "satisfaction"
METRIC_ISSUE_DISTRIBUTION = "issue_distribution"
METRIC_TICKET_TRENDS = "ticket_trends"
METRIC_AGENT_PERFORMANCE = "agent_performance"

ANALYTICS_METRICS = (
    METRIC_RESOLUTION_TIME,
    METRIC_SATISFACTION,
    METRIC_ISSUE_DISTRIBUTION,
    METRIC_TICKET_TRENDS,
    METRIC_AGENT_PERFORMANCE,
)

METRIC_ALIASES = {
    "ticket_count": METRIC_TICKET_TRENDS,
    "ticket_volume": METRIC_TICKET_TRENDS,
    "csat": METRIC_SATISFACTION,
}

REPORT_METRICS = [
    METRIC_RESOLUTION_TIME,
    METRIC_SATISFACTION,
    METRIC_ISSUE_DISTRIBUTION,
    METRIC_TICKET_TRENDS,
]

METRIC_TITLES = {
    METRIC_RESOLUTION_TIME: "Resolution Time Analysis",
    METRIC_SATISFACTION: "Satisfaction Score Analysis",
    METRIC_ISSUE_DISTRIBUTION: "Issue Type Distribution",
    METRIC_TICKET_TRENDS: "Ticket Volume Trends",
    METRIC_AGENT_PERFORMANCE: "Agent Performance Analysis",
}

METRIC_GROUPING = {
    METRIC_RESOLUTION_TIME: "date",
    METRIC_SATISFACTION: "rating",
    METRIC_ISSUE_DISTRIBUTION: "issue type",
    METRIC_TICKET_TRENDS: "month",
    METRIC_AGENT_PERFORMANCE: "agent",
}

METRIC_CHART_TYPES = {
    METRIC_RESOLUTION_TIME: "line",
    METRIC_SATISFACTION: "bar",
    METRIC_ISSUE_DISTRIBUTION: "pie",
    METRIC_TICKET_TRENDS: "line",
    METRIC_AGENT_PERFORMANCE: "bar",
}

CHART_TYPES = ("bar", "line", "pie", "table")

TREND_GROUPINGS = ("day", "week", "month")

RELATIVE_TIMEFRAMES = {
    "last_7_days": 7,
    "last_30_days": 30,
    "last_90_days": 90,
}

HIGH_SATISFACTION_MIN = 4
LOW_SATISFACTION_MAX = 2
RATING_SCALE = (1, 2, 3, 4, 5)

SAMPLE_TICKET_LIMIT = 5
CHAT_HISTORY_WINDOW = 10
MAX_CHAT_SESSIONS = 500
TOP_ISSUE_LIMIT = 5

NO_DATASETS_MESSAGE = "No datasets found. Please upload a dataset first."
