"""Serializable shapes handed to the chat UI and the HTTP layer."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

import numpy as np
import pandas as pd


def json_safe(value: Any) -> Any:
    if isinstance(value, pd.DataFrame):
        return json_safe(value.to_dict("records"))
    if isinstance(value, pd.Series):
        return json_safe(value.tolist())
    if isinstance(value, (pd.Timestamp, datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, (float, np.floating)):
        value = float(value)
        if math.isnan(value) or math.isinf(value):
            return None
        return value
    return value


class ComponentType(str, Enum):
    ANALYTICS = "analytics"
    DATASET_UPLOAD = "dataset-upload"
    DATASET_LIST = "dataset-list"
    DATASET_SUMMARY = "dataset-summary"
    DATA_VISUALIZATION = "data-visualization"
    REPORT = "report"
    ERROR = "error"


@dataclass
class AnalyticsView:
    metric: str
    title: str
    description: str
    metrics: list[dict[str, str]]
    insights: list[str]
    chart_type: str
    chart_data: list[dict[str, Any]]
    ai_explanation: str

    def to_dict(self) -> dict[str, Any]:
        return json_safe(asdict(self))


@dataclass
class QueryResult:
    query: str
    chart_type: str
    data: list[dict[str, Any]]
    summary: str
    insights: list[str]
    ai_explanation: str
    narrative: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return json_safe(asdict(self))


@dataclass
class ReportSection:
    title: str
    content: str
    visualization: dict[str, Any] | None = None


@dataclass
class ReportData:
    title: str
    dataset_id: str
    dataset_name: str
    report_type: str
    generated_at: datetime
    sections: list[ReportSection] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return json_safe(asdict(self))


@dataclass
class UIComponent:
    """One renderable chat payload, discriminated by ``type``."""

    type: ComponentType
    data: Any = None
    message: str | None = None
    metric: str | None = None

    @classmethod
    def analytics(cls, view: AnalyticsView) -> UIComponent:
        return cls(ComponentType.ANALYTICS, data=view, metric=view.metric)

    @classmethod
    def dataset_upload(cls, message: str = "Upload a CSV or Excel file of tickets to create a dataset.") -> UIComponent:
        return cls(ComponentType.DATASET_UPLOAD, message=message)

    @classmethod
    def dataset_list(cls, datasets: list[dict[str, Any]]) -> UIComponent:
        return cls(ComponentType.DATASET_LIST, data=datasets)

    @classmethod
    def dataset_summary(cls, summary: Any) -> UIComponent:
        return cls(ComponentType.DATASET_SUMMARY, data=summary)

    @classmethod
    def data_visualization(cls, result: QueryResult) -> UIComponent:
        return cls(ComponentType.DATA_VISUALIZATION, data=result)

    @classmethod
    def report(cls, report: ReportData) -> UIComponent:
        return cls(ComponentType.REPORT, data=report)

    @classmethod
    def error(cls, message: str) -> UIComponent:
        return cls(ComponentType.ERROR, message=message)

    def to_dict(self) -> dict[str, Any]:
        data = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        payload: dict[str, Any] = {"type": self.type.value}
        if data is not None:
            payload["data"] = json_safe(data)
        if self.message is not None:
            payload["message"] = self.message
        if self.metric is not None:
            payload["metric"] = self.metric
        return payload
