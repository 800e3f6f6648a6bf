"""Unified plot generation with Plotly for shaped chart payloads."""

from __future__ import annotations

from typing import Any

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from plotly.graph_objs import Figure

from .errors import ValidationError

_LABEL_KEYS = ("date", "period", "type", "name", "agent_id", "rating")


def _infer_axes(df: pd.DataFrame, x: str | None, y: str | None) -> tuple[str, str]:
    if x is None:
        x = next((key for key in _LABEL_KEYS if key in df.columns), df.columns[0])
    if y is None:
        numeric = [col for col in df.columns if col != x and pd.api.types.is_numeric_dtype(df[col])]
        y = numeric[0] if numeric else df.columns[-1]
    return x, y


def build_figure(
    chart_type: str,
    data: list[dict[str, Any]],
    title: str,
    x: str | None = None,
    y: str | None = None,
) -> Figure | None:
    if not data:
        return None

    df = pd.DataFrame(data)
    if chart_type == "table":
        return go.Figure(
            data=[
                go.Table(
                    header={"values": list(df.columns)},
                    cells={"values": [df[col].tolist() for col in df.columns]},
                )
            ],
            layout={"title": title},
        )

    x, y = _infer_axes(df, x, y)
    if chart_type == "bar":
        return px.bar(df, x=x, y=y, title=title)
    if chart_type == "line":
        return px.line(df, x=x, y=y, markers=True, title=title)
    if chart_type == "pie":
        return px.pie(df, names=x, values=y, title=title)
    raise ValidationError(f"Unsupported chart type: {chart_type}")
