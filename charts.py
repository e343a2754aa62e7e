"""Altair rendering helpers for aggregated series."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import altair as alt
import numpy as np
import pandas as pd

from aggregation import take_positions
from sensor_ingest import DEFAULT_SERIAL


CHART_TYPES = ("line", "bar", "scatter")

# Altair refuses inline datasets above 5000 rows by default.
MAX_CHART_POINTS = 5000

FRAME_COLUMNS = ["Label", "Order", "Legend", "Value"]


def _is_min_max(series: Dict[str, object]) -> bool:
    return series.get("mode") == "dailyMinMax"


def _legend_name(series: Dict[str, object], serial: str) -> str:
    if serial == DEFAULT_SERIAL:
        return str(series["property_key"])
    return str(serial)


def series_to_frame(series: Dict[str, object]) -> pd.DataFrame:
    """Return a long ``Label``/``Order``/``Legend``/``Value`` frame for charting.

    Empty slots are dropped; ``Order`` keeps the shared label order so the x
    axis does not fall back to alphabetical sorting of bucket keys.
    """

    min_max = _is_min_max(series)
    rows: List[Dict[str, object]] = []
    for entry in series["per_serial"]:
        legend = _legend_name(series, entry["serial"])
        for order, (label, value) in enumerate(zip(series["labels"], entry["values"])):
            if min_max:
                parts = (("Min", value[0]), ("Max", value[1]))
                for suffix, part in parts:
                    if part is not None:
                        rows.append(
                            {"Label": label, "Order": order, "Legend": f"{legend} ({suffix})", "Value": part}
                        )
            elif value is not None:
                rows.append({"Label": label, "Order": order, "Legend": legend, "Value": value})
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


def observed_range(series: Dict[str, object]) -> Tuple[Optional[float], Optional[float]]:
    """Return the smallest and largest value plotted for ``series``."""

    numbers: List[float] = []
    for entry in series["per_serial"]:
        for value in entry["values"]:
            parts = value if isinstance(value, tuple) else (value,)
            numbers.extend(part for part in parts if part is not None)
    if not numbers:
        return None, None
    return float(min(numbers)), float(max(numbers))


def downsample_series(series: Dict[str, object], max_points: int = MAX_CHART_POINTS) -> Dict[str, object]:
    """Thin ``series`` to evenly spaced labels so its chart stays under ``max_points`` rows."""

    width = max(1, len(series["per_serial"])) * (2 if _is_min_max(series) else 1)
    budget = max(1, max_points // width)
    count = len(series["labels"])
    if count <= budget:
        return series

    positions = np.unique(np.linspace(0, count - 1, budget).round().astype(int))
    return take_positions(series, positions.tolist())


def build_chart(series: Dict[str, object], chart_type: str = "line") -> alt.Chart:
    """Return an Altair chart with one colour per serial over the shared labels."""

    if chart_type not in CHART_TYPES:
        raise ValueError(f"Unsupported chart type: {chart_type!r}")

    df = series_to_frame(series)
    property_key = series["property_key"]
    base = alt.Chart(df).encode(
        x=alt.X(
            "Label:O",
            title="Time",
            sort=alt.EncodingSortField(field="Order", op="min"),
        ),
        y=alt.Y("Value:Q", title="Min/Max Value" if _is_min_max(series) else "Value"),
        color=alt.Color(
            "Legend:N",
            legend=alt.Legend(
                title="Series",
                orient="bottom",
                direction="horizontal",
                labelLimit=1000,
                columns=4,
            ),
        ),
        tooltip=["Label:N", "Legend:N", "Value:Q"],
    )

    if chart_type == "bar":
        chart = base.mark_bar(opacity=0.7)
    elif chart_type == "scatter":
        chart = base.mark_point(filled=True, size=30)
    else:
        chart = base.mark_line(point=False)

    title = f"{property_key} ({chart_type.capitalize()})"
    return (
        chart.properties(title={"text": title, "anchor": "start"})
        .configure(background="white")
        .configure_title(fontSize=14, offset=10)
    )
