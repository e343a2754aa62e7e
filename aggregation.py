"""Time-series aggregation for normalized sensor records.

``aggregate`` turns the flat record frame from ``sensor_ingest.normalize`` into
one series per property, each broken out by serial and aligned to a shared
label axis. ``filter_by_time`` narrows such a collection to a time window.

A series is a plain dict::

    {"property_key": "temp",
     "mode": "hourly",
     "labels": ["2025-1-1 0:00", ...],
     "per_serial": [{"serial": "S1", "values": [15.0, ...]}, ...]}

Missing slots hold ``None``; in ``dailyMinMax`` every slot is a ``(min, max)``
tuple and a missing slot is ``(None, None)``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from diagnostics import NoDataWarning, dprint, note
from sensor_ingest import parse_timestamp


AGGREGATION_MODES = ("raw", "hourly", "threeHourly", "daily", "dailyMinMax")
DEFAULT_MODE = "raw"

_MISSING_PAIR = (None, None)

# Bucket keys are written without zero padding, e.g. "2025-1-1 0:00".
_BUCKET_KEY_FORMATS = ("%Y-%m-%d %H:%M", "%Y-%m-%d")


def _check_mode(mode: str) -> None:
    if mode not in AGGREGATION_MODES:
        raise ValueError(f"Unknown aggregation mode: {mode!r}")


def bucket_start(timestamp, mode: str) -> pd.Timestamp:
    """Return the first instant of the bucket that ``timestamp`` falls into."""

    _check_mode(mode)
    ts = pd.Timestamp(timestamp)
    if mode == "raw":
        return ts
    if mode in ("hourly", "threeHourly"):
        # replace(nanosecond=...) overflows on coarser-unit stamps outside 1677-2262.
        if ts.nanosecond:
            ts = ts.replace(nanosecond=0)
        hour = ts.hour if mode == "hourly" else (ts.hour // 3) * 3
        return ts.replace(hour=hour, minute=0, second=0, microsecond=0)
    return ts.normalize()


def bucket_key(timestamp, mode: str) -> str:
    """Return the label identifying the aggregation window of ``timestamp``.

    The key is for display only; ordering always uses ``bucket_start``.
    """

    start = bucket_start(timestamp, mode)
    if mode == "raw":
        return start.isoformat()
    if mode in ("hourly", "threeHourly"):
        return f"{start.year}-{start.month}-{start.day} {start.hour}:00"
    return f"{start.year}-{start.month}-{start.day}"


def is_numeric_valid(value: object) -> bool:
    """Return True when ``value`` counts as a numeric reading.

    Strings are rejected even when they look numeric (``"10"``); anything else
    must coerce to a float that is not NaN.
    """

    if value is None or isinstance(value, str):
        return False
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return False
    return not pd.isna(number)


def label_time(label: str) -> pd.Timestamp:
    """Parse a series label (bucket key or raw timestamp text)."""

    for fmt in _BUCKET_KEY_FORMATS:
        try:
            return pd.Timestamp(datetime.strptime(label, fmt))
        except (TypeError, ValueError):
            continue
    return parse_timestamp(label)


def _explode_properties(selected: pd.DataFrame) -> pd.DataFrame:
    """Return one row per (record, property) with the raw property value."""

    rows = []
    for serial, date_text, stamp, data in selected[
        ["Serial", "Date", "DateTime", "Data"]
    ].itertuples(index=False, name=None):
        for prop, value in data.items():
            rows.append((str(prop), serial, date_text, stamp, value))
    long = pd.DataFrame(rows, columns=["Property", "Serial", "Date", "DateTime", "Value"])
    long["DateTime"] = pd.to_datetime(long["DateTime"])
    return long


def _bucket_serial(
    rows: pd.DataFrame, mode: str, issues: Optional[List[Exception]] = None
) -> pd.DataFrame:
    """Collapse one serial's valid readings into ``Label``/``LabelTime`` rows.

    Raw mode keeps one row per reading labelled by its original timestamp
    text; the other modes produce one row per non-empty bucket carrying either
    ``Value`` (mean) or ``Min``/``Max``.
    """

    if mode == "raw":
        frame = rows[["Date", "DateTime", "Number"]].rename(
            columns={"Date": "Label", "DateTime": "LabelTime", "Number": "Value"}
        )
        dupes = frame.duplicated(subset=["Label"], keep="last")
        if dupes.any():
            prop = rows["Property"].iloc[0]
            serial = rows["Serial"].iloc[0]
            note(
                issues,
                NoDataWarning(
                    f"Dropped {int(dupes.sum())} reading(s) of property {prop!r}, serial {serial!r} "
                    "with a repeated timestamp; keeping the last reading"
                ),
                "aggregate",
            )
        return frame.loc[~dupes].reset_index(drop=True)

    work = rows.assign(
        LabelTime=pd.to_datetime(rows["DateTime"].map(lambda ts: bucket_start(ts, mode)))
    )
    grouped = work.dropna(subset=["Number"]).groupby("LabelTime", sort=True)["Number"]
    if mode == "dailyMinMax":
        frame = grouped.agg(Min="min", Max="max").reset_index()
    else:
        frame = grouped.mean().rename("Value").reset_index()
    frame["Label"] = [bucket_key(ts, mode) for ts in frame["LabelTime"]]
    return frame


def _shared_labels(frames: Sequence[pd.DataFrame]) -> List[str]:
    """First pass: union every serial's labels and order them by time."""

    axis = pd.concat([frame[["Label", "LabelTime"]] for frame in frames], ignore_index=True)
    axis = axis.drop_duplicates(subset=["Label"], keep="first")
    axis = axis.sort_values("LabelTime", kind="mergesort")
    return axis["Label"].tolist()


def _slot(value) -> Optional[float]:
    return None if pd.isna(value) else float(value)


def _align(frame: pd.DataFrame, labels: List[str], mode: str) -> list:
    """Second pass: express one serial's buckets against the shared labels."""

    indexed = frame.set_index("Label")
    if mode == "dailyMinMax":
        mins = indexed["Min"].reindex(labels)
        maxs = indexed["Max"].reindex(labels)
        return [
            _MISSING_PAIR if pd.isna(lo) or pd.isna(hi) else (float(lo), float(hi))
            for lo, hi in zip(mins, maxs)
        ]
    return [_slot(value) for value in indexed["Value"].reindex(labels)]


def aggregate(
    records: pd.DataFrame,
    device: str,
    mode: str = DEFAULT_MODE,
    issues: Optional[List[Exception]] = None,
) -> List[Dict[str, object]]:
    """Build aligned per-property series for ``device``.

    Parameters
    ----------
    records:
        Record frame produced by :func:`sensor_ingest.normalize`.
    device:
        Device name (``uName``) to select.
    mode:
        One of :data:`AGGREGATION_MODES`.
    issues:
        Optional list collecting ``NoDataWarning`` instances for every
        property, serial or device that produced nothing.

    Returns
    -------
    List[Dict[str, object]]
        One series per property that has at least one serial with data, in
        first-seen property order. Serials keep first-seen order.
    """

    dprint(f"[aggregate] device={device!r} mode={mode!r}")
    if mode not in AGGREGATION_MODES:
        note(issues, NoDataWarning(f"Unknown aggregation mode: {mode!r}"), "aggregate")
        return []

    if records is None or records.empty:
        note(issues, NoDataWarning("No records loaded"), "aggregate")
        return []

    selected = records.loc[records["Device"] == device]
    dprint(f"[aggregate] Filtered device data length: {len(selected)}")
    if selected.empty:
        note(issues, NoDataWarning(f"No data found for device: {device}"), "aggregate")
        return []

    long = _explode_properties(selected)
    property_keys = list(dict.fromkeys(long["Property"]))
    if not property_keys:
        note(issues, NoDataWarning(f"No property data found for device: {device}"), "aggregate")
        return []
    serials = list(dict.fromkeys(selected["Serial"]))

    valid_mask = long["Value"].map(is_numeric_valid).astype(bool) & long["DateTime"].notna()
    valid = long.loc[valid_mask].copy()
    valid["Number"] = [float(value) for value in valid["Value"]]

    results: List[Dict[str, object]] = []
    for prop in property_keys:
        prop_rows = valid.loc[valid["Property"] == prop]

        serial_frames: List[Tuple[str, pd.DataFrame]] = []
        for serial in serials:
            serial_rows = prop_rows.loc[prop_rows["Serial"] == serial]
            if serial_rows.empty:
                note(
                    issues,
                    NoDataWarning(f"No valid data for property {prop!r}, serial {serial!r}"),
                    "aggregate",
                )
                continue
            frame = _bucket_serial(serial_rows, mode, issues)
            if frame.empty:
                continue
            serial_frames.append((serial, frame))

        if not serial_frames:
            note(issues, NoDataWarning(f"No valid data for property: {prop}"), "aggregate")
            continue

        labels = _shared_labels([frame for _, frame in serial_frames])
        results.append(
            {
                "property_key": prop,
                "mode": mode,
                "labels": labels,
                "per_serial": [
                    {"serial": serial, "values": _align(frame, labels, mode)}
                    for serial, frame in serial_frames
                ],
            }
        )

    dprint(f"[aggregate] Built {len(results)} series: {[s['property_key'] for s in results]}")
    return results


def parse_time_range(start, end) -> Optional[Tuple[pd.Timestamp, pd.Timestamp]]:
    """Return parsed ``(start, end)`` bounds, or None when either is unusable."""

    if start is None or end is None:
        return None
    lo = parse_timestamp(start)
    hi = parse_timestamp(end)
    if pd.isna(lo) or pd.isna(hi):
        return None
    return lo, hi


def take_positions(series: Dict[str, object], positions: Sequence[int]) -> Dict[str, object]:
    """Return a copy of ``series`` holding only the given label positions."""

    return {
        "property_key": series["property_key"],
        "mode": series.get("mode"),
        "labels": [series["labels"][i] for i in positions],
        "per_serial": [
            {"serial": entry["serial"], "values": [entry["values"][i] for i in positions]}
            for entry in series["per_serial"]
        ],
    }


def filter_by_time(
    series: List[Dict[str, object]],
    start,
    end,
    issues: Optional[List[Exception]] = None,
) -> List[Dict[str, object]]:
    """Keep the label positions whose time lies in ``[start, end]`` inclusive.

    Missing or unparseable bounds return ``series`` unchanged. Series left
    without labels are dropped, so ``start > end`` yields an empty list.
    """

    bounds = parse_time_range(start, end)
    if bounds is None:
        note(
            issues,
            NoDataWarning(f"Invalid start or end time ({start!r}, {end!r}); filter not applied"),
            "filter",
        )
        return series
    lo, hi = bounds

    filtered: List[Dict[str, object]] = []
    for item in series:
        positions = []
        for index, label in enumerate(item["labels"]):
            stamp = label_time(label)
            if not pd.isna(stamp) and lo <= stamp <= hi:
                positions.append(index)
        if not positions:
            note(
                issues,
                NoDataWarning(f"No data within time range for property: {item['property_key']}"),
                "filter",
            )
            continue
        filtered.append(take_positions(item, positions))
    return filtered


__all__ = [
    "AGGREGATION_MODES",
    "DEFAULT_MODE",
    "aggregate",
    "bucket_key",
    "bucket_start",
    "filter_by_time",
    "is_numeric_valid",
    "label_time",
    "parse_time_range",
    "take_positions",
]
