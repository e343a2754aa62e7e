"""JSON sensor-log ingestion.

Flattens the keyed record object produced by the logger export into a single
time-sorted ``DataFrame`` with the canonical columns ``Device``, ``Serial``,
``Date``, ``DateTime`` and ``Data``. Property values are carried through
untouched; numeric validation happens in ``aggregation``.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Dict, List, Mapping, Optional

import pandas as pd

from diagnostics import (
    InvalidInputError,
    MalformedRecordWarning,
    dprint,
    note,
)


DEVICE_FIELD = "uName"
DATE_FIELD = "Date"
DATA_FIELD = "data"
SERIAL_FIELD = "serial"

# Serial assigned to records that do not carry one, so single-unit devices
# still produce one series per property. Blank serials count as absent, so
# no real serial can collide with it.
DEFAULT_SERIAL = ""

RECORD_COLUMNS = ["Device", "Serial", "Date", "DateTime", "Data"]

_TIMESTAMP_FORMATS = (
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
)


def parse_timestamp(value: object) -> pd.Timestamp:
    """Return a naive timestamp for ``value`` or ``NaT`` when it does not parse.

    Timezone-aware inputs are converted to UTC before the zone is dropped so
    that every parsed timestamp compares against every other one.
    """

    if value is None or (isinstance(value, float) and pd.isna(value)):
        return pd.NaT

    if isinstance(value, datetime):
        parsed = pd.Timestamp(value)
    else:
        text = str(value).strip()
        if not text:
            return pd.NaT
        parsed = None
        for fmt in _TIMESTAMP_FORMATS:
            try:
                parsed = pd.to_datetime(text, format=fmt)
                break
            except (TypeError, ValueError):
                continue
        if parsed is None:
            try:
                parsed = pd.to_datetime(text, errors="coerce")
            except (TypeError, ValueError, OverflowError):
                return pd.NaT

    if pd.isna(parsed):
        return pd.NaT
    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert("UTC").tz_localize(None)
    return parsed


def _empty_records() -> pd.DataFrame:
    return pd.DataFrame(columns=RECORD_COLUMNS)


def _require_mapping(raw: object) -> Mapping:
    if not isinstance(raw, Mapping):
        raise InvalidInputError(
            f"Expected a JSON object of records, got {type(raw).__name__}"
        )
    return raw


def _serial_text(value: object) -> str:
    if value is None:
        return DEFAULT_SERIAL
    text = str(value)
    return text if text.strip() else DEFAULT_SERIAL


def _record_problem(entry: object) -> Optional[str]:
    """Return why ``entry`` cannot be used as a record, or None when it can."""

    if not isinstance(entry, Mapping):
        return "record is not an object"
    if not entry.get(DEVICE_FIELD):
        return f"missing '{DEVICE_FIELD}'"
    if not entry.get(DATE_FIELD):
        return f"missing '{DATE_FIELD}'"
    if not isinstance(entry.get(DATA_FIELD), Mapping):
        return f"'{DATA_FIELD}' is not an object"
    return None


def normalize(raw: object) -> Dict[str, object]:
    """Validate and flatten a parsed sensor-log into canonical records.

    Parameters
    ----------
    raw:
        Any parsed JSON value. Only an object whose values are records is
        usable; other shapes yield an empty result.

    Returns
    -------
    Dict[str, object]
        ``devices`` lists device names in first-seen order, ``records`` is a
        DataFrame sorted by ``DateTime`` (stable, unparseable timestamps last)
        and ``issues`` holds the ``InvalidInputError`` or
        ``MalformedRecordWarning`` instances raised along the way.
    """

    dprint("[ingest] Starting data parsing.")
    issues: List[Exception] = []

    try:
        entries = _require_mapping(raw)
    except InvalidInputError as exc:
        note(issues, exc, "ingest")
        return {"devices": [], "records": _empty_records(), "issues": issues}

    devices: Dict[str, None] = {}
    rows: List[Dict[str, object]] = []
    for key, entry in entries.items():
        problem = _record_problem(entry)
        if problem:
            note(
                issues,
                MalformedRecordWarning(f"Skipping record {key!r}: {problem}"),
                "ingest",
            )
            continue

        device = str(entry[DEVICE_FIELD])
        devices.setdefault(device, None)
        serial = _serial_text(entry.get(SERIAL_FIELD))
        date_text = str(entry[DATE_FIELD])
        rows.append(
            {
                "Device": device,
                "Serial": serial,
                "Date": date_text,
                "DateTime": parse_timestamp(date_text),
                "Data": entry[DATA_FIELD],
            }
        )

    if not rows:
        records = _empty_records()
    else:
        records = pd.DataFrame(rows, columns=RECORD_COLUMNS)
        records["DateTime"] = pd.to_datetime(records["DateTime"])
        records = records.sort_values(
            "DateTime", kind="mergesort", na_position="last"
        ).reset_index(drop=True)

    dprint(f"[ingest] Finished parsing. Found devices: {list(devices)}")
    dprint(f"[ingest] Total processed entries: {len(records)}")
    return {"devices": list(devices), "records": records, "issues": issues}


def read_json_source(file_obj) -> Dict[str, object]:
    """Read and decode a JSON upload.

    Returns ``{"data": ...}`` on success. A missing file gives
    ``{"canceled": True}`` and unreadable or invalid JSON gives
    ``{"canceled": True, "error": message}``; callers treat both as no data.
    """

    if file_obj is None:
        return {"canceled": True}

    try:
        getter = getattr(file_obj, "getvalue", None)
        raw = getter() if callable(getter) else file_obj.read()
        text = raw.decode("utf-8-sig") if isinstance(raw, bytes) else str(raw)
        return {"data": json.loads(text)}
    except (OSError, ValueError) as exc:
        name = getattr(file_obj, "name", "upload")
        dprint(f"[ingest] Failed to read {name}: {exc}")
        return {"canceled": True, "error": str(exc)}


__all__ = [
    "DEFAULT_SERIAL",
    "RECORD_COLUMNS",
    "normalize",
    "parse_timestamp",
    "read_json_source",
]
