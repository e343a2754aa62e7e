"""Per-file chart state owned by the presentation shell."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import pandas as pd

from aggregation import DEFAULT_MODE, aggregate, filter_by_time, parse_time_range
from diagnostics import NoDataWarning, dprint, note
from sensor_ingest import normalize


class ChartSession:
    """Records of one loaded file plus the current device, mode and series.

    The aggregation functions stay pure; this object only remembers which
    device and mode the user picked and the last series collection produced.
    A new file load builds a new session.
    """

    def __init__(self, devices: List[str], records: pd.DataFrame, ingest_issues=None):
        self.devices = list(devices)
        self.records = records
        self.ingest_issues: List[Exception] = list(ingest_issues or [])
        self.issues: List[Exception] = []
        self.device: Optional[str] = None
        self.mode = DEFAULT_MODE
        self.time_range: Optional[Tuple[pd.Timestamp, pd.Timestamp]] = None
        self.series: List[Dict[str, object]] = []

    @classmethod
    def from_raw(cls, raw) -> "ChartSession":
        parsed = normalize(raw)
        return cls(parsed["devices"], parsed["records"], parsed["issues"])

    @property
    def is_empty(self) -> bool:
        return not self.series

    def _aggregate(self) -> List[Dict[str, object]]:
        self.issues = []
        if self.device is None:
            return []
        return aggregate(self.records, self.device, self.mode, self.issues)

    def select_device(self, device: str) -> List[Dict[str, object]]:
        """Switch to ``device`` with the default mode and no time range."""

        dprint(f"[session] select device {device!r}")
        self.device = device
        self.mode = DEFAULT_MODE
        self.time_range = None
        self.series = self._aggregate()
        return self.series

    def set_mode(self, mode: str) -> List[Dict[str, object]]:
        """Re-aggregate the current device with ``mode`` over the full range."""

        dprint(f"[session] set mode {mode!r}")
        self.mode = mode
        self.time_range = None
        self.series = self._aggregate()
        return self.series

    def filter_by_time(self, start, end) -> List[Dict[str, object]]:
        """Show only ``[start, end]`` of a fresh full-range aggregation.

        Unusable bounds leave the current series untouched.
        """

        bounds = parse_time_range(start, end)
        if bounds is None:
            note(
                self.issues,
                NoDataWarning(f"Invalid start or end time ({start!r}, {end!r})"),
                "session",
            )
            return self.series

        full = self._aggregate()
        self.series = filter_by_time(full, bounds[0], bounds[1], self.issues)
        self.time_range = bounds
        return self.series

    def reset_time_range(self) -> List[Dict[str, object]]:
        return self.set_mode(self.mode)

    def time_bounds(self) -> Tuple[Optional[pd.Timestamp], Optional[pd.Timestamp]]:
        """Return the earliest and latest parsed timestamp of the current device."""

        if self.device is None or self.records.empty:
            return None, None
        stamps = self.records.loc[self.records["Device"] == self.device, "DateTime"].dropna()
        if stamps.empty:
            return None, None
        return stamps.min(), stamps.max()
