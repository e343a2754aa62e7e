import sys
from datetime import date, time
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from controls import (
    CHART_TYPE_KEY,
    LIMIT_RANGE_KEY,
    MODE_KEY,
    RANGE_KEYS,
    reset_controls,
)


def test_reset_controls_returns_to_raw_line_chart():
    state = {MODE_KEY: "daily", CHART_TYPE_KEY: "bar", LIMIT_RANGE_KEY: True}

    reset_controls(state)

    assert state == {MODE_KEY: "raw", CHART_TYPE_KEY: "line", LIMIT_RANGE_KEY: False}


def test_reset_controls_forgets_previous_device_range():
    state = {
        "device": "Fridge",
        "start_day": date(2025, 1, 1),
        "start_clock": time(6, 0),
        "end_day": date(2025, 1, 3),
        "end_clock": time(18, 0),
    }

    reset_controls(state)

    for key in RANGE_KEYS:
        assert key not in state
    assert state["device"] == "Fridge"


def test_reset_controls_tolerates_missing_range_keys():
    state: dict = {}

    reset_controls(state)

    assert state[LIMIT_RANGE_KEY] is False
