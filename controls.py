"""Sidebar widget keys and the rule for resetting them."""

from __future__ import annotations

from typing import MutableMapping

from aggregation import DEFAULT_MODE
from charts import CHART_TYPES


MODE_KEY = "aggregation_mode"
CHART_TYPE_KEY = "chart_type"
LIMIT_RANGE_KEY = "limit_range"
START_DAY_KEY = "start_day"
START_CLOCK_KEY = "start_clock"
END_DAY_KEY = "end_day"
END_CLOCK_KEY = "end_clock"
RANGE_KEYS = (START_DAY_KEY, START_CLOCK_KEY, END_DAY_KEY, END_CLOCK_KEY)


def reset_controls(state: MutableMapping) -> None:
    """Return the controls to raw readings over the whole range of the device.

    The date and time inputs are removed rather than overwritten so that they
    pick up the newly selected device's first and last timestamps.
    """

    state[MODE_KEY] = DEFAULT_MODE
    state[CHART_TYPE_KEY] = CHART_TYPES[0]
    state[LIMIT_RANGE_KEY] = False
    for key in RANGE_KEYS:
        state.pop(key, None)
