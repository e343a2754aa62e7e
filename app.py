import hashlib
from datetime import datetime, time
from io import BytesIO
from pathlib import Path
import sys
from typing import Dict

import streamlit as st

# Ensure imports work whether the app is executed as a module or as a script
# where the repository directory might not already be on ``sys.path``.
CURRENT_DIR = Path(__file__).resolve().parent

if __package__:
    from .aggregation import AGGREGATION_MODES
    from .charts import CHART_TYPES, build_chart, downsample_series, observed_range, series_to_frame
    from .controls import (
        CHART_TYPE_KEY,
        END_CLOCK_KEY,
        END_DAY_KEY,
        LIMIT_RANGE_KEY,
        MODE_KEY,
        START_CLOCK_KEY,
        START_DAY_KEY,
        reset_controls,
    )
    from .diagnostics import MalformedRecordWarning
    from .sensor_ingest import normalize, read_json_source
    from .session import ChartSession
else:
    if str(CURRENT_DIR) not in sys.path:
        sys.path.insert(0, str(CURRENT_DIR))
    from aggregation import AGGREGATION_MODES
    from charts import CHART_TYPES, build_chart, downsample_series, observed_range, series_to_frame
    from controls import (
        CHART_TYPE_KEY,
        END_CLOCK_KEY,
        END_DAY_KEY,
        LIMIT_RANGE_KEY,
        MODE_KEY,
        START_CLOCK_KEY,
        START_DAY_KEY,
        reset_controls,
    )
    from diagnostics import MalformedRecordWarning
    from sensor_ingest import normalize, read_json_source
    from session import ChartSession


AGGREGATION_LABELS: Dict[str, str] = {
    "raw": "Raw Data",
    "hourly": "Hourly Average",
    "threeHourly": "3-Hour Average",
    "daily": "Daily Average",
    "dailyMinMax": "Daily Min/Max",
}


st.set_page_config(page_title="Sensor Log Viewer", layout="wide", page_icon="📈")
st.markdown(
    """
    <style>
        .stApp { background-color: white; }
    </style>
    """,
    unsafe_allow_html=True,
)

st.sidebar.header("📂 Sensor Log")
uploaded = st.sidebar.file_uploader(
    "Load JSON sensor log",
    type=["json"],
    key="log_uploader",
)


def _state_key(prefix: str, identifier: str) -> str:
    digest = hashlib.sha1(identifier.encode('utf-8')).hexdigest()[:10]
    return f"{prefix}_{digest}"


@st.cache_data(show_spinner=False, max_entries=8)
def _ingest_cached(file_name: str, file_bytes: bytes):
    buffer = BytesIO(file_bytes)
    buffer.name = file_name
    loaded = read_json_source(buffer)
    if loaded.get("canceled"):
        return None, loaded.get("error")
    return normalize(loaded["data"]), None


def _reset_controls() -> None:
    reset_controls(st.session_state)


if uploaded is None:
    st.sidebar.info("Load a JSON sensor log to begin.")
    st.stop()

file_bytes = uploaded.getvalue()
parsed, load_error = _ingest_cached(uploaded.name, file_bytes)
if parsed is None:
    st.sidebar.error(f"Failed to read {uploaded.name}")
    if load_error:
        st.sidebar.caption(load_error)
    st.info("No data to display.")
    st.stop()

session_key = _state_key("session", f"{uploaded.name}|{hashlib.sha1(file_bytes).hexdigest()}")
if st.session_state.get("session_key") != session_key:
    st.session_state["session_key"] = session_key
    st.session_state["chart_session"] = ChartSession(
        parsed["devices"], parsed["records"], parsed["issues"]
    )
    st.session_state.pop("device", None)
    _reset_controls()
session: ChartSession = st.session_state["chart_session"]

skipped = [issue for issue in session.ingest_issues if isinstance(issue, MalformedRecordWarning)]
if skipped:
    st.sidebar.warning(f"Skipped {len(skipped):,} malformed record(s).")

if not session.devices:
    st.sidebar.warning("No devices found in the loaded file.")
    st.info("No data to display.")
    st.stop()

st.sidebar.caption(f"{len(session.records):,} records")
st.sidebar.markdown("### Devices")
device = st.sidebar.radio(
    "Device",
    options=session.devices,
    key="device",
    on_change=_reset_controls,
)

st.sidebar.markdown("### Chart Controls")
mode = st.sidebar.selectbox(
    "Aggregation",
    options=list(AGGREGATION_MODES),
    format_func=lambda opt: AGGREGATION_LABELS.get(opt, opt),
    key=MODE_KEY,
)
chart_type = st.sidebar.selectbox(
    "Chart type",
    options=list(CHART_TYPES),
    format_func=str.capitalize,
    key=CHART_TYPE_KEY,
)

if device != session.device:
    session.select_device(device)
session.set_mode(mode)

first_ts, last_ts = session.time_bounds()
limit_range = st.sidebar.checkbox("Limit time range", key=LIMIT_RANGE_KEY)
if limit_range and first_ts is not None:
    start_day = st.sidebar.date_input("Start date", value=first_ts.date(), key=START_DAY_KEY)
    start_clock = st.sidebar.time_input("Start time", value=time(0, 0), key=START_CLOCK_KEY)
    end_day = st.sidebar.date_input("End date", value=last_ts.date(), key=END_DAY_KEY)
    end_clock = st.sidebar.time_input("End time", value=time(23, 59), key=END_CLOCK_KEY)
    session.filter_by_time(
        datetime.combine(start_day, start_clock),
        datetime.combine(end_day, end_clock),
    )

st.title(f"Charts for {device}")
st.caption(AGGREGATION_LABELS.get(session.mode, session.mode))

if session.is_empty:
    st.info("No property data to display.")
    st.stop()

for item in session.series:
    property_key = item["property_key"]
    shown = downsample_series(item)
    st.altair_chart(build_chart(shown, chart_type), use_container_width=True)

    stat_lines = []
    observed_min, observed_max = observed_range(item)
    if observed_min is not None and observed_max is not None:
        stat_lines.append(f"Observed range: {observed_min:.2f} to {observed_max:.2f}")
    if len(shown["labels"]) < len(item["labels"]):
        stat_lines.append(f"Showing {len(shown['labels']):,} of {len(item['labels']):,} points")
    if stat_lines:
        st.caption(" | ".join(stat_lines))

    with st.expander(f"{property_key} data"):
        frame = series_to_frame(item)
        st.dataframe(frame.drop(columns=["Order"]))
        st.download_button(
            f"Download {property_key} (CSV)",
            data=frame.drop(columns=["Order"]).to_csv(index=False).encode("utf-8"),
            file_name=f"{device}_{property_key}_{session.mode}.csv",
            mime="text/csv",
            key=_state_key("download", f"{device}|{property_key}|{session.mode}"),
        )
