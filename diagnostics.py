"""Debug logging and the warning/error kinds shared by the core modules."""

import os
from typing import List, Optional

# Debug toggler: set SLV_DEBUG=1 to enable verbose ingest/aggregation logs
DEBUG = os.getenv("SLV_DEBUG", "0") == "1"


def dprint(*args, **kwargs):
    if DEBUG:
        print(*args, **kwargs)


class InvalidInputError(ValueError):
    """Top-level ingest input is not a usable mapping of records."""


class NoDataWarning(UserWarning):
    """A selection, bucketing or filter step produced nothing to chart."""


class MalformedRecordWarning(UserWarning):
    """A raw record lacked a required field and was dropped."""


def note(issues: Optional[List[Exception]], issue: Exception, stage: str) -> None:
    """Log ``issue`` under ``stage`` and append it to ``issues`` when given."""

    dprint(f"[{stage}] {type(issue).__name__}: {issue}")
    if issues is not None:
        issues.append(issue)
