import datetime as dt
import math
from typing import Tuple


def parking_duration(entry_time: dt.datetime, exit_time: dt.datetime) -> Tuple[dt.timedelta, int, int]:
    """Return (elapsed, whole minutes, billable hours) for a stay.

    Billable hours round up to the next hour with a one hour minimum. It is
    a time figure only; no rate is applied here.
    """
    if exit_time < entry_time:
        raise ValueError("Exit time cannot be before entry time")

    elapsed = exit_time - entry_time
    minutes = int(elapsed.total_seconds() // 60)
    billable = max(1, math.ceil(minutes / 60))
    return elapsed, minutes, billable
