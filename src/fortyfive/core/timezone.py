"""UTC time handling.

Sets the process TZ to UTC and provides the timestamp helper used for every
stored datetime column.
"""

import os
from datetime import datetime, timezone

os.environ["TZ"] = "UTC"


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime.

    Columns are declared DateTime(timezone=True). SQLite drops the offset on
    storage and returns naive values on read; PostgreSQL returns aware ones.
    """
    return datetime.now(timezone.utc)
