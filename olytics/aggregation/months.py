"""
Month bucketing shared by both archives.
"""

from datetime import datetime, timezone


def month_of(timestamp: datetime) -> datetime:
    """Return the first instant (UTC) of the calendar month of *timestamp*.

    Naive timestamps are taken to already be in UTC.

    >>> month_of(datetime(2023, 3, 15, 10, 0, tzinfo=timezone.utc))
    datetime.datetime(2023, 3, 1, 0, 0, tzinfo=datetime.timezone.utc)
    """
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    else:
        timestamp = timestamp.astimezone(timezone.utc)
    return timestamp.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
