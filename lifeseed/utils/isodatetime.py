"""ISO 8601 timestamp helpers.

All persisted timestamps are UTC with millisecond precision and a 'Z'
suffix, e.g. '2026-10-19T10:30:00.123Z'. Fixed-width strings sort in
chronological order, which the feed cursors rely on.
"""

from datetime import datetime, timedelta, timezone


def now_millis() -> int:
    """Current UTC time as integer milliseconds since the Unix epoch."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def from_millis(millis: int) -> str:
    """Convert epoch milliseconds to a persisted timestamp string.

    Args:
        millis: Milliseconds since the Unix epoch

    Returns:
        ISO 8601 UTC string with millisecond precision
    """
    dt = datetime.fromtimestamp(millis // 1000, tz=timezone.utc) + timedelta(
        milliseconds=millis % 1000
    )
    return to_timestamp(dt)


def to_timestamp(dt: datetime) -> str:
    """Convert datetime to a persisted timestamp string.

    Naive datetimes are treated as UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
