from collections.abc import Callable
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def get_utc_now() -> datetime:
    """
    Get the current date and time in UTC.

    This function returns the current time with timezone information set to UTC,
    ensuring that the returned datetime object is offset-aware.

    Returns:
        datetime: The current date and time in UTC with tzinfo set to ZoneInfo("UTC").
    """
    return datetime.now(ZoneInfo("UTC"))


def from_timestamp(value: int | float) -> datetime:
    """Convert a POSIX timestamp (JWT ``iat``/``exp``) into an aware UTC datetime."""
    return datetime.fromtimestamp(value, tz=timezone.utc)

