# tradetracker/units/utc_time.py
"""
UTC timestamp helpers.

The exchange returns timestamps in several formats ("2022-01-11T02:51:03.755Z",
"2023-12-29 21:00:00+0000", nanosecond fractions...). Everything is normalized
to timezone-aware UTC datetimes.
"""

import re
from datetime import datetime, timedelta

import pytz

from tradetracker.errors import MalformedInputError

UTC = pytz.UTC

TIMESTAMP_FORMATS = [
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S.%f%z",
    "%Y-%m-%d %H:%M:%S%z",
]

# datetime only holds microseconds; drop any further digits
_LONG_FRACTION = re.compile(r"(\.\d{6})\d+")


def parse_timestamp(ts_str: str) -> datetime:
    """
    Parse an exchange timestamp string to an aware UTC datetime.

    Raises:
        MalformedInputError: if no known format matches
    """
    normalized = _LONG_FRACTION.sub(r"\1", ts_str.strip())
    if normalized.endswith("Z"):
        normalized = normalized[:-1] + "+0000"

    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(normalized, fmt).astimezone(UTC)
        except ValueError:
            continue

    raise MalformedInputError(f"Could not parse timestamp: {ts_str}")


def from_unix(seconds: int) -> datetime:
    """UNIX timestamp (seconds) to UTC datetime."""
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError) as e:
        raise MalformedInputError(f"timestamp {seconds} out of range for UNIX timestamp") from e


def forced_to_hour(dt: datetime, hour: int) -> datetime:
    """Same UTC day as `dt`, with the time fixed to `hour`:00:00."""
    return dt.astimezone(UTC).replace(hour=hour, minute=0, second=0, microsecond=0)


def format_tax_date(dt: datetime) -> str:
    """
    Format a date the way the exchange's tax CSV does.

    The exchange rounds to the nearest second where strftime truncates.
    """
    dt = dt.astimezone(UTC)
    if dt.microsecond > 500_000:
        dt += timedelta(seconds=1)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")
