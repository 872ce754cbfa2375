"""
Time utility functions for pricerelay.

The streaming API reports event times as RFC-3339 strings with up to nine
fractional digits. Python's datetime only keeps microseconds, so the
fractional part is parsed separately to preserve nanosecond precision.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Tuple

NANOS_PER_SECOND = 1_000_000_000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_RFC3339_PATTERN = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[Tt](?P<clock>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>[Zz]|[+-]\d{2}:\d{2})$"
)

# Fallback: fractional seconds with a literal trailing Z and no offset
_FALLBACK_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class TimestampParseError(ValueError):
    """Raised when a timestamp matches neither RFC-3339 nor the fallback pattern."""


def _fraction_to_nanos(fraction: str) -> int:
    # Digits past nanosecond precision are truncated
    return int(fraction[:9].ljust(9, "0"))


def _parse_rfc3339(time_str: str) -> Tuple[int, int]:
    match = _RFC3339_PATTERN.match(time_str)
    if not match:
        raise ValueError("not an RFC-3339 timestamp")

    offset = match.group("offset")
    if offset in ("Z", "z"):
        offset = "+00:00"

    dt = datetime.fromisoformat(f"{match.group('date')}T{match.group('clock')}{offset}")
    seconds = (dt - _EPOCH) // timedelta(seconds=1)

    fraction = match.group("fraction")
    nanos = _fraction_to_nanos(fraction) if fraction else 0
    return seconds, nanos


def _parse_fallback(time_str: str) -> Tuple[int, int]:
    dt = datetime.strptime(time_str, _FALLBACK_FORMAT).replace(tzinfo=timezone.utc)
    seconds = (dt.replace(microsecond=0) - _EPOCH) // timedelta(seconds=1)
    return seconds, dt.microsecond * 1000


def normalize_timestamp(time_str: str) -> Tuple[int, int]:
    """
    Convert an ISO-8601 timestamp string to an (epoch_seconds, nanos) pair.

    Strict RFC-3339 parsing is tried first; on failure the fixed pattern
    ``YYYY-MM-DDTHH:MM:SS.ffffffZ`` is tried.

    Args:
        time_str: Timestamp as received from the stream

    Returns:
        Tuple of (seconds since the Unix epoch, nanoseconds of the second).
        Nanoseconds are always in [0, 1_000_000_000).

    Raises:
        TimestampParseError: If both parsing strategies fail

    Examples:
        >>> normalize_timestamp("2024-01-01T00:00:00.123456789Z")
        (1704067200, 123456789)
    """
    if not isinstance(time_str, str):
        raise TimestampParseError(f"Failed to parse timestamp {time_str!r}: not a string")

    try:
        return _parse_rfc3339(time_str)
    except ValueError as first_error:
        try:
            return _parse_fallback(time_str)
        except ValueError as e:
            raise TimestampParseError(
                f"Failed to parse timestamp '{time_str}': {first_error}; {e}"
            ) from e


def format_timestamp(seconds: int, nanos: int) -> str:
    """
    Render an epoch/nanosecond pair as an RFC-3339 UTC string.

    Always emits nine fractional digits, so the output normalizes back to
    the same pair.
    """
    if not 0 <= nanos < NANOS_PER_SECOND:
        raise ValueError(f"nanos out of range: {nanos}")

    dt = _EPOCH + timedelta(seconds=seconds)
    return (
        f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}T"
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}.{nanos:09d}Z"
    )
