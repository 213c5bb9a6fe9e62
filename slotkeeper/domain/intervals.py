"""
Time-of-day interval arithmetic.

Periods are same-day ``HH:MM`` wall-clock ranges. Every comparison is done on
a fixed reference date so that buffering a period near midnight never rolls
over into a different calendar day. Cross-midnight periods and cross-midnight
buffering are not supported.
"""

import re

import pendulum
from pendulum import DateTime

REFERENCE_DATE = pendulum.date(2024, 1, 1)

_TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


def is_valid_time(value: object) -> bool:
    """Return True if ``value`` is an ``H:MM`` or ``HH:MM`` string."""
    return isinstance(value, str) and _TIME_PATTERN.match(value) is not None


def normalize_time(value: str) -> str:
    """
    Normalize a time string to zero-padded ``HH:MM``.

    ``"9:00"`` becomes ``"09:00"`` and ``"09:00:00"`` becomes ``"09:00"``.
    """
    hours, _, rest = value.strip().partition(":")
    minutes = rest[:2]
    return f"{int(hours):02d}:{int(minutes):02d}"


def to_minutes(value: str) -> int:
    """Minutes elapsed since midnight for an ``HH:MM`` string."""
    hours, minutes = normalize_time(value).split(":")
    return int(hours) * 60 + int(minutes)


def at_reference(value: str) -> DateTime:
    """Anchor a time-of-day on the reference date."""
    hours, minutes = normalize_time(value).split(":")
    return pendulum.datetime(
        REFERENCE_DATE.year,
        REFERENCE_DATE.month,
        REFERENCE_DATE.day,
        int(hours),
        int(minutes),
    )


def duration_minutes(start: str, end: str) -> int:
    """Length of ``[start, end)`` in minutes (negative if reversed)."""
    return to_minutes(end) - to_minutes(start)


def overlaps(start1: str, end1: str, start2: str, end2: str) -> bool:
    """Half-open overlap test; touching intervals do not overlap."""
    start1, end1 = normalize_time(start1), normalize_time(end1)
    start2, end2 = normalize_time(start2), normalize_time(end2)
    return start1 < end2 and end1 > start2


def buffered_overlaps(
    start1: str,
    end1: str,
    start2: str,
    end2: str,
    buffer_minutes: int = 0,
) -> bool:
    """
    Overlap test with a tolerance applied around the first interval only.

    The first interval is widened by ``buffer_minutes`` on both ends before
    the plain half-open test. The second interval is left untouched.
    """
    if buffer_minutes <= 0:
        return overlaps(start1, end1, start2, end2)

    widened_start = at_reference(start1).subtract(minutes=buffer_minutes)
    widened_end = at_reference(end1).add(minutes=buffer_minutes)

    return widened_start < at_reference(end2) and widened_end > at_reference(start2)
