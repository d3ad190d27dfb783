"""
Compact duration expressions ("15m", "7d") → absolute expiry instants.

Anything that does not match ``<integer><unit>`` with unit in s/m/h/d, and a
zero amount or one too large to represent, falls back to 7 days: a malformed
setting never yields a zero or unbounded lifetime.
"""
import re
from datetime import datetime, timedelta, timezone

DEFAULT_DURATION = timedelta(days=7)

_DURATION_RE = re.compile(r"^(\d+)([smhd])$")

_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_duration(expression: str | None) -> timedelta:
    if not expression:
        return DEFAULT_DURATION
    match = _DURATION_RE.match(expression.strip())
    if not match:
        return DEFAULT_DURATION
    value, unit = int(match.group(1)), match.group(2)
    if value == 0:
        return DEFAULT_DURATION
    try:
        return timedelta(**{_UNITS[unit]: value})
    except OverflowError:
        return DEFAULT_DURATION


def calculate_expiry(expression: str | None, now: datetime | None = None) -> datetime:
    """
    Return ``now + parse_duration(expression)``, or ``now`` plus 7 days when
    that instant is past the largest representable datetime.
    """
    now = now or utcnow()
    try:
        return now + parse_duration(expression)
    except OverflowError:
        return now + DEFAULT_DURATION
