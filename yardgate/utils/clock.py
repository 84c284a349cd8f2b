# yardgate/utils/clock.py
"""Naive-UTC time helpers. All timestamps in the database are naive UTC."""

from datetime import datetime, time, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def day_start(moment: datetime) -> datetime:
    """Midnight (UTC) of the day `moment` falls on."""
    return datetime.combine(moment.date(), time.min)


def to_naive_utc(moment: datetime) -> datetime:
    """Reader clocks may send offsets; store everything as naive UTC."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)
