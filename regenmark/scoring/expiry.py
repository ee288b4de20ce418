"""Expiry Monitor — pure status reclassification of issued marks."""

from __future__ import annotations

import calendar
import dataclasses
import math
from datetime import datetime, timedelta, timezone

from regenmark.scoring.aggregator import MarkSnapshot
from regenmark.scoring.catalog import MarkStatus

# Statuses the monitor never changes
_FINAL_STATUSES = frozenset({MarkStatus.EXPIRED, MarkStatus.REVOKED})


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite drops tzinfo) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def add_months(start: datetime, months: int) -> datetime:
    """Calendar-month addition, clamping the day (Jan 31 + 1 month → Feb 28/29)."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def classify(expires_at: datetime | None, now: datetime, window: timedelta) -> MarkStatus:
    """Status an unrevoked mark should have at *now*."""
    if expires_at is None:
        return MarkStatus.ACTIVE
    expires_at = as_utc(expires_at)
    now = as_utc(now)
    if now >= expires_at:
        return MarkStatus.EXPIRED
    if expires_at - now <= window:
        return MarkStatus.EXPIRING_SOON
    return MarkStatus.ACTIVE


def reclassify(mark: MarkSnapshot, now: datetime, window: timedelta) -> MarkSnapshot:
    """Return *mark* with the status it should carry at *now*.

    EXPIRED and REVOKED marks are returned unchanged; the transition to
    EXPIRED is one-way even if the clock is moved back.
    """
    if MarkStatus(mark.status) in _FINAL_STATUSES:
        return mark
    status = classify(mark.expires_at, now, window)
    if status == mark.status:
        return mark
    return dataclasses.replace(mark, status=status)


def days_until_expiration(expires_at: datetime | None, now: datetime) -> int | None:
    """Whole days left (negative once expired); ``None`` for open-ended marks."""
    if expires_at is None:
        return None
    seconds = (as_utc(expires_at) - as_utc(now)).total_seconds()
    days = seconds / 86400
    return int(math.floor(days + 0.5))
