# app/domain/lifecycle.py
from datetime import date, datetime, time, timezone
from enum import Enum
from zoneinfo import ZoneInfo

from app.utils.settings import DEFAULT_SCHEDULED_TIME, FULFILLMENT_TIMEZONE


class CartStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    ABANDONED = "abandoned"


def local_now() -> datetime:
    """Current time in the zone scheduled dates and times are written in."""
    if FULFILLMENT_TIMEZONE.upper() == "UTC":
        return datetime.now(timezone.utc)
    return datetime.now(ZoneInfo(FULFILLMENT_TIMEZONE))


def parse_date(value) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def parse_time(value) -> time | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.time()
    if isinstance(value, time):
        return value
    # "HH:MM" and "HH:MM:SS" both accepted
    return time.fromisoformat(str(value).strip())


def scheduled_at(scheduled_date, scheduled_time=None, tzinfo=None) -> datetime | None:
    day = parse_date(scheduled_date)
    if day is None:
        return None
    at = parse_time(scheduled_time) or parse_time(DEFAULT_SCHEDULED_TIME)
    return datetime.combine(day, at.replace(tzinfo=None), tzinfo=tzinfo)


def effective_status(stored_status, scheduled_date, scheduled_time, now: datetime) -> CartStatus:
    """Derive the status a cart should be shown with.

    ``submitted`` is terminal. Anything else is ``abandoned`` once its
    scheduled moment has passed and ``draft`` otherwise; a cart without a
    scheduled date never lapses.
    """
    if CartStatus(stored_status or CartStatus.DRAFT) == CartStatus.SUBMITTED:
        return CartStatus.SUBMITTED

    when = scheduled_at(scheduled_date, scheduled_time, tzinfo=now.tzinfo)
    if when is None:
        return CartStatus.DRAFT
    return CartStatus.ABANDONED if when < now else CartStatus.DRAFT
