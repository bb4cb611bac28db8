# precast_pricing/services/temporal_resolution.py
'''
As-of resolution shared by material prices, process parameters and piece prices.

Rule:
1. keep rows whose effective date <= as_of and whose valid_until is NULL or >= as_of
2. pick the greatest effective date; ties go to the most recently created row
3. nothing qualifies -> None (callers decide on a fallback)
4. never mutates the rows
'''
import calendar
from datetime import date, datetime, timedelta
from operator import attrgetter
from typing import Callable, Iterable, Optional, TypeVar

T = TypeVar("T")

_MIN_DATETIME = datetime.min


# ======================================================
# 📅 Month helpers
# ======================================================

def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


def add_months(d: date, months: int) -> date:
    '''Same day `months` later/earlier, clamped to the last day of the target month.'''
    month_index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def previous_month(d: date) -> date:
    """First day of the calendar month before d."""
    return add_months(month_start(d), -1)


def same_day_previous_month(d: date) -> date:
    return add_months(d, -1)


def last_day_of_previous_month(d: date) -> date:
    return month_start(d) - timedelta(days=1)


def to_date(value) -> date:
    '''Accept date / datetime / ISO string, return a date.'''
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise TypeError(f"Cannot convert {value!r} to date")


# ======================================================
# 🔍 Resolution
# ======================================================

def is_applicable(
    row: T,
    as_of: date,
    *,
    effective: Callable[[T], date],
    valid_until: Optional[Callable[[T], Optional[date]]] = None,
) -> bool:
    if effective(row) > as_of:
        return False
    if valid_until is None:
        return True
    until = valid_until(row)
    return until is None or until >= as_of


def resolve_as_of(
    rows: Iterable[T],
    as_of: date,
    *,
    effective: Callable[[T], date] = attrgetter("effective_date"),
    valid_until: Optional[Callable[[T], Optional[date]]] = None,
    created: Callable[[T], Optional[datetime]] = attrgetter("created_at"),
) -> Optional[T]:
    """
    Return the row in force on `as_of`, or None.

    :param rows: candidate rows for a single (subject, zone) key
    :param as_of: date to resolve for
    :param effective: reads the effective / valid_from date of a row
    :param valid_until: reads the inclusive end of validity; None for open-ended ledgers
    :param created: reads the creation timestamp used to break ties
    """
    best = None
    best_key = None
    for row in rows:
        if not is_applicable(row, as_of, effective=effective, valid_until=valid_until):
            continue
        key = (effective(row), _naive(created(row)))
        if best is None or key > best_key:
            best, best_key = row, key
    return best


def _naive(ts: Optional[datetime]) -> datetime:
    # SQLite 读回来是 naive，PostgreSQL 是 aware，统一成 naive 再比较
    if ts is None:
        return _MIN_DATETIME
    return ts.replace(tzinfo=None)
