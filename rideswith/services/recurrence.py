"""
Recurring ride expansion.

Turns a start datetime, a cadence and an end date into the list of ride dates
that make up one recurrence series.
"""
import calendar
from datetime import date, datetime, timedelta
from typing import List, Union

WEEKLY = "WEEKLY"
BIWEEKLY = "BIWEEKLY"
MONTHLY = "MONTHLY"
PATTERNS = (WEEKLY, BIWEEKLY, MONTHLY)

# Hard cap on rows generated by a single request (one year of weekly rides)
MAX_OCCURRENCES = 52

_STEP_DAYS = {WEEKLY: 7, BIWEEKLY: 14}


def _add_months(anchor: datetime, months: int) -> datetime:
    """Same day of month as the anchor, clamped to the target month's last day."""
    month_index = anchor.month - 1 + months
    year = anchor.year + month_index // 12
    month = month_index % 12 + 1
    day = min(anchor.day, calendar.monthrange(year, month)[1])
    return anchor.replace(year=year, month=month, day=day)


def _end_bound(start: datetime, end: Union[date, datetime]) -> datetime:
    # A bare date includes every ride on that day
    if isinstance(end, datetime):
        return end
    return datetime.combine(end, datetime.max.time()).replace(tzinfo=start.tzinfo)


def expand_recurrence(
    start: datetime,
    pattern: str,
    end: Union[date, datetime],
    max_occurrences: int = MAX_OCCURRENCES,
) -> List[datetime]:
    """
    Return the dates of every ride in the series, starting with ``start`` itself.

    Dates never go past ``end`` and the list never holds more than
    ``max_occurrences`` entries. Monthly series keep the start's day of month,
    falling back to the last day in shorter months without drifting.
    """
    pattern = (pattern or "").upper()
    if pattern not in PATTERNS:
        raise ValueError(f"Unknown recurrence pattern: {pattern!r}")

    bound = _end_bound(start, end)
    if bound < start:
        raise ValueError("Recurrence end date must be on or after the first ride")

    occurrences: List[datetime] = []
    index = 0
    while len(occurrences) < max_occurrences:
        if pattern == MONTHLY:
            current = _add_months(start, index)
        else:
            current = start + timedelta(days=_STEP_DAYS[pattern] * index)
        if current > bound:
            break
        occurrences.append(current)
        index += 1

    return occurrences
