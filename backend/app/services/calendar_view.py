# backend/app/services/calendar_view.py
"""Month grid rendering for the calendar view."""

import calendar
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional


def _event_sort_key(event):
    return (0 if event.is_all_day else 1, event.start_date)


def _overlaps(event, start: datetime, end: datetime) -> bool:
    # End is exclusive; a zero-length event belongs to the day it starts on
    event_end = event.end_date or event.start_date
    if event_end == event.start_date:
        return start <= event.start_date < end
    return event.start_date < end and event_end > start


def events_on(day: date, events: Iterable) -> list:
    """Events overlapping a calendar day, all-day first, then by start."""
    day_start = datetime.combine(day, datetime.min.time())
    day_end = day_start + timedelta(days=1)
    matching = [e for e in events if _overlaps(e, day_start, day_end)]
    return sorted(matching, key=_event_sort_key)


def month_grid(
    year: int,
    month: int,
    events: Iterable,
    today: Optional[date] = None,
) -> dict:
    """
    Lay a month out as Sunday-first weeks.

    Leading cells before the 1st and trailing cells after the last day are
    None, so every week has exactly seven cells.
    """
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")

    today = today or date.today()
    events = list(events)
    days_in_month = calendar.monthrange(year, month)[1]
    # date.weekday() is Monday=0; shift so Sunday=0
    first_weekday = (date(year, month, 1).weekday() + 1) % 7

    cells: List[Optional[dict]] = [None] * first_weekday
    for day_number in range(1, days_in_month + 1):
        day = date(year, month, day_number)
        cells.append({
            "date": day,
            "is_today": day == today,
            "events": events_on(day, events),
        })

    while len(cells) % 7:
        cells.append(None)

    return {
        "year": year,
        "month": month,
        "days_in_month": days_in_month,
        "first_weekday": first_weekday,
        "weeks": [cells[i:i + 7] for i in range(0, len(cells), 7)],
    }


def month_bounds(year: int, month: int):
    """[start, end) datetimes covering the month."""
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    return start, end
