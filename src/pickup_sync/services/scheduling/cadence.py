"""Recurring pickup date generation."""

from __future__ import annotations

from datetime import date, timedelta

from ...models.domain import FREQUENCY_INTERVAL_DAYS, WEEKDAYS

DEFAULT_INTERVAL_DAYS = 7


def parse_weekday(day_of_week: str | None) -> int | None:
    """Return the ``date.weekday()`` index for a day name, case-insensitively."""
    if not day_of_week:
        return None
    try:
        return WEEKDAYS.index(day_of_week.strip().lower())
    except ValueError:
        return None


def interval_for_frequency(frequency: str | None) -> int:
    return FREQUENCY_INTERVAL_DAYS.get((frequency or "").strip().lower(), DEFAULT_INTERVAL_DAYS)


def next_weekday_after(start: date, weekday: int) -> date:
    """First date strictly after ``start`` that falls on ``weekday``."""
    days_ahead = (weekday - start.weekday()) % 7 or 7
    return start + timedelta(days=days_ahead)


def generate_pickup_dates(
    day_of_week: str,
    frequency: str | None = "weekly",
    window_days: int = 28,
    anchor_date: str | date | None = None,
    today: date | None = None,
) -> list[str]:
    """Return the ISO dates in ``(today, today + window_days]`` on which a pickup is due.

    Bi-weekly and monthly cadences are aligned to ``anchor_date`` when one is
    given: the first date is pushed forward until it sits a whole number of
    intervals away from the anchor. An anchor on a different weekday is first
    moved forward to ``day_of_week``.
    """
    weekday = parse_weekday(day_of_week)
    if weekday is None:
        return []

    today = today or date.today()
    end = today + timedelta(days=window_days)
    interval = interval_for_frequency(frequency)

    current = next_weekday_after(today, weekday)

    if interval > 7 and anchor_date:
        anchor = date.fromisoformat(anchor_date) if isinstance(anchor_date, str) else anchor_date
        if anchor.weekday() != weekday:
            anchor = next_weekday_after(anchor, weekday)
        remainder = (current - anchor).days % interval
        if remainder:
            current += timedelta(days=interval - remainder)

    dates: list[str] = []
    while current <= end:
        dates.append(current.isoformat())
        current += timedelta(days=interval)
    return dates


def next_business_day(today: date) -> date:
    """First Monday-to-Friday date strictly after ``today``."""
    candidate = today + timedelta(days=1)
    while candidate.weekday() >= 5:
        candidate += timedelta(days=1)
    return candidate


def build_sync_order_no(property_id: str, scheduled_date: str) -> str:
    """Deterministic router order number for a property's pickup on a date."""
    return f"SYNC-{property_id[:8].upper()}-{scheduled_date.replace('-', '')}"
