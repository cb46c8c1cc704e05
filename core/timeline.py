"""
Day/date arithmetic for Axiom.

A project's native time unit is the day offset from its start date.
Both directions work on local calendar dates (midnight truncation), so
``date_from_day_offset(start, compute_today_number(start, d)) == d``.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

from core.models import Project

DateLike = Union[date, datetime, str]


def parse_date(value: DateLike) -> date:
    """
    Normalize a date-like value to a calendar date.

    Args:
        value: date, datetime (truncated to its local date) or ISO string
               ("2024-01-08" or a full ISO timestamp)

    Raises:
        ValueError: string is not ISO formatted
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) > 10 and "T" in text:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    return date.fromisoformat(text[:10])


def format_date(value: DateLike) -> str:
    """Format as YYYY-MM-DD."""
    return parse_date(value).isoformat()


def now_iso() -> str:
    """Current UTC timestamp in ISO-8601, used for updatedAt/lastUpdated."""
    return datetime.now(timezone.utc).isoformat()


def compute_today_number(start_date: DateLike, reference: Optional[DateLike] = None) -> int:
    """
    Day offset of ``reference`` relative to ``start_date``.

    May be negative (project not started yet) or exceed the time horizon
    (project overrun).

    Example:
        >>> compute_today_number("2024-01-01", "2024-01-08")
        7
    """
    start = parse_date(start_date)
    current = parse_date(reference) if reference is not None else date.today()
    return (current - start).days


def date_from_day_offset(start_date: DateLike, day_number: int) -> date:
    """Calendar date of a day offset (month/year rollover handled by timedelta)."""
    return parse_date(start_date) + timedelta(days=day_number)


def is_actively_paused(project: Project, today: Optional[DateLike] = None) -> bool:
    """
    True while the project is paused and the pause has not run out.

    A pause without ``pause_until`` lasts until an explicit resume.
    """
    if not project.pause.is_paused:
        return False
    if project.pause.pause_until is None:
        return True
    current = parse_date(today) if today is not None else date.today()
    return current <= project.pause.pause_until
