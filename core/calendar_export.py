"""
iCalendar export for Axiom.

One VEVENT per task that is not done, starting at project start +
recommendedDay (floating local time) and lasting durationMinutes.
"""
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from core.models import Project, TaskState, TaskType
from core.timeline import date_from_day_offset

PRODID = "-//Axiom//Axiom//EN"
FOLD_OCTETS = 75


def _fold_line(line: str) -> str:
    """Fold a content line at 75 octets (RFC 5545 3.1) without splitting a UTF-8 sequence."""
    if len(line.encode("utf-8")) <= FOLD_OCTETS:
        return line

    parts: List[str] = []
    current, size, limit = "", 0, FOLD_OCTETS
    for char in line:
        width = len(char.encode("utf-8"))
        if size + width > limit:
            parts.append(current)
            # continuation lines start with a space, which counts toward the limit
            current, size, limit = "", 0, FOLD_OCTETS - 1
        current += char
        size += width
    parts.append(current)
    return "\r\n ".join(parts)


def _escape_text(value: str) -> str:
    """Escape a TEXT value (RFC 5545 3.3.11)."""
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def _format_ics_datetime(value: datetime) -> str:
    return value.strftime("%Y%m%dT%H%M00")


def build_ics(
    project: Project,
    task_types: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Build VCALENDAR text for a project's open tasks.

    Args:
        project: source project
        task_types: only export these task types (e.g. ["train"]); None exports all
        now: DTSTAMP value (default: local now)

    Returns:
        CRLF-joined calendar text
    """
    stamp = _format_ics_datetime(now or datetime.now())
    wanted = {TaskType(t) for t in task_types} if task_types is not None else None

    lines: List[str] = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        f"X-WR-CALNAME:{_escape_text(project.name)}",
    ]

    for task in project.tasks:
        if task.state == TaskState.DONE:
            continue
        if wanted is not None and task.type not in wanted:
            continue

        day = date_from_day_offset(project.start_date, task.schedule.recommended_day)
        start = datetime(day.year, day.month, day.day)
        end = start + timedelta(minutes=task.duration_minutes)
        description = "\\n".join(_escape_text(step) for step in task.details.steps)

        lines.extend([
            "BEGIN:VEVENT",
            f"UID:{task.task_id}@axiom",
            f"DTSTAMP:{stamp}",
            f"DTSTART:{_format_ics_datetime(start)}",
            f"DTEND:{_format_ics_datetime(end)}",
            f"SUMMARY:{_escape_text(f'[{project.name}] {task.name}')}",
            f"DESCRIPTION:{description}",
            "END:VEVENT",
        ])

    lines.append("END:VCALENDAR")
    return "\r\n".join(_fold_line(line) for line in lines)
