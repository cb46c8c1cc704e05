"""
Pause/Resume Scheduler for Axiom.

Pausing commits a forward shift of the whole timeline at pause time:
every task schedule, every phase window and the time horizon move by the
requested number of days. Resuming only clears the pause flag; the shift
is never rewound, even when the user comes back early.

Identifiers are never touched, only day offsets.
"""
from datetime import date, timedelta
from typing import Optional

from core.logger import get_logger
from core.models import Pause, Project, ProjectStatus, TaskSchedule
from core.timeline import DateLike, now_iso, parse_date

logger = get_logger("pause_scheduler")


def _shift_schedule(schedule: TaskSchedule, days: int) -> TaskSchedule:
    earliest = schedule.earliest_day + days if schedule.earliest_day is not None else None
    return schedule.model_copy(update={
        "earliest_day": earliest,
        "latest_day": schedule.latest_day + days,
        "recommended_day": schedule.recommended_day + days,
    })


def pause_project(
    project: Project,
    days: int,
    reason: Optional[str] = None,
    today: Optional[DateLike] = None,
    now: Optional[str] = None,
) -> Project:
    """
    Pause a project for ``days`` days and rebase its timeline.

    All tasks are shifted, including done and skipped ones: the shift is a
    calendar-wide rebase, not a reschedule of open work.

    Args:
        project: project to pause
        days: pause length, >= 1
        reason: free-text reason shown in the pause banner
        today: reference date for pause_until (default: local today)
        now: timestamp for updatedAt

    Raises:
        ValueError: days < 1
    """
    if days < 1:
        raise ValueError(f"Pause length must be at least 1 day, got {days}")

    start = parse_date(today) if today is not None else date.today()
    pause_until = start + timedelta(days=days)

    tasks = [
        t.model_copy(update={"schedule": _shift_schedule(t.schedule, days)})
        for t in project.tasks
    ]
    phases = [
        p.model_copy(update={"start_day": p.start_day + days, "end_day": p.end_day + days})
        for p in project.roadmap.phases
    ]

    logger.info("Project %s paused for %d days (until %s)", project.project_id, days, pause_until)
    return project.model_copy(update={
        "status": ProjectStatus.PAUSED,
        "pause": Pause(is_paused=True, pause_until=pause_until, reason=reason),
        "tasks": tasks,
        "roadmap": project.roadmap.model_copy(update={"phases": phases}),
        "time_horizon_days": project.time_horizon_days + days,
        "updated_at": now or now_iso(),
    })


def resume_project(project: Project, now: Optional[str] = None) -> Project:
    """Mark the project active again without rewinding the shifted schedule."""
    logger.info("Project %s resumed", project.project_id)
    return project.model_copy(update={
        "status": ProjectStatus.ACTIVE,
        "pause": Pause(is_paused=False),
        "updated_at": now or now_iso(),
    })
