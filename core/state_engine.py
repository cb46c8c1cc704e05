"""
Local State Engine for Axiom.

Pure transitions of a project's task states and skill levels, applied
without any model call. Every function returns a new Project (or the
very same object when nothing changes) and never mutates its input.
"""
from typing import Dict, List, Optional, Union

from core.logger import get_logger
from core.models import DailyCheck, DailyHistory, Project, Skill, Task, TaskState
from core.timeline import now_iso

logger = get_logger("state_engine")

LOCAL_TRANSITIONS = (TaskState.DONE, TaskState.SKIPPED)


def _clamp(value: int, upper: int) -> int:
    return max(0, min(value, upper))


def _shift_skills(skills: List[Skill], task: Task, direction: int) -> List[Skill]:
    """
    Apply (direction=1) or reverse (direction=-1) a task's skill impacts.

    Impacts are applied in list order and the level is clamped into
    [0, max_level] after each step. Impacts naming unknown skills are
    ignored.
    """
    if not task.skill_impact:
        return skills

    levels: Dict[str, int] = {s.skill_id: s.level for s in skills}
    max_levels = {s.skill_id: s.max_level for s in skills}
    for impact in task.skill_impact:
        if impact.skill_id not in levels:
            continue
        levels[impact.skill_id] = _clamp(
            levels[impact.skill_id] + direction * impact.delta,
            max_levels[impact.skill_id],
        )

    return [
        s if levels[s.skill_id] == s.level else s.model_copy(update={"level": levels[s.skill_id]})
        for s in skills
    ]


def _replace_task(project: Project, task_id: str, state: TaskState, timestamp: str) -> List[Task]:
    return [
        t.model_copy(update={"state": state, "last_updated": timestamp}) if t.task_id == task_id else t
        for t in project.tasks
    ]


def apply_task_state_change(
    project: Project,
    task_id: str,
    new_state: Union[TaskState, str],
    now: Optional[str] = None,
) -> Project:
    """
    Mark a task done or skipped.

    Completing a task raises every impacted skill by its delta, clamped
    to max_level. Unknown task ids are a silent no-op so that UI retries
    racing a replan stay harmless.

    Guard against double application:
    - re-applying the current state returns the project unchanged
    - done -> skipped first reverses the deltas applied at completion

    Raises:
        ValueError: new_state is not done/skipped
    """
    target = TaskState(new_state)
    if target not in LOCAL_TRANSITIONS:
        raise ValueError(f"Local state change must be done or skipped, got '{target.value}'")

    task = project.find_task(task_id)
    if task is None:
        logger.debug("State change for unknown task %s ignored", task_id)
        return project
    if task.state == target:
        return project

    timestamp = now or now_iso()
    skills = project.skill_tree.skills
    if task.state == TaskState.DONE:
        skills = _shift_skills(skills, task, -1)
    if target == TaskState.DONE:
        skills = _shift_skills(skills, task, 1)

    return project.model_copy(update={
        "tasks": _replace_task(project, task_id, target, timestamp),
        "skill_tree": project.skill_tree.model_copy(update={"skills": skills}),
        "updated_at": timestamp,
    })


def undo_task_state(project: Project, task_id: str, now: Optional[str] = None) -> Project:
    """
    Return a done/skipped task to todo.

    Undoing a completion lowers each impacted skill by the original delta
    (clamped at 0). Skips never touched skills, so undoing one does not
    either. Unknown ids and tasks already in todo are no-ops.
    """
    task = project.find_task(task_id)
    if task is None or task.state == TaskState.TODO:
        return project

    timestamp = now or now_iso()
    skills = project.skill_tree.skills
    if task.state == TaskState.DONE:
        skills = _shift_skills(skills, task, -1)

    return project.model_copy(update={
        "tasks": _replace_task(project, task_id, TaskState.TODO, timestamp),
        "skill_tree": project.skill_tree.model_copy(update={"skills": skills}),
        "updated_at": timestamp,
    })


def check_in_entry(check: DailyCheck, replanned: Project) -> DailyHistory:
    """
    History entry recorded for a check-in, carrying the replan summary the
    model wrote into the replanned project's latest history entry.
    """
    history = replanned.progress.history
    summary = history[-1].auto_replan_summary if history else ""
    return DailyHistory(
        date=check.date,
        completed_task_ids=list(check.completed_task_ids),
        skipped_task_ids=list(check.skipped_task_ids),
        zero_day=check.zero_day,
        notes=check.notes,
        auto_replan_summary=summary or "Updated",
    )


def add_daily_history(project: Project, entry: DailyHistory, now: Optional[str] = None) -> Project:
    """Append a check-in, replacing any earlier entry for the same date."""
    history = [h for h in project.progress.history if h.date != entry.date]
    history.append(entry)
    return project.model_copy(update={
        "progress": project.progress.model_copy(update={"history": history}),
        "updated_at": now or now_iso(),
    })
