"""
Read-only views over a project's roadmap: phase grouping, progress
percentages, Mermaid Gantt text and dependency cycle detection.

Task -> phase and task -> task references are weak: a dangling id is
filtered out, never an error.
"""
import math
import re
from typing import Dict, List, Tuple

from core.models import Phase, Project, Task, TaskState
from core.timeline import date_from_day_offset, format_date

GANTT_TASKS_PER_PHASE = 10
GANTT_NAME_LENGTH = 30


def _round_percent(part: int, whole: int) -> int:
    if whole == 0:
        return 0
    return int(math.floor(part * 100 / whole + 0.5))


def phases_in_order(project: Project) -> List[Phase]:
    return sorted(project.roadmap.phases, key=lambda p: p.order)


def tasks_by_phase(project: Project) -> List[Tuple[Phase, List[Task]]]:
    """Tasks grouped under their phase, phases in program order. Orphans are left out."""
    grouped: Dict[str, List[Task]] = {p.phase_id: [] for p in project.roadmap.phases}
    for task in project.tasks:
        if task.phase_id in grouped:
            grouped[task.phase_id].append(task)
    return [(phase, grouped[phase.phase_id]) for phase in phases_in_order(project)]


def orphan_tasks(project: Project) -> List[Task]:
    """Tasks whose phase no longer exists."""
    phase_ids = set(project.phase_index())
    return [t for t in project.tasks if t.phase_id not in phase_ids]


def phase_progress(phase: Phase, tasks: List[Task]) -> int:
    """Percentage of the phase's tasks that are done."""
    phase_tasks = [t for t in tasks if t.phase_id == phase.phase_id]
    done = sum(1 for t in phase_tasks if t.state == TaskState.DONE)
    return _round_percent(done, len(phase_tasks))


def project_progress(project: Project) -> int:
    done = sum(1 for t in project.tasks if t.state == TaskState.DONE)
    return _round_percent(done, len(project.tasks))


def generate_gantt_definition(project: Project) -> str:
    """Mermaid gantt chart of the roadmap (first 10 tasks per phase by recommended day)."""
    lines = [
        "gantt",
        f"    title {project.name}",
        "    dateFormat YYYY-MM-DD",
        "    axisFormat %m/%d",
    ]

    for phase, tasks in tasks_by_phase(project):
        lines.append(f"    section {phase.name}")
        ordered = sorted(tasks, key=lambda t: t.schedule.recommended_day)
        for task in ordered[:GANTT_TASKS_PER_PHASE]:
            start = date_from_day_offset(project.start_date, task.schedule.recommended_day)
            duration = max(1, math.ceil(task.duration_minutes / 60 / 8))
            if task.state == TaskState.DONE:
                status = "done,"
            elif task.state == TaskState.SKIPPED:
                status = "crit,"
            else:
                status = ""
            name = re.sub(r"[:\[\]]", "", task.name)[:GANTT_NAME_LENGTH]
            lines.append(f"    {name} :{status} {format_date(start)}, {duration}d")

    return "\n".join(lines)


def find_dependency_cycles(project: Project) -> List[List[str]]:
    """
    Dependency cycles among the project's tasks.

    Each cycle is reported once as the list of task ids along it. Edges to
    unknown task ids are ignored. The walk keeps its own stack, so chain
    length is not bounded by the interpreter's recursion limit.
    """
    index = project.task_index()
    visiting, finished = set(), set()
    cycles: List[List[str]] = []

    for root in index:
        if root in finished:
            continue
        trail = [root]
        visiting.add(root)
        pending = [iter(index[root].depends_on_task_ids)]
        while pending:
            dep = next(pending[-1], None)
            if dep is None:
                pending.pop()
                task_id = trail.pop()
                visiting.discard(task_id)
                finished.add(task_id)
                continue
            if dep not in index or dep in finished:
                continue
            if dep in visiting:
                cycles.append(trail[trail.index(dep):])
                continue
            visiting.add(dep)
            trail.append(dep)
            pending.append(iter(index[dep].depends_on_task_ids))
    return cycles
