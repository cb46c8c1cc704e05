"""
Task Dispatcher for Axiom.
Selects the tasks presented as "today's work" for a project.
"""
from typing import List, Optional, Set, Tuple

from core.config_manager import config
from core.models import Project, Task, TaskState

DUE_BASE_SCORE = 1000
FUTURE_BASE_SCORE = 500


def score_task(task: Task, today_number: int) -> int:
    """
    Proximity score of a task to ``today_number``.

    Due or overdue tasks score 1000 - |dayDiff| (due today = 1000, less
    overdue beats more overdue). Future tasks score 500 - dayDiff, so any
    due task outranks every future one.
    """
    day_diff = task.schedule.recommended_day - today_number
    if day_diff <= 0:
        return DUE_BASE_SCORE - abs(day_diff)
    return FUTURE_BASE_SCORE - day_diff


class TaskDispatcher:
    """Today selector."""

    def __init__(self, max_tasks: Optional[int] = None):
        self.max_tasks = max_tasks if max_tasks is not None else config.TODAY_MAX_TASKS

    @staticmethod
    def available_tasks(project: Project) -> List[Task]:
        """Todo tasks whose dependencies are all done, in source order."""
        done_ids: Set[str] = {t.task_id for t in project.tasks if t.state == TaskState.DONE}
        return [
            t for t in project.tasks
            if t.state == TaskState.TODO
            and all(dep in done_ids for dep in t.depends_on_task_ids)
        ]

    def ranked_tasks(self, project: Project, today_number: int) -> List[Tuple[Task, int]]:
        """Available tasks with scores, best first; ties keep source order."""
        scored = [(t, score_task(t, today_number)) for t in self.available_tasks(project)]
        # list.sort is stable, equal scores stay in source order
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored

    def pick_today_tasks(self, project: Project, today_number: int) -> List[Task]:
        """
        Pick up to ``max_tasks`` tasks for the day.

        Strategy:
        1. Only todo tasks whose dependencies are all done
        2. Rank by proximity score
        3. First pass takes at most one task per type (diversity)
        4. Second pass fills the remaining slots in rank order
        """
        ranked = [task for task, _ in self.ranked_tasks(project, today_number)]

        selected: List[Task] = []
        selected_ids: Set[str] = set()
        used_types = set()

        for task in ranked:
            if len(selected) >= self.max_tasks:
                break
            if task.type not in used_types:
                selected.append(task)
                selected_ids.add(task.task_id)
                used_types.add(task.type)

        for task in ranked:
            if len(selected) >= self.max_tasks:
                break
            if task.task_id not in selected_ids:
                selected.append(task)
                selected_ids.add(task.task_id)

        return selected


def pick_today_tasks(project: Project, today_number: int, max_tasks: Optional[int] = None) -> List[Task]:
    """Module-level shortcut for ``TaskDispatcher(max_tasks).pick_today_tasks``."""
    limit = config.TODAY_MAX_TASKS if max_tasks is None else min(max_tasks, config.TODAY_MAX_TASKS)
    return TaskDispatcher(limit).pick_today_tasks(project, today_number)
