from datetime import date

import pytest

from builders import make_phase, make_project, make_task
from core.models import ProjectStatus, TaskState
from scheduler.pause_scheduler import pause_project, resume_project


def _project():
    return make_project(
        tasks=[
            make_task("open", 3, earliest_day=1),
            make_task("finished", 1, state=TaskState.DONE),
        ],
        phases=[make_phase("phase_1", 0, 9), make_phase("phase_2", 10, 19, order=1)],
        horizon=20,
    )


def test_pause_shifts_whole_timeline():
    paused = pause_project(_project(), 5, reason="travel", today=date(2024, 1, 3))

    open_task = paused.find_task("open")
    assert open_task.schedule.recommended_day == 8
    assert open_task.schedule.latest_day == 15
    assert open_task.schedule.earliest_day == 6
    assert paused.find_task("finished").schedule.recommended_day == 6
    assert [(p.start_day, p.end_day) for p in paused.roadmap.phases] == [(5, 14), (15, 24)]
    assert paused.time_horizon_days == 25


def test_pause_sets_banner_state_and_keeps_ids():
    project = _project()
    paused = pause_project(project, 5, reason="travel", today=date(2024, 1, 3))

    assert paused.status == ProjectStatus.PAUSED
    assert paused.pause.is_paused
    assert paused.pause.pause_until == date(2024, 1, 8)
    assert paused.pause.reason == "travel"
    assert [t.task_id for t in paused.tasks] == [t.task_id for t in project.tasks]
    assert [p.phase_id for p in paused.roadmap.phases] == ["phase_1", "phase_2"]
    assert project.find_task("open").schedule.recommended_day == 3


def test_pause_requires_positive_days():
    with pytest.raises(ValueError):
        pause_project(_project(), 0)


def test_resume_does_not_rewind():
    paused = pause_project(_project(), 4, today=date(2024, 1, 3))

    resumed = resume_project(paused)

    assert resumed.status == ProjectStatus.ACTIVE
    assert not resumed.pause.is_paused
    assert resumed.pause.pause_until is None
    assert resumed.find_task("open").schedule.recommended_day == 7
    assert resumed.time_horizon_days == 24
