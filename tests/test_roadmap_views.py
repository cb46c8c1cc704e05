from builders import make_phase, make_project, make_task
from core.models import TaskState
from core.roadmap_views import (
    find_dependency_cycles,
    generate_gantt_definition,
    orphan_tasks,
    phase_progress,
    project_progress,
    tasks_by_phase,
)


def _project():
    phases = [make_phase("p_late", 10, 19, order=1), make_phase("p_early", 0, 9, order=0)]
    tasks = [
        make_task("a", 0, phase_id="p_early", state=TaskState.DONE),
        make_task("b", 1, phase_id="p_early"),
        make_task("c", 2, phase_id="p_early", state=TaskState.SKIPPED),
        make_task("d", 10, phase_id="p_late"),
        make_task("lost", 4, phase_id="p_gone"),
    ]
    return make_project(tasks=tasks, phases=phases)


def test_grouping_follows_phase_order_and_drops_orphans():
    groups = tasks_by_phase(_project())

    assert [p.phase_id for p, _ in groups] == ["p_early", "p_late"]
    assert [t.task_id for t in groups[0][1]] == ["a", "b", "c"]
    assert [t.task_id for t in orphan_tasks(_project())] == ["lost"]


def test_progress_percentages_round_half_up():
    project = _project()
    early = project.phase_index()["p_early"]

    assert phase_progress(early, project.tasks) == 33
    assert phase_progress(project.phase_index()["p_late"], project.tasks) == 0
    assert project_progress(project) == 20
    assert project_progress(make_project()) == 0

    half = make_project(tasks=[make_task("x", 0, state=TaskState.DONE), make_task("y", 0), make_task("z", 0),
                               make_task("w", 0, state=TaskState.DONE), make_task("v", 0, state=TaskState.DONE),
                               make_task("u", 0), make_task("s", 0), make_task("r", 0)])
    assert project_progress(half) == 38


def test_gantt_definition():
    text = generate_gantt_definition(_project())
    lines = text.split("\n")

    assert lines[0] == "gantt"
    assert "    section P Early" in lines
    assert "    Task a :done, 2024-01-01, 1d" in lines
    assert "    Task c :crit, 2024-01-03, 1d" in lines
    assert "    Task b : 2024-01-02, 1d" in lines
    assert "lost" not in text


def test_dependency_cycles_are_reported():
    project = make_project(tasks=[
        make_task("a", 0, depends_on=["b"]),
        make_task("b", 1, depends_on=["a"]),
        make_task("c", 2, depends_on=["missing"]),
    ])

    cycles = find_dependency_cycles(project)

    assert len(cycles) == 1
    assert set(cycles[0]) == {"a", "b"}
    assert find_dependency_cycles(_project()) == []


def test_dependency_cycles_on_a_long_chain():
    count = 1500
    chain = [make_task(f"t{i}", 0, depends_on=[f"t{i + 1}"]) for i in range(count - 1)]
    chain.append(make_task(f"t{count - 1}", 0))

    assert find_dependency_cycles(make_project(tasks=chain)) == []

    looped = chain[:-1] + [make_task(f"t{count - 1}", 0, depends_on=["t0"])]
    cycles = find_dependency_cycles(make_project(tasks=looped))

    assert len(cycles) == 1
    assert len(cycles[0]) == count
