import pytest
from click.testing import CliRunner

import cli.axiom_cmd as axiom_cmd
from builders import make_project, make_skill, make_task
from core.app_store import AppStore
from core.exceptions import SyncError
from core.models import TaskState, TaskType


class FailingSyncClient:
    def push(self, user_id, app_state):
        raise SyncError("Sync server returned 502", status_code=502)

    def pull(self, user_id):
        raise SyncError("Sync request failed")


@pytest.fixture
def store(monkeypatch):
    store = AppStore(state_file=None, sync_client=FailingSyncClient())
    store.add_project(make_project(
        tasks=[
            make_task("t1", 0, task_type=TaskType.TRAIN, impacts={"s1": 2}),
            make_task("t2", 1, task_type=TaskType.THINK),
        ],
        skills=[make_skill("s1")],
    ))
    monkeypatch.setattr(axiom_cmd, "get_store", lambda: store)
    return store


def test_projects_lists_selection(store):
    result = CliRunner().invoke(axiom_cmd.axiom, ["projects"])

    assert result.exit_code == 0
    assert "* proj_1  Learn piano  0%  active" in result.output


def test_today_with_explicit_day(store):
    result = CliRunner().invoke(axiom_cmd.axiom, ["today", "--day", "0"])

    assert result.exit_code == 0
    assert "Learn piano - day 0 of 30" in result.output
    assert "[train] Task t1 (30 min)  t1" in result.output


def test_done_and_undo(store):
    runner = CliRunner()

    result = runner.invoke(axiom_cmd.axiom, ["done", "t1"])
    assert result.exit_code == 0
    assert "Task t1: done" in result.output
    assert "S1: 2/10" in result.output

    runner.invoke(axiom_cmd.axiom, ["undo", "t1"])
    assert store.get_project("proj_1").find_task("t1").state == TaskState.TODO


def test_unknown_task_changes_nothing(store):
    result = CliRunner().invoke(axiom_cmd.axiom, ["skip", "nope"])

    assert result.exit_code == 0
    assert "nothing changed" in result.output


def test_pause_validates_days(store):
    runner = CliRunner()

    assert runner.invoke(axiom_cmd.axiom, ["pause", "0"]).exit_code != 0
    result = runner.invoke(axiom_cmd.axiom, ["pause", "2", "--reason", "trip"])

    assert result.exit_code == 0
    assert store.selected_project().pause.reason == "trip"
    assert runner.invoke(axiom_cmd.axiom, ["resume"]).exit_code == 0
    assert not store.selected_project().pause.is_paused


def test_export_ics_to_file(store, tmp_path):
    out = tmp_path / "plan.ics"

    result = CliRunner().invoke(axiom_cmd.axiom, ["export-ics", "--out", str(out), "--type", "think"])

    assert result.exit_code == 0
    text = out.read_text(encoding="utf-8")
    assert text.count("BEGIN:VEVENT") == 1
    assert "UID:t2@axiom" in text


def test_sync_failure_exits_non_zero(store):
    result = CliRunner().invoke(axiom_cmd.axiom, ["sync-push"])

    assert result.exit_code != 0
    assert "Sync server returned 502" in result.output


def test_no_selection(store):
    store.select_project(None)

    result = CliRunner().invoke(axiom_cmd.axiom, ["today"])

    assert result.exit_code != 0
    assert "No project selected" in result.output
