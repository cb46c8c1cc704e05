"""
CLI command: axiom
Works on the selected project of the local store.
"""
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

# Add the project root to sys.path so that core/ imports resolve
project_root = Path(__file__).parent.parent
sys.path.append(str(project_root))

from core.app_store import AppStore, get_store
from core.calendar_export import build_ics
from core.exceptions import AxiomError
from core.models import Project, TaskType
from core.roadmap_views import project_progress
from core.task_dispatcher import pick_today_tasks
from core.timeline import compute_today_number, format_date, is_actively_paused


def _open_store() -> AppStore:
    try:
        return get_store()
    except AxiomError as e:
        raise click.ClickException(e.get_user_message())


def _selected(store: AppStore) -> Project:
    project = store.selected_project()
    if project is None:
        raise click.ClickException("No project selected. Use 'axiom projects' and 'axiom select ID'.")
    return project


def _change_task(action: str, task_id: str) -> None:
    store = _open_store()
    project = _selected(store)
    if project.find_task(task_id) is None:
        click.echo(f"Task {task_id} not found in '{project.name}'; nothing changed.")
        return

    if action == "done":
        updated = store.mark_task_done(project.project_id, task_id)
    elif action == "skip":
        updated = store.mark_task_skipped(project.project_id, task_id)
    else:
        updated = store.undo_task_state(project.project_id, task_id)

    task = updated.find_task(task_id)
    click.echo(f"{task.name}: {task.state.value}")
    for impact in task.skill_impact:
        skill = updated.skill_index().get(impact.skill_id)
        if skill is not None:
            click.echo(f"  {skill.name}: {skill.level}/{skill.max_level}")


@click.group()
def axiom():
    """Axiom plan commands"""
    pass


@axiom.command()
def projects():
    """List projects (* marks the selected one)."""
    store = _open_store()
    if not store.projects:
        click.echo("No projects yet.")
        return

    selected = store.state.selected_project_id
    for project in store.projects:
        marker = "*" if project.project_id == selected else " "
        paused = " [paused]" if is_actively_paused(project) else ""
        click.echo(
            f"{marker} {project.project_id}  {project.name}  "
            f"{project_progress(project)}%  {project.status.value}{paused}"
        )


@axiom.command()
@click.argument("project_id")
def select(project_id: str):
    """Select the project the other commands work on."""
    store = _open_store()
    if not store.select_project(project_id):
        raise click.ClickException(f"Project not found: {project_id}")
    click.echo(f"Selected {store.selected_project().name}")


@axiom.command()
@click.option("--day", type=int, default=None, help="Day offset (default: today)")
def today(day: Optional[int]):
    """Show today's tasks."""
    project = _selected(_open_store())
    today_number = day if day is not None else compute_today_number(project.start_date)

    click.echo(f"{project.name} - day {today_number} of {project.time_horizon_days}")
    if is_actively_paused(project):
        until = format_date(project.pause.pause_until) if project.pause.pause_until else "resume"
        click.echo(f"Paused until {until}. {project.pause.reason or ''}".rstrip())

    tasks = pick_today_tasks(project, today_number, project.today_card_rules.max_tasks)
    if not tasks:
        click.echo("Nothing scheduled.")
        return
    for task in tasks:
        click.echo(f"- [{task.type.value}] {task.name} ({task.duration_minutes} min)  {task.task_id}")


@axiom.command()
@click.argument("task_id")
def done(task_id: str):
    """Mark a task done."""
    _change_task("done", task_id)


@axiom.command()
@click.argument("task_id")
def skip(task_id: str):
    """Mark a task skipped."""
    _change_task("skip", task_id)


@axiom.command()
@click.argument("task_id")
def undo(task_id: str):
    """Return a task to todo."""
    _change_task("undo", task_id)


@axiom.command()
@click.argument("days", type=click.IntRange(min=1))
@click.option("--reason", default=None, help="Shown while the project is paused")
def pause(days: int, reason: Optional[str]):
    """Pause the selected project and shift its schedule by DAYS."""
    store = _open_store()
    project = store.pause_project(_selected(store).project_id, days, reason)
    click.echo(f"Paused until {format_date(project.pause.pause_until)}; schedule shifted by {days} days.")


@axiom.command()
def resume():
    """Resume the selected project."""
    store = _open_store()
    project = store.resume_project(_selected(store).project_id)
    click.echo(f"{project.name} resumed.")


@axiom.command("export-ics")
@click.option("--out", "out_path", type=click.Path(dir_okay=False), default=None, help="Output file (default: stdout)")
@click.option(
    "--type", "task_types",
    multiple=True,
    type=click.Choice([t.value for t in TaskType]),
    help="Only export these task types (repeatable)",
)
def export_ics(out_path: Optional[str], task_types: Tuple[str, ...]):
    """Export open tasks of the selected project as iCalendar."""
    project = _selected(_open_store())
    text = build_ics(project, list(task_types) or None)
    if out_path is None:
        click.echo(text)
        return
    Path(out_path).write_text(text, encoding="utf-8", newline="")
    click.echo(f"Wrote {out_path}")


@axiom.command("sync-push")
def sync_push():
    """Push the local state to the sync server."""
    status = _open_store().sync_to_cloud()
    if status.last_sync_error:
        raise click.ClickException(f"Sync failed: {status.last_sync_error}")
    click.echo(f"Synced at {status.last_synced_at}")


@axiom.command("sync-pull")
def sync_pull():
    """Replace the local state with the one stored on the sync server."""
    status = _open_store().sync_from_cloud()
    if status.last_sync_error:
        raise click.ClickException(f"Sync failed: {status.last_sync_error}")
    click.echo(f"Last synced: {status.last_synced_at or 'never'}")


if __name__ == "__main__":
    axiom()
