"""
Routes over the local application store: project management, today's
card, task transitions, pause/resume, check-in replans and exports.
"""
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from pydantic import Field, ValidationError

from core.app_store import AppStore, get_store
from core.calendar_export import build_ics
from core.logger import get_logger
from core.models import AxiomModel, CalendarDate, DailyCheck, Project, TaskType, UpdatePlanInput
from core.plan_reconciler import reconcile_updated_plan
from core.roadmap_views import generate_gantt_definition, orphan_tasks, phase_progress, project_progress
from core.state_engine import add_daily_history, check_in_entry
from core.task_dispatcher import pick_today_tasks
from core.timeline import compute_today_number, is_actively_paused
from web.backend.routers.plan import failure_response, get_plan_service, rejected_plan_response

router = APIRouter()
logger = get_logger("routers.projects")


class PauseRequest(AxiomModel):
    days: int = Field(ge=1)
    reason: Optional[str] = None


class CheckInRequest(AxiomModel):
    date: Optional[CalendarDate] = None
    completed_task_ids: List[str] = Field(default_factory=list)
    skipped_task_ids: List[str] = Field(default_factory=list)
    zero_day: Optional[bool] = None
    notes: Optional[str] = None
    adjustment_text: Optional[str] = None


def _require_project(store: AppStore, project_id: str) -> Project:
    project = store.get_project(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail=f"Project not found: {project_id}")
    return project


def _project_payload(project: Optional[Project], project_id: str) -> Dict[str, Any]:
    if project is None:
        raise HTTPException(status_code=404, detail=f"Project not found: {project_id}")
    return {"project": project.to_dict()}


def _summary(project: Project, selected_id: Optional[str]) -> Dict[str, Any]:
    return {
        "projectId": project.project_id,
        "name": project.name,
        "oneLineIntent": project.one_line_intent,
        "status": project.status.value,
        "startDate": project.start_date.isoformat(),
        "timeHorizonDays": project.time_horizon_days,
        "progress": project_progress(project),
        "isPaused": is_actively_paused(project),
        "selected": project.project_id == selected_id,
    }


# --- Project management ---

@router.get("/projects")
async def list_projects():
    store = get_store()
    selected = store.state.selected_project_id
    return {
        "selectedProjectId": selected,
        "projects": [_summary(p, selected) for p in store.projects],
    }


@router.post("/projects")
async def add_project(payload: Dict[str, Any] = Body(...)):
    try:
        project = Project.model_validate(payload.get("project", payload))
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid project: {exc.error_count()} validation error(s)")
    return {"project": get_store().add_project(project).to_dict()}


@router.get("/projects/{project_id}")
async def get_project(project_id: str):
    return {"project": _require_project(get_store(), project_id).to_dict()}


@router.post("/projects/{project_id}/select")
async def select_project(project_id: str):
    if not get_store().select_project(project_id):
        raise HTTPException(status_code=404, detail=f"Project not found: {project_id}")
    return {"selectedProjectId": project_id}


@router.delete("/projects/{project_id}")
async def delete_project(project_id: str):
    store = get_store()
    if not store.delete_project(project_id):
        raise HTTPException(status_code=404, detail=f"Project not found: {project_id}")
    return {"deleted": project_id, "selectedProjectId": store.state.selected_project_id}


@router.post("/projects/{project_id}/duplicate")
async def duplicate_project(project_id: str):
    return _project_payload(get_store().duplicate_project(project_id), project_id)


# --- Today ---

@router.get("/projects/{project_id}/today")
async def get_today(project_id: str, day: Optional[int] = None):
    project = _require_project(get_store(), project_id)
    today_number = day if day is not None else compute_today_number(project.start_date)
    tasks = pick_today_tasks(project, today_number, project.today_card_rules.max_tasks)
    return {
        "projectId": project.project_id,
        "todayNumber": today_number,
        "isPaused": is_actively_paused(project),
        "pause": project.pause.to_dict(),
        "progress": project_progress(project),
        "tasks": [t.to_dict() for t in tasks],
    }


# --- Task transitions ---

@router.post("/projects/{project_id}/tasks/{task_id}/done")
async def mark_task_done(project_id: str, task_id: str):
    return _project_payload(get_store().mark_task_done(project_id, task_id), project_id)


@router.post("/projects/{project_id}/tasks/{task_id}/skip")
async def mark_task_skipped(project_id: str, task_id: str):
    return _project_payload(get_store().mark_task_skipped(project_id, task_id), project_id)


@router.post("/projects/{project_id}/tasks/{task_id}/undo")
async def undo_task(project_id: str, task_id: str):
    return _project_payload(get_store().undo_task_state(project_id, task_id), project_id)


# --- Pause ---

@router.post("/projects/{project_id}/pause")
async def pause_project(project_id: str, request: PauseRequest):
    return _project_payload(get_store().pause_project(project_id, request.days, request.reason), project_id)


@router.post("/projects/{project_id}/resume")
async def resume_project(project_id: str):
    return _project_payload(get_store().resume_project(project_id), project_id)


# --- Check-in ---

@router.post("/projects/{project_id}/check-in")
async def check_in(project_id: str, request: CheckInRequest):
    """
    Record a daily check-in and replan the project.

    The replan result is applied only if the project did not change while
    the model was working; otherwise it is discarded with a 409.
    """
    store = get_store()
    ticket = store.begin_replan(project_id)
    if ticket is None:
        raise HTTPException(status_code=404, detail=f"Project not found: {project_id}")

    check = DailyCheck(
        date=request.date or date.today(),
        completed_task_ids=request.completed_task_ids,
        skipped_task_ids=request.skipped_task_ids,
        zero_day=request.zero_day,
        notes=request.notes,
    )
    update = UpdatePlanInput(
        current_project=ticket.project,
        daily_check=check,
        adjustment_text=request.adjustment_text,
    )

    result = await run_in_threadpool(get_plan_service().update_plan, update)
    if not result.success:
        return failure_response(result.error or "Plan update failed")

    reconciled = reconcile_updated_plan(result.data, ticket.project)
    if not reconciled.success:
        return rejected_plan_response(reconciled, "Updated plan did not match schema")

    replanned = add_daily_history(reconciled.project, check_in_entry(check, reconciled.project))
    if not store.commit_replan(ticket, replanned):
        return JSONResponse(status_code=409, content={
            "success": False,
            "error": "Project changed while the plan was being updated; the update was discarded",
        })
    return {"success": True, "project": replanned.to_dict()}


# --- Views and exports ---

@router.get("/projects/{project_id}/calendar.ics")
async def export_calendar(project_id: str, types: Optional[str] = None):
    project = _require_project(get_store(), project_id)
    task_types = None
    if types:
        task_types = [t.strip() for t in types.split(",") if t.strip()]
        valid = {t.value for t in TaskType}
        unknown = [t for t in task_types if t not in valid]
        if unknown:
            raise HTTPException(status_code=400, detail=f"Unknown task type(s): {', '.join(unknown)}")

    return Response(
        content=build_ics(project, task_types),
        media_type="text/calendar",
        headers={"Content-Disposition": f'attachment; filename="{project.project_id}.ics"'},
    )


@router.get("/projects/{project_id}/gantt")
async def get_gantt(project_id: str):
    project = _require_project(get_store(), project_id)
    return {
        "definition": generate_gantt_definition(project),
        "progress": project_progress(project),
        "phases": [
            {"phaseId": p.phase_id, "name": p.name, "progress": phase_progress(p, project.tasks)}
            for p in project.roadmap.phases
        ],
        "orphanTaskIds": [t.task_id for t in orphan_tasks(project)],
    }


# --- Whole state ---

@router.get("/state/export")
async def export_state():
    return get_store().export_app_state().to_dict()


@router.post("/state/import")
async def import_state(payload: Dict[str, Any] = Body(...)):
    ok, error = get_store().import_app_state(payload)
    if not ok:
        raise HTTPException(status_code=400, detail=f"Invalid app state: {error}")
    return {"success": True}
