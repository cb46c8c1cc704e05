"""
Stateless plan generation routes.

Each route calls the plan generation model, reconciles the raw payload
into a Project and returns it; nothing is persisted here.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from core.logger import get_logger
from core.models import CreatePlanInput, GenerateMonthInput, UpdatePlanInput
from core.plan_generator import PlanGenerationService
from core.plan_reconciler import (
    ReconcileResult,
    merge_generated_tasks,
    next_generation_window,
    reconcile_created_plan,
    reconcile_master_plan,
    reconcile_updated_plan,
)

router = APIRouter()
logger = get_logger("routers.plan")


def get_plan_service() -> PlanGenerationService:
    return PlanGenerationService()


def _parse(model, payload: Dict[str, Any]):
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise HTTPException(status_code=400, detail=f"Missing or invalid fields: {', '.join(fields)}")


def failure_response(error: str, details: Optional[List[Dict[str, str]]] = None) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=500, content=content)


def rejected_plan_response(result: ReconcileResult, error: str) -> JSONResponse:
    issue = result.first_issue
    if issue is not None:
        error = f"{error} ({issue.path}: {issue.message})"
    return failure_response(error, [i.to_dict() for i in result.issues])


@router.post("/create")
async def create_plan(payload: Dict[str, Any] = Body(...)):
    request = _parse(CreatePlanInput, payload)

    result = await run_in_threadpool(get_plan_service().create_plan, request)
    if not result.success:
        return failure_response(result.error or "Plan generation failed")

    reconciled = reconcile_created_plan(result.data, request)
    if not reconciled.success:
        return rejected_plan_response(reconciled, "Generated plan did not match schema")

    project = reconciled.project
    return {"success": True, "project": project.to_dict(), "assumptions": project.assumptions}


@router.post("/create-master")
async def create_master_plan(payload: Dict[str, Any] = Body(...)):
    request = _parse(CreatePlanInput, payload)

    result = await run_in_threadpool(get_plan_service().create_master_plan, request)
    if not result.success:
        return failure_response(result.error or "Master plan generation failed")

    reconciled = reconcile_master_plan(result.data, request)
    if not reconciled.success:
        return rejected_plan_response(reconciled, "Master plan did not match schema")

    return {"success": True, "project": reconciled.project.to_dict(), "needsTaskGeneration": True}


@router.post("/generate-month")
async def generate_month(payload: Dict[str, Any] = Body(...)):
    request = _parse(GenerateMonthInput, payload)
    project = request.project

    if project.master_plan is None:
        raise HTTPException(status_code=400, detail="Project has no master plan")

    start_day, end_day = next_generation_window(project, request.days_to_generate)
    if start_day > end_day:
        raise HTTPException(status_code=400, detail="All days of the plan are already generated")

    result = await run_in_threadpool(get_plan_service().generate_month_tasks, project, start_day, end_day)
    if not result.success:
        return failure_response(result.error or "Task generation failed")

    merged = merge_generated_tasks(project, result.data, start_day, end_day, request.month_number)
    if not merged.success:
        return rejected_plan_response(merged, "Generated tasks did not match schema")

    updated = merged.project
    new_tasks = updated.tasks[len(project.tasks):]
    logger.info("Generated %d tasks for days %d-%d", len(new_tasks), start_day, end_day)
    return {
        "success": True,
        "project": updated.to_dict(),
        "tasks": [t.to_dict() for t in new_tasks],
        "generatedUntilDay": updated.generated_until_day,
        "contextSummary": updated.last_generated_context,
    }


@router.post("/update")
async def update_plan(payload: Dict[str, Any] = Body(...)):
    request = _parse(UpdatePlanInput, payload)

    result = await run_in_threadpool(get_plan_service().update_plan, request)
    if not result.success:
        return failure_response(result.error or "Plan update failed")

    reconciled = reconcile_updated_plan(result.data, request.current_project)
    if not reconciled.success:
        return rejected_plan_response(reconciled, "Updated plan did not match schema")

    return {"success": True, "project": reconciled.project.to_dict()}
