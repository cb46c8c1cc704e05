"""
Plan Reconciler for Axiom.

Turns a loosely structured plan payload from the plan generation service
into a valid Project. Two composable stages:

1. ``apply_plan_defaults``: fill missing ids and fields conservatively
   (pure, idempotent, never mutates its input)
2. ``validate_project``: check the assembled data against the Project
   schema, reporting (field path, message) issues

Reconciliation either yields a whole valid project or nothing: a failing
payload is never partially applied.
"""
import copy
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from core.config_manager import config
from core.logger import get_logger
from core.models import CreatedFrom, CreatePlanInput, Project
from core.roadmap_views import find_dependency_cycles
from core.timeline import now_iso

logger = get_logger("plan_reconciler")

# Taken from the local project on update, whatever the payload says
IDENTITY_FIELDS = ("projectId", "createdAt", "startDate", "timeHorizonDays", "createdFrom")

# Kept from the local project on update when the payload leaves them out
CARRY_OVER_FIELDS = (
    "name",
    "oneLineIntent",
    "definitionOfDone",
    "progress",
    "assumptions",
    "syncedAt",
    "masterPlan",
    "generatedUntilDay",
    "lastGeneratedContext",
)


@dataclass
class ValidationIssue:
    """One schema failure, e.g. path="tasks.2.schedule.latestDay"."""
    path: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"path": self.path, "message": self.message}


@dataclass
class ReconcileResult:
    project: Optional[Project] = None
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.project is not None and not self.issues

    @property
    def first_issue(self) -> Optional[ValidationIssue]:
        return self.issues[0] if self.issues else None


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _missing(data: Dict[str, Any], key: str) -> bool:
    return data.get(key) is None


def _list_at(data: Dict[str, Any], key: str) -> List[Any]:
    value = data.get(key)
    if not isinstance(value, list):
        value = []
        data[key] = value
    return value


def _dict_at(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if not isinstance(value, dict):
        value = {}
        data[key] = value
    return value


# --- Stage 1: defaults ---

def _default_phase(phase: Dict[str, Any], index: int) -> None:
    if _missing(phase, "phaseId"):
        phase["phaseId"] = new_id("phase")
    if _missing(phase, "order"):
        phase["order"] = index
    phase.setdefault("intent", "")
    for milestone in _list_at(phase, "milestones"):
        if not isinstance(milestone, dict):
            continue
        if _missing(milestone, "milestoneId"):
            milestone["milestoneId"] = new_id("milestone")
        if _missing(milestone, "completionRule"):
            milestone["completionRule"] = ""


def _default_schedule(task: Dict[str, Any], position: int) -> None:
    schedule = task.get("schedule")
    if not isinstance(schedule, dict):
        schedule = {}
        task["schedule"] = schedule
    if _missing(schedule, "recommendedDay"):
        schedule["recommendedDay"] = position
    if _missing(schedule, "latestDay") and isinstance(schedule["recommendedDay"], (int, float)):
        schedule["latestDay"] = schedule["recommendedDay"] + config.DEFAULT_LATEST_DAY_SLACK


def _default_task(task: Dict[str, Any], position: int, fallback_phase_id: Optional[str], timestamp: str) -> None:
    if _missing(task, "taskId"):
        task["taskId"] = new_id("task")
    if _missing(task, "phaseId") and fallback_phase_id:
        task["phaseId"] = fallback_phase_id
    if _missing(task, "state"):
        task["state"] = "todo"
    if _missing(task, "lastUpdated"):
        task["lastUpdated"] = timestamp
    if not isinstance(task.get("details"), dict):
        task["details"] = {"steps": [], "definitionOfDone": ""}
    _default_schedule(task, position)
    _list_at(task, "skillImpact")
    _list_at(task, "dependsOnTaskIds")


def _default_skill(skill: Dict[str, Any]) -> None:
    if _missing(skill, "skillId"):
        skill["skillId"] = new_id("skill")
    if _missing(skill, "level"):
        skill["level"] = 0
    if _missing(skill, "maxLevel"):
        skill["maxLevel"] = config.DEFAULT_MAX_SKILL_LEVEL
    _list_at(skill, "parents")
    if _missing(skill, "description"):
        skill["description"] = ""
    if _missing(skill, "progressRule"):
        skill["progressRule"] = ""
    level, max_level = skill["level"], skill["maxLevel"]
    if isinstance(level, (int, float)) and isinstance(max_level, (int, float)) and level > max_level:
        skill["level"] = max_level


def _default_today_card_rules(data: Dict[str, Any]) -> None:
    rules = data.get("todayCardRules")
    if not isinstance(rules, dict):
        data["todayCardRules"] = {"maxTasks": config.TODAY_MAX_TASKS, "selectionLogic": []}
        return
    if _missing(rules, "maxTasks"):
        rules["maxTasks"] = rules.pop("maxTasksPerDay", None) or config.TODAY_MAX_TASKS
    rules.pop("maxTasksPerDay", None)
    logic = rules.get("selectionLogic")
    if isinstance(logic, str):
        rules["selectionLogic"] = [logic]
    elif logic is None:
        rules["selectionLogic"] = []


def _default_history(data: Dict[str, Any]) -> None:
    progress = _dict_at(data, "progress")
    for entry in _list_at(progress, "history"):
        if not isinstance(entry, dict):
            continue
        _list_at(entry, "completedTaskIds")
        _list_at(entry, "skippedTaskIds")
        if _missing(entry, "autoReplanSummary"):
            entry["autoReplanSummary"] = ""


def apply_plan_defaults(
    raw: Dict[str, Any],
    *,
    day_offset: int = 0,
    fallback_phase_id: Optional[str] = None,
    now: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Fill the gaps of a raw plan payload.

    Args:
        raw: camelCase plan dict (not modified)
        day_offset: first day of the batch; a task without a schedule gets
            recommendedDay = day_offset + its position in the batch
        fallback_phase_id: phase for tasks without one (default: first phase)
        now: timestamp for missing lastUpdated

    Returns:
        A new dict; running it again on its own output changes nothing.
    """
    data: Dict[str, Any] = copy.deepcopy(raw) if isinstance(raw, dict) else {}
    timestamp = now or now_iso()

    phases = _list_at(_dict_at(data, "roadmap"), "phases")
    for index, phase in enumerate(phases):
        if isinstance(phase, dict):
            _default_phase(phase, index)

    if fallback_phase_id is None and phases and isinstance(phases[0], dict):
        fallback_phase_id = phases[0]["phaseId"]

    for position, task in enumerate(_list_at(data, "tasks")):
        if isinstance(task, dict):
            _default_task(task, day_offset + position, fallback_phase_id, timestamp)

    for skill in _list_at(_dict_at(data, "skillTree"), "skills"):
        if isinstance(skill, dict):
            _default_skill(skill)

    _default_today_card_rules(data)
    _default_history(data)
    return data


# --- Stage 2: validation ---

def _format_loc(loc: Tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc) or "(root)"


def validate_project(data: Any) -> Tuple[Optional[Project], List[ValidationIssue]]:
    """
    Validate assembled plan data against the Project schema.

    Returns:
        (project, []) on success, (None, issues) on failure
    """
    try:
        return Project.model_validate(data), []
    except ValidationError as exc:
        issues = [ValidationIssue(_format_loc(err["loc"]), err["msg"]) for err in exc.errors()]
        return None, issues


def _finish(data: Dict[str, Any], context: str) -> ReconcileResult:
    project, issues = validate_project(data)
    if issues:
        logger.warning("%s plan rejected with %d schema issue(s)", context, len(issues))
        for issue in issues:
            logger.warning("  %s: %s", issue.path, issue.message)
        return ReconcileResult(issues=issues)

    for cycle in find_dependency_cycles(project):
        logger.warning("%s plan has a dependency cycle: %s", context, " -> ".join(cycle))
    return ReconcileResult(project=project)


# --- Reconciliation ---

def extract_plan_payload(raw: Any) -> Tuple[Dict[str, Any], List[Any]]:
    """
    Unwrap a ``{"project": {...}, "assumptions": [...]}`` envelope.

    Returns:
        (project dict, assumptions); a bare project dict is returned as-is
    """
    if not isinstance(raw, dict):
        return {}, []
    assumptions = raw.get("assumptions")
    payload = raw["project"] if isinstance(raw.get("project"), dict) else raw
    if assumptions is None:
        assumptions = payload.get("assumptions")
    return payload, assumptions if isinstance(assumptions, list) else []


def _created_from(request: CreatePlanInput) -> Dict[str, Any]:
    return CreatedFrom(
        raw_input=request.user_text,
        constraints=request.constraints or "",
        training_profile=request.training_profile,
    ).to_dict()


def _new_project_identity(request: CreatePlanInput, timestamp: str) -> Dict[str, Any]:
    return {
        "projectId": str(uuid.uuid4()),
        "createdAt": timestamp,
        "updatedAt": timestamp,
        "startDate": request.start_date.isoformat(),
        "timeHorizonDays": request.time_horizon_days,
        "status": "active",
        "pause": {"isPaused": False},
        "createdFrom": _created_from(request),
        "progress": {"history": []},
    }


def reconcile_created_plan(raw: Any, request: CreatePlanInput, now: Optional[str] = None) -> ReconcileResult:
    """Build a new project from a freshly generated plan."""
    timestamp = now or now_iso()
    payload, assumptions = extract_plan_payload(raw)

    data = apply_plan_defaults(payload, now=timestamp)
    data.update(_new_project_identity(request, timestamp))
    data["assumptions"] = assumptions
    return _finish(data, "Created")


def reconcile_updated_plan(raw: Any, existing: Project, now: Optional[str] = None) -> ReconcileResult:
    """
    Merge a replanned payload into the local project.

    Identity fields always come from ``existing``. status/pause come from
    the payload when present, else from ``existing``.
    """
    timestamp = now or now_iso()
    payload, assumptions = extract_plan_payload(raw)
    current = existing.to_dict()

    merged = dict(payload)
    if assumptions and _missing(merged, "assumptions"):
        merged["assumptions"] = assumptions
    for key in CARRY_OVER_FIELDS:
        if _missing(merged, key) and key in current:
            merged[key] = current[key]

    data = apply_plan_defaults(merged, now=timestamp)
    for key in IDENTITY_FIELDS:
        data[key] = current[key]
    data["updatedAt"] = timestamp
    if _missing(payload, "status"):
        data["status"] = current.get("status", "active")
    if _missing(payload, "pause"):
        data["pause"] = current.get("pause", {"isPaused": False})
    return _finish(data, "Updated")


# --- Progressive generation ---

def reconcile_master_plan(raw: Any, request: CreatePlanInput, now: Optional[str] = None) -> ReconcileResult:
    """
    Build a long-horizon project from a master plan: roadmap, skills and
    template, but no tasks yet. Tasks arrive later in monthly batches.
    """
    timestamp = now or now_iso()
    payload, assumptions = extract_plan_payload(raw)

    body = {
        "name": payload.get("name") or "New Project",
        "oneLineIntent": payload.get("oneLineIntent") or "",
        "definitionOfDone": payload.get("definitionOfDone") or "",
        "roadmap": payload.get("roadmap"),
        "skillTree": payload.get("skillTree"),
        "todayCardRules": payload.get("todayCardRules"),
        "masterPlan": payload.get("masterPlan"),
        "tasks": [],
    }
    data = apply_plan_defaults({k: v for k, v in body.items() if v is not None}, now=timestamp)
    data.update(_new_project_identity(request, timestamp))
    data["assumptions"] = assumptions
    data["generatedUntilDay"] = 0
    data["lastGeneratedContext"] = ""
    return _finish(data, "Master")


def next_generation_window(project: Project, days: Optional[int] = None) -> Tuple[int, int]:
    """
    Day range of the next task batch.

    Returns:
        (start_day, end_day); start_day > end_day once the horizon is covered
    """
    window = days or config.GENERATION_WINDOW_DAYS
    start = (project.generated_until_day or 0) + 1
    end = min(start + window - 1, project.time_horizon_days)
    return start, end


def merge_generated_tasks(
    project: Project,
    raw: Any,
    start_day: int,
    end_day: int,
    month_number: int,
    focus: Optional[str] = None,
    now: Optional[str] = None,
) -> ReconcileResult:
    """
    Append a generated batch of tasks and advance the generation cursor.

    New tasks always start as todo. Ids that collide with existing tasks
    are replaced with fresh ones.
    """
    timestamp = now or now_iso()
    if isinstance(raw, list):
        raw_tasks = raw
    elif isinstance(raw, dict) and isinstance(raw.get("tasks"), list):
        raw_tasks = raw["tasks"]
    else:
        raw_tasks = []

    fallback_phase_id = project.roadmap.phases[0].phase_id if project.roadmap.phases else "phase_1"
    batch = apply_plan_defaults(
        {"tasks": raw_tasks},
        day_offset=start_day,
        fallback_phase_id=fallback_phase_id,
        now=timestamp,
    )["tasks"]

    taken = set(project.task_index())
    for task in batch:
        if not isinstance(task, dict):
            continue
        if task["taskId"] in taken:
            replacement = new_id("task")
            logger.info("Generated task id %s already in use, renamed to %s", task["taskId"], replacement)
            task["taskId"] = replacement
        taken.add(task["taskId"])
        task["state"] = "todo"
        task["lastUpdated"] = timestamp

    if focus is None and project.master_plan is not None:
        phase = project.master_plan.phase_for_day(start_day)
        focus = phase.focus if phase is not None else None

    data = project.to_dict()
    data["tasks"] = data.get("tasks", []) + batch
    data["generatedUntilDay"] = end_day
    data["lastGeneratedContext"] = (
        f"Month {month_number + 1}: {len(batch)} tasks for days {start_day}-{end_day}. "
        f"Focus: {focus or 'Training'}."
    )
    data["updatedAt"] = timestamp
    return _finish(data, "Monthly")
