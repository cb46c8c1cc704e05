"""
Plan Generation Service client for Axiom.

Builds prompts, calls the configured model and extracts the JSON payload.
The payload is returned raw: turning it into a Project is the job of
core.plan_reconciler, so a malformed plan is never partially applied here.

Failures come back as ``PlanServiceResult(success=False, error=...)``;
the service makes exactly one repair request when the first answer is
not parseable JSON and never retries beyond that.
"""
import json
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.config_manager import config
from core.exceptions import AxiomError
from core.llm_adapter import LLMProvider, get_llm
from core.logger import get_logger
from core.models import CreatePlanInput, Project, UpdatePlanInput
from core.utils import load_prompt, parse_llm_json

logger = get_logger("plan_generator")

LONG_PLAN_DAYS = 180
MASTER_MAX_TOKENS = 8192
MONTH_MAX_TOKENS = 16000
MONTH_TASK_RATIO = 0.7
RECENT_TASKS_IN_PROMPT = 10


@dataclass
class PlanServiceResult:
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class ScalingGuidance:
    phases: str
    tasks: str
    skills: str
    note: Optional[str] = None


def get_scaling_guidance(days: int) -> ScalingGuidance:
    """Phase/task/skill counts to ask for, by time horizon."""
    if days <= 14:
        return ScalingGuidance("2-3", "10-20", "3-6")
    if days <= 30:
        return ScalingGuidance("3-4", "20-40", "4-8")
    if days <= 90:
        return ScalingGuidance("4-6", "40-60", "6-10")
    if days <= LONG_PLAN_DAYS:
        return ScalingGuidance("5-6", "50-80", "8-12")
    return ScalingGuidance(
        "6-8",
        "60-100",
        "8-12",
        note=(
            "Generate WEEKLY recurring task templates, not individual daily tasks. "
            "Each task represents a weekly pattern."
        ),
    )


def get_max_output_tokens(days: int) -> int:
    if days <= 14:
        return 8192
    if days <= 30:
        return 12000
    if days <= 90:
        return 16000
    if days <= LONG_PLAN_DAYS:
        return 20000
    return 32000


def truncate_user_text(text: str, days: int) -> str:
    """Cap the goal text sent to the model (longer allowance for long horizons)."""
    limit = config.MAX_USER_TEXT_LONG if days > LONG_PLAN_DAYS else config.MAX_USER_TEXT
    if len(text) <= limit:
        return text
    return text[:limit] + "... (truncated)"


def _training_section(request: CreatePlanInput) -> str:
    profile = request.training_profile
    if profile is None:
        return ""
    return (
        "\nTRAINING PROFILE:\n"
        f"- Current Level: {profile.current_level or 'Not specified'}\n"
        f"- Constraints: {profile.constraints or 'None'}\n"
        f"- Preferences: {profile.preferences or 'None'}\n"
        f"- Available Metrics: {profile.available_metrics or 'RPE only'}\n"
    )


def _long_plan_note(guidance: ScalingGuidance) -> str:
    if not guidance.note:
        return ""
    return (
        "\nIMPORTANT FOR LONG PLANS:\n"
        f"{guidance.note}\n"
        "Instead of individual daily tasks, create WEEKLY TRAINING BLOCKS like:\n"
        '- "Week 1: Base Building" (recommendedDay: 1)\n'
        '- "Week 2: Volume Increase" (recommendedDay: 8)\n'
    )


class PlanGenerationService:
    """Stateless client of the plan generation model."""

    def __init__(self, llm: Optional[LLMProvider] = None):
        self._llm = llm

    @property
    def llm(self) -> LLMProvider:
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    def _request_json(self, prompt: str, max_tokens: int, schema: str) -> PlanServiceResult:
        """One model call plus at most one repair call."""
        system_prompt = load_prompt("system")
        try:
            response = self.llm.generate(
                prompt,
                system_prompt=system_prompt,
                temperature=config.LLM_TEMPERATURE,
                max_tokens=max_tokens,
            )
            if not response.success:
                return PlanServiceResult(False, error=response.error)

            parsed = parse_llm_json(response.content)
            if parsed is not None:
                return PlanServiceResult(True, data=parsed)

            logger.warning("Model output was not valid JSON, sending one repair request")
            repair_prompt = load_prompt("plan_repair", {
                "schema": schema,
                "invalid_output": response.content,
            })
            response = self.llm.generate(
                repair_prompt,
                system_prompt=system_prompt,
                temperature=config.LLM_TEMPERATURE,
                max_tokens=max_tokens,
            )
            if not response.success:
                return PlanServiceResult(False, error="Failed to generate valid JSON after repair attempt")

            parsed = parse_llm_json(response.content)
            if parsed is None:
                return PlanServiceResult(False, error="JSON parsing failed after repair")
            return PlanServiceResult(True, data=parsed)
        except AxiomError as e:
            logger.error("Plan generation failed: %s", e.message)
            return PlanServiceResult(False, error=e.get_user_message())

    def create_plan(self, request: CreatePlanInput) -> PlanServiceResult:
        """Generate a complete plan for a new goal."""
        days = request.time_horizon_days
        guidance = get_scaling_guidance(days)
        schema = load_prompt("project_schema")
        prompt = load_prompt("plan_create", {
            "schema": schema,
            "time_horizon_days": days,
            "start_date": request.start_date.isoformat(),
            "constraints": request.constraints or "None specified",
            "training_section": _training_section(request),
            "phase_count": guidance.phases,
            "task_count": guidance.tasks,
            "skill_count": guidance.skills,
            "long_plan_note": _long_plan_note(guidance),
            "user_text": truncate_user_text(request.user_text, days),
        })
        logger.info("Generating %d-day plan", days)
        return self._request_json(prompt, get_max_output_tokens(days), schema)

    def update_plan(self, request: UpdatePlanInput) -> PlanServiceResult:
        """Replan an existing project after a daily check-in."""
        check = request.daily_check
        schema = load_prompt("project_schema")
        adjustment = f"Adjustment Request: {request.adjustment_text}" if request.adjustment_text else ""
        prompt = load_prompt("plan_update", {
            "schema": schema,
            "date": check.date.isoformat(),
            "completed_task_ids": json.dumps(check.completed_task_ids),
            "skipped_task_ids": json.dumps(check.skipped_task_ids),
            "zero_day": "true" if check.zero_day else "false",
            "notes": check.notes or "None",
            "adjustment": adjustment,
            "current_project": json.dumps(request.current_project.to_dict(), indent=2),
        })
        days = request.current_project.time_horizon_days
        logger.info("Replanning project %s", request.current_project.project_id)
        return self._request_json(prompt, get_max_output_tokens(days), schema)

    def create_master_plan(self, request: CreatePlanInput) -> PlanServiceResult:
        """Generate the long-horizon template (roadmap + skills, no tasks)."""
        days = request.time_horizon_days
        weeks = math.ceil(days / 7)
        prompt = load_prompt("plan_master", {
            "time_horizon_days": days,
            "weeks": weeks,
            "start_date": request.start_date.isoformat(),
            "constraints": request.constraints or "None specified",
            "phase_count": min(math.ceil(weeks / 4), 8),
            "user_text": truncate_user_text(request.user_text, days),
        })
        logger.info("Generating master plan for %d days", days)
        return self._request_json(prompt, MASTER_MAX_TOKENS, schema="")

    def generate_month_tasks(self, project: Project, start_day: int, end_day: int) -> PlanServiceResult:
        """Generate the tasks of one progressive window [start_day, end_day]."""
        master = project.master_plan
        if master is None:
            return PlanServiceResult(False, error="Project has no master plan")

        phase = master.phase_for_day(start_day)
        day_count = end_day - start_day + 1
        recent = ", ".join(
            f"{t.name} ({t.state.value})" for t in project.tasks[-RECENT_TASKS_IN_PROMPT:]
        ) or "None"

        prompt = load_prompt("plan_month", {
            "name": project.name,
            "one_line_intent": project.one_line_intent,
            "start_date": project.start_date.isoformat(),
            "overview": master.overview,
            "phase_name": phase.name if phase else "Phase 1",
            "phase_focus": (phase.focus if phase else None) or "Base building",
            "weekly_pattern": (phase.weekly_pattern if phase else None) or master.weekly_template or "",
            "target_volume": (phase.target_volume if phase else None) or "Progressive",
            "key_workouts": ", ".join(phase.key_workouts) if phase and phase.key_workouts else "Varied",
            "progression_rules": (phase.progression_rules if phase else None) or "Gradual increase",
            "skills": ", ".join(f"{s.skill_id}: {s.name}" for s in project.skill_tree.skills),
            "phases": ", ".join(f"{p.phase_id}: {p.name}" for p in project.roadmap.phases),
            "recent_context": project.last_generated_context or "Starting fresh",
            "recent_tasks": recent,
            "start_day": start_day,
            "end_day": end_day,
            "day_count": day_count,
            "task_count": math.ceil(day_count * MONTH_TASK_RATIO),
            "raw_input": project.created_from.raw_input[:2000],
        })
        logger.info("Generating tasks for project %s, days %d-%d", project.project_id, start_day, end_day)
        return self._request_json(prompt, MONTH_MAX_TOKENS, schema="")
