"""
Core Data Models for Axiom.

Defines the project aggregate (roadmap phases, tasks, skills, progress
history, pause state) and the inputs of the plan generation service.

Models are frozen: engines derive new values with ``model_copy(update=...)``
and never mutate what they were given. Python attributes are snake_case;
the JSON wire format (persisted state, model payloads, HTTP bodies) uses
the camelCase aliases.
"""
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

CalendarDate = date


class TaskType(str, Enum):
    BUILD = "build"
    THINK = "think"
    TRAIN = "train"
    ADMIN = "admin"
    EXPLORE = "explore"
    RECOVER = "recover"
    SOCIAL = "social"


class Effort(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskState(str, Enum):
    TODO = "todo"
    DONE = "done"
    SKIPPED = "skipped"


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class AxiomModel(BaseModel):
    """Base model: camelCase aliases on the wire, immutable in memory."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase JSON shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Skills ---

class Skill(AxiomModel):
    """A capacity with a bounded progress level (0..max_level)."""
    skill_id: str
    name: str
    description: str
    level: int = Field(ge=0)
    max_level: int = Field(ge=1)
    parents: List[str] = Field(default_factory=list)  # display-only DAG
    progress_rule: str

    @model_validator(mode="after")
    def _level_within_max(self) -> "Skill":
        if self.level > self.max_level:
            raise ValueError(f"level {self.level} exceeds maxLevel {self.max_level}")
        return self


class SkillImpact(AxiomModel):
    skill_id: str
    delta: int


# --- Tasks ---

class TaskSchedule(AxiomModel):
    """Day offsets from the project start date."""
    earliest_day: Optional[int] = None
    latest_day: int
    recommended_day: int


class TrainingDetails(AxiomModel):
    session_type: Optional[str] = None
    warmup: Optional[str] = None
    main_set: Optional[str] = None
    cooldown: Optional[str] = None
    target_pace: Optional[str] = None
    target_heart_rate: Optional[str] = None
    rpe: Optional[str] = None


class TaskDetails(AxiomModel):
    steps: List[str] = Field(default_factory=list)
    definition_of_done: str = ""
    notes: Optional[str] = None
    training: Optional[TrainingDetails] = None


class Task(AxiomModel):
    """An atomic unit of work, grouped under a phase by ``phase_id``."""
    task_id: str
    phase_id: str
    name: str
    type: TaskType
    effort: Effort
    duration_minutes: int = Field(ge=1)
    details: TaskDetails
    schedule: TaskSchedule
    depends_on_task_ids: List[str] = Field(default_factory=list)
    skill_impact: List[SkillImpact] = Field(default_factory=list)
    state: TaskState = TaskState.TODO
    last_updated: str


# --- Roadmap ---

class Milestone(AxiomModel):
    milestone_id: str
    name: str
    completion_rule: str


class Phase(AxiomModel):
    """A segment of the roadmap; start/end are inclusive day offsets."""
    phase_id: str
    name: str
    intent: str
    order: int
    start_day: int
    end_day: int
    milestones: List[Milestone] = Field(default_factory=list)

    @model_validator(mode="after")
    def _start_before_end(self) -> "Phase":
        if self.start_day > self.end_day:
            raise ValueError(f"startDay {self.start_day} is after endDay {self.end_day}")
        return self


class Roadmap(AxiomModel):
    phases: List[Phase] = Field(default_factory=list)


class SkillTree(AxiomModel):
    skills: List[Skill] = Field(default_factory=list)


# --- Progress ---

class DailyHistory(AxiomModel):
    """One check-in per calendar date."""
    date: CalendarDate
    completed_task_ids: List[str] = Field(default_factory=list)
    skipped_task_ids: List[str] = Field(default_factory=list)
    zero_day: Optional[bool] = None
    notes: Optional[str] = None
    auto_replan_summary: str


class Progress(AxiomModel):
    history: List[DailyHistory] = Field(default_factory=list)


class Pause(AxiomModel):
    is_paused: bool = False
    pause_until: Optional[CalendarDate] = None
    reason: Optional[str] = None


# --- Provenance ---

class TrainingProfile(AxiomModel):
    current_level: Optional[str] = None
    constraints: Optional[str] = None
    preferences: Optional[str] = None
    available_metrics: Optional[str] = None


class CreatedFrom(AxiomModel):
    raw_input: str
    constraints: str = ""
    training_profile: Optional[TrainingProfile] = None


class TodayCardRules(AxiomModel):
    max_tasks: int = 3
    selection_logic: List[str] = Field(default_factory=list)


# --- Progressive generation ---

class MasterPlanPhase(AxiomModel):
    phase_number: Optional[int] = None
    name: str = ""
    start_week: Optional[int] = None
    end_week: Optional[int] = None
    focus: Optional[str] = None
    weekly_pattern: Optional[str] = None
    target_volume: Optional[str] = None
    key_workouts: List[str] = Field(default_factory=list)
    progression_rules: Optional[str] = None


class SkillProgression(AxiomModel):
    skill_name: str
    start_level: int = 0
    end_level: int = 10
    milestones: List[str] = Field(default_factory=list)


class MasterPlan(AxiomModel):
    """Long-horizon template used to generate tasks month by month."""
    overview: str = ""
    principles: List[str] = Field(default_factory=list)
    weekly_template: Optional[str] = None
    phases: List[MasterPlanPhase] = Field(default_factory=list)
    skill_progression: List[SkillProgression] = Field(default_factory=list)

    def phase_for_day(self, day: int) -> Optional[MasterPlanPhase]:
        """Phase covering the week of ``day`` (1-based), else the first phase."""
        week = max(1, -(-day // 7))
        for phase in self.phases:
            if phase.start_week is None or phase.end_week is None:
                continue
            if phase.start_week <= week <= phase.end_week:
                return phase
        return self.phases[0] if self.phases else None


# --- Aggregate ---

class Project(AxiomModel):
    """Root aggregate: one user's plan."""
    project_id: str
    name: str
    one_line_intent: str
    definition_of_done: str
    status: ProjectStatus
    created_at: str
    updated_at: str
    start_date: CalendarDate
    time_horizon_days: int = Field(ge=1)
    created_from: CreatedFrom
    pause: Pause = Field(default_factory=Pause)
    roadmap: Roadmap = Field(default_factory=Roadmap)
    tasks: List[Task] = Field(default_factory=list)
    today_card_rules: TodayCardRules = Field(default_factory=TodayCardRules)
    skill_tree: SkillTree = Field(default_factory=SkillTree)
    progress: Progress = Field(default_factory=Progress)
    synced_at: Optional[str] = None
    assumptions: List[str] = Field(default_factory=list)
    master_plan: Optional[MasterPlan] = None
    generated_until_day: Optional[int] = None
    last_generated_context: Optional[str] = None

    def find_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.task_id == task_id:
                return task
        return None

    def task_index(self) -> Dict[str, Task]:
        return {t.task_id: t for t in self.tasks}

    def phase_index(self) -> Dict[str, Phase]:
        return {p.phase_id: p for p in self.roadmap.phases}

    def skill_index(self) -> Dict[str, Skill]:
        return {s.skill_id: s for s in self.skill_tree.skills}


class AppState(AxiomModel):
    """Everything the local store persists."""
    app_version: str
    updated_at: str
    selected_project_id: Optional[str] = None
    projects: List[Project] = Field(default_factory=list)
    user_id: Optional[str] = None
    last_synced_at: Optional[str] = None

    def get_project(self, project_id: Optional[str]) -> Optional[Project]:
        if not project_id:
            return None
        for project in self.projects:
            if project.project_id == project_id:
                return project
        return None


# --- Plan generation service inputs ---

class CreatePlanInput(AxiomModel):
    user_text: str = Field(min_length=1)
    time_horizon_days: int = Field(ge=1)
    constraints: str = ""
    start_date: CalendarDate
    training_profile: Optional[TrainingProfile] = None


class DailyCheck(AxiomModel):
    date: CalendarDate
    completed_task_ids: List[str] = Field(default_factory=list)
    skipped_task_ids: List[str] = Field(default_factory=list)
    zero_day: Optional[bool] = None
    notes: Optional[str] = None


class UpdatePlanInput(AxiomModel):
    current_project: Project
    daily_check: DailyCheck
    adjustment_text: Optional[str] = None


class GenerateMonthInput(AxiomModel):
    project: Project
    month_number: int = Field(ge=0)
    days_to_generate: Optional[int] = Field(default=None, ge=1)
