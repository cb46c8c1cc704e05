from datetime import date
from typing import List, Optional

from builders import make_project, make_task
from core.exceptions import LLMTimeoutError
from core.llm_adapter import LLMResponse
from core.models import CreatePlanInput, DailyCheck, MasterPlan, MasterPlanPhase, UpdatePlanInput
from core.plan_generator import (
    PlanGenerationService,
    get_max_output_tokens,
    get_scaling_guidance,
    truncate_user_text,
)


class FakeLLM:
    """Replays canned responses and records every prompt."""

    def __init__(self, *responses):
        self.responses: List = list(responses)
        self.prompts: List[str] = []
        self.max_tokens: List[int] = []

    def generate(self, prompt: str, system_prompt: Optional[str] = None, temperature: float = 0.7,
                 max_tokens: int = 1000) -> LLMResponse:
        self.prompts.append(prompt)
        self.max_tokens.append(max_tokens)
        reply = self.responses.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, LLMResponse):
            return reply
        return LLMResponse(content=reply, model="fake")

    def get_model_name(self) -> str:
        return "fake"


def _request(days=30, text="Learn to juggle five balls"):
    return CreatePlanInput(user_text=text, time_horizon_days=days, start_date=date(2024, 3, 1))


def test_create_plan_parses_fenced_json():
    llm = FakeLLM('```json\n{"project": {"name": "Juggling"}, "assumptions": []}\n```')

    result = PlanGenerationService(llm).create_plan(_request())

    assert result.success
    assert result.data["project"]["name"] == "Juggling"
    assert len(llm.prompts) == 1
    assert "Learn to juggle five balls" in llm.prompts[0]
    assert llm.max_tokens == [12000]


def test_invalid_json_gets_exactly_one_repair():
    llm = FakeLLM("Sure! Here is your plan: {oops", '{"project": {"name": "Fixed"}}')

    result = PlanGenerationService(llm).create_plan(_request())

    assert result.success
    assert result.data["project"]["name"] == "Fixed"
    assert len(llm.prompts) == 2
    assert "{oops" in llm.prompts[1]


def test_repair_that_still_fails():
    llm = FakeLLM("not json", "still not json")

    result = PlanGenerationService(llm).create_plan(_request())

    assert not result.success
    assert result.error == "JSON parsing failed after repair"
    assert len(llm.prompts) == 2


def test_repair_call_error():
    llm = FakeLLM("not json", LLMResponse(content="", model="fake", error="boom"))

    result = PlanGenerationService(llm).create_plan(_request())

    assert result.error == "Failed to generate valid JSON after repair attempt"


def test_model_error_is_returned_not_raised():
    llm = FakeLLM(LLMTimeoutError(provider="fake", model_name="fake", timeout_seconds=120.0))

    result = PlanGenerationService(llm).create_plan(_request())

    assert not result.success
    assert "timed out" in result.error


def test_update_plan_sends_check_in():
    project = make_project(tasks=[make_task("t1", 0)])
    request = UpdatePlanInput(
        current_project=project,
        daily_check=DailyCheck(date=date(2024, 1, 2), completed_task_ids=["t1"], zero_day=True),
        adjustment_text="less on weekends",
    )
    llm = FakeLLM('{"name": "Learn piano"}')

    result = PlanGenerationService(llm).update_plan(request)

    assert result.success
    prompt = llm.prompts[0]
    assert '["t1"]' in prompt
    assert "Adjustment Request: less on weekends" in prompt
    assert "proj_1" in prompt


def test_master_plan_uses_fixed_budget():
    llm = FakeLLM('{"name": "Marathon", "masterPlan": {"overview": "x"}}')

    result = PlanGenerationService(llm).create_master_plan(_request(days=365))

    assert result.success
    assert llm.max_tokens == [8192]
    assert "(53 weeks)" in llm.prompts[0]


def test_month_tasks_need_a_master_plan():
    llm = FakeLLM()

    result = PlanGenerationService(llm).generate_month_tasks(make_project(), 1, 30)

    assert not result.success
    assert result.error == "Project has no master plan"
    assert llm.prompts == []


def test_month_tasks_prompt_uses_master_phase():
    project = make_project(
        horizon=120,
        master_plan=MasterPlan(overview="Base then speed", phases=[
            MasterPlanPhase(name="Base", start_week=1, end_week=4, focus="Aerobic"),
            MasterPlanPhase(name="Speed", start_week=5, end_week=17, focus="Intervals"),
        ]),
    )
    llm = FakeLLM('{"tasks": []}')

    result = PlanGenerationService(llm).generate_month_tasks(project, 31, 60)

    assert result.success
    assert "Intervals" in llm.prompts[0]
    assert "Generate 21 tasks" in llm.prompts[0]
    assert llm.max_tokens == [16000]


def test_scaling_tables():
    assert get_scaling_guidance(14).phases == "2-3"
    assert get_scaling_guidance(90).tasks == "40-60"
    assert get_scaling_guidance(181).note is not None
    assert get_max_output_tokens(7) == 8192
    assert get_max_output_tokens(365) == 32000


def test_truncate_user_text():
    assert truncate_user_text("short", 30) == "short"
    assert truncate_user_text("x" * 3000, 30) == "x" * 2500 + "... (truncated)"
    assert truncate_user_text("x" * 3000, 365) == "x" * 3000
