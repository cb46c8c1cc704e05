import asyncio
import json
from datetime import date

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

import web.backend.routers.plan as plan_router
import web.backend.routers.projects as projects_router
import web.backend.routers.sync as sync_router
from builders import make_project, make_skill, make_task, raw_plan
from core.app_store import AppStore
from core.exceptions import StateError
from core.models import MasterPlan, MasterPlanPhase, TaskState, TaskType
from core.persistence import SyncRepository
from core.plan_generator import PlanServiceResult
from web.backend.app import create_app


class FakePlanService:
    def __init__(self, data=None, error=None, on_call=None):
        self.data = data
        self.error = error
        self.on_call = on_call
        self.calls = []

    def _reply(self, name, *args):
        self.calls.append((name, args))
        if self.on_call is not None:
            self.on_call()
        if self.error:
            return PlanServiceResult(False, error=self.error)
        return PlanServiceResult(True, data=self.data)

    def create_plan(self, request):
        return self._reply("create_plan", request)

    def create_master_plan(self, request):
        return self._reply("create_master_plan", request)

    def update_plan(self, request):
        return self._reply("update_plan", request)

    def generate_month_tasks(self, project, start_day, end_day):
        return self._reply("generate_month_tasks", project, start_day, end_day)


@pytest.fixture
def store(monkeypatch):
    store = AppStore(state_file=None)
    store.add_project(make_project(
        tasks=[
            make_task("t1", 0, task_type=TaskType.TRAIN, impacts={"s1": 1}),
            make_task("t2", 0, task_type=TaskType.THINK),
        ],
        skills=[make_skill("s1")],
    ))
    monkeypatch.setattr(projects_router, "get_store", lambda: store)
    return store


def _use_service(monkeypatch, service):
    monkeypatch.setattr(plan_router, "get_plan_service", lambda: service)
    monkeypatch.setattr(projects_router, "get_plan_service", lambda: service)


def _body(response):
    return json.loads(response.body)


CREATE_BODY = {
    "userText": "Run a 10k",
    "timeHorizonDays": 30,
    "constraints": "",
    "startDate": "2024-02-01",
}


# --- plan routes ---

def test_create_plan_returns_reconciled_project(monkeypatch):
    _use_service(monkeypatch, FakePlanService(data={"project": raw_plan(), "assumptions": ["3 runs/week"]}))

    body = asyncio.run(plan_router.create_plan(CREATE_BODY))

    assert body["success"]
    assert body["assumptions"] == ["3 runs/week"]
    assert body["project"]["startDate"] == "2024-02-01"
    assert body["project"]["tasks"][1]["phaseId"] == "phase_base"


def test_create_plan_rejects_missing_fields(monkeypatch):
    _use_service(monkeypatch, FakePlanService(data={}))

    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(plan_router.create_plan({"timeHorizonDays": 30}))

    assert exc_info.value.status_code == 400
    assert "userText" in exc_info.value.detail


def test_create_plan_service_failure(monkeypatch):
    _use_service(monkeypatch, FakePlanService(error="JSON parsing failed after repair"))

    response = asyncio.run(plan_router.create_plan(CREATE_BODY))

    assert response.status_code == 500
    assert _body(response) == {"success": False, "error": "JSON parsing failed after repair"}


def test_create_plan_schema_failure_names_the_field(monkeypatch):
    plan = raw_plan()
    plan["tasks"][0]["effort"] = "extreme"
    _use_service(monkeypatch, FakePlanService(data=plan))

    response = asyncio.run(plan_router.create_plan(CREATE_BODY))

    body = _body(response)
    assert response.status_code == 500
    assert "tasks.0.effort" in body["error"]
    assert body["details"][0]["path"] == "tasks.0.effort"


def _master_project():
    return make_project(
        horizon=60,
        generated_until_day=0,
        master_plan=MasterPlan(phases=[MasterPlanPhase(name="Base", start_week=1, end_week=9, focus="Base")]),
    )


def test_generate_month(monkeypatch):
    batch = {"tasks": [{"name": "Easy 5k", "type": "train", "effort": "low", "durationMinutes": 35}]}
    service = FakePlanService(data=batch)
    _use_service(monkeypatch, service)
    payload = {"project": _master_project().to_dict(), "monthNumber": 0}

    body = asyncio.run(plan_router.generate_month(payload))

    assert body["success"]
    assert body["generatedUntilDay"] == 30
    assert len(body["tasks"]) == 1
    assert body["contextSummary"].startswith("Month 1: 1 tasks for days 1-30.")
    assert service.calls[0][1][1:] == (1, 30)


def test_generate_month_requires_master_plan_and_open_days(monkeypatch):
    _use_service(monkeypatch, FakePlanService(data={"tasks": []}))

    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(plan_router.generate_month({"project": make_project().to_dict(), "monthNumber": 0}))
    assert exc_info.value.status_code == 400

    finished = _master_project().model_copy(update={"generated_until_day": 60})
    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(plan_router.generate_month({"project": finished.to_dict(), "monthNumber": 2}))
    assert exc_info.value.status_code == 400


# --- project routes ---

def test_list_and_get_projects(store):
    listing = asyncio.run(projects_router.list_projects())

    assert listing["selectedProjectId"] == "proj_1"
    assert listing["projects"][0]["selected"]
    assert asyncio.run(projects_router.get_project("proj_1"))["project"]["projectId"] == "proj_1"
    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(projects_router.get_project("missing"))
    assert exc_info.value.status_code == 404


def test_today_and_task_transitions(store):
    today = asyncio.run(projects_router.get_today("proj_1", day=0))
    assert [t["taskId"] for t in today["tasks"]] == ["t1", "t2"]

    body = asyncio.run(projects_router.mark_task_done("proj_1", "t1"))
    assert body["project"]["skillTree"]["skills"][0]["level"] == 1

    unknown = asyncio.run(projects_router.mark_task_done("proj_1", "nope"))
    assert unknown["project"] == body["project"]

    asyncio.run(projects_router.undo_task("proj_1", "t1"))
    assert store.get_project("proj_1").find_task("t1").state == TaskState.TODO

    with pytest.raises(HTTPException):
        asyncio.run(projects_router.mark_task_skipped("missing", "t1"))


def test_pause_and_resume(store):
    body = asyncio.run(projects_router.pause_project("proj_1", projects_router.PauseRequest(days=3, reason="flu")))

    assert body["project"]["pause"]["isPaused"]
    assert body["project"]["tasks"][0]["schedule"]["recommendedDay"] == 3

    resumed = asyncio.run(projects_router.resume_project("proj_1"))
    assert resumed["project"]["status"] == "active"
    assert resumed["project"]["tasks"][0]["schedule"]["recommendedDay"] == 3


def test_check_in_applies_replan_and_history(store, monkeypatch):
    replanned = store.get_project("proj_1").to_dict()
    replanned["name"] = "Learn piano, gently"
    replanned["progress"] = {"history": [{"date": "2024-01-03", "autoReplanSummary": "Lighter week"}]}
    _use_service(monkeypatch, FakePlanService(data={"project": replanned}))
    request = projects_router.CheckInRequest(date=date(2024, 1, 3), completed_task_ids=["t1"])

    body = asyncio.run(projects_router.check_in("proj_1", request))

    assert body["success"]
    project = store.get_project("proj_1")
    assert project.name == "Learn piano, gently"
    assert project.progress.history[-1].auto_replan_summary == "Lighter week"
    assert project.progress.history[-1].completed_task_ids == ["t1"]
    assert len(project.progress.history) == 1


def test_check_in_discards_stale_replan(store, monkeypatch):
    stale = store.get_project("proj_1").to_dict()
    service = FakePlanService(
        data=stale,
        on_call=lambda: store.mark_task_done("proj_1", "t2"),
    )
    _use_service(monkeypatch, service)

    response = asyncio.run(projects_router.check_in("proj_1", projects_router.CheckInRequest()))

    assert response.status_code == 409
    assert store.get_project("proj_1").find_task("t2").state == TaskState.DONE


def test_calendar_and_gantt(store):
    response = asyncio.run(projects_router.export_calendar("proj_1", types="train"))

    assert response.media_type == "text/calendar"
    assert response.body.decode("utf-8").count("BEGIN:VEVENT") == 1
    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(projects_router.export_calendar("proj_1", types="train,nap"))
    assert exc_info.value.status_code == 400

    gantt = asyncio.run(projects_router.get_gantt("proj_1"))
    assert gantt["definition"].startswith("gantt")
    assert gantt["orphanTaskIds"] == []


def test_duplicate_delete_and_state_round_trip(store):
    copy = asyncio.run(projects_router.duplicate_project("proj_1"))["project"]
    assert copy["name"] == "Learn piano (Copy)"

    exported = asyncio.run(projects_router.export_state())
    assert len(exported["projects"]) == 2
    assert "userId" not in exported

    asyncio.run(projects_router.delete_project(copy["projectId"]))
    assert asyncio.run(projects_router.import_state(exported)) == {"success": True}
    assert len(store.projects) == 2

    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(projects_router.import_state({"projects": []}))
    assert exc_info.value.status_code == 400


# --- sync routes ---

def test_sync_push_and_pull(tmp_path, monkeypatch):
    repo = SyncRepository(tmp_path)
    monkeypatch.setattr(sync_router, "get_sync_repository", lambda: repo)
    state = AppStore(state_file=None).export_app_state().to_dict()

    assert asyncio.run(sync_router.push({"userId": "user_abc", "appState": state})) == {"success": True}
    assert asyncio.run(sync_router.pull(userId="user_abc"))["appState"]["appVersion"] == state["appVersion"]
    assert asyncio.run(sync_router.pull(userId="user_new")) == {"appState": None}

    bad_payloads = (
        {"appState": state},
        {"userId": "a/b", "appState": state},
        {"userId": "user_abc\n", "appState": state},
        {"userId": "user_abc"},
    )
    for bad in bad_payloads:
        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(sync_router.push(bad))
        assert exc_info.value.status_code == 400


def test_app_health_and_routing(store):
    client = TestClient(create_app())

    assert client.get("/health").json() == {"status": "ok", "service": "Axiom"}
    response = client.get("/api/v1/projects")
    assert response.status_code == 200
    assert response.json()["projects"][0]["projectId"] == "proj_1"


def test_store_errors_become_json(monkeypatch):
    def broken_store():
        raise StateError("Local state file is not valid JSON")

    monkeypatch.setattr(projects_router, "get_store", broken_store)
    client = TestClient(create_app(), raise_server_exceptions=False)

    response = client.get("/api/v1/projects")

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert "not valid JSON" in response.json()["error"]
