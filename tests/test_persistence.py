import json

import httpx
import pytest

from builders import make_project
from core.exceptions import StateError, SyncError
from core.models import AppState
from core.persistence import LocalStateFile, RemoteSyncClient, SyncRepository


def _state():
    return AppState(app_version="1.1", updated_at="2024-01-01T00:00:00+00:00",
                    selected_project_id="proj_1", projects=[make_project()])


def test_local_state_file_round_trip(tmp_path):
    store = LocalStateFile(tmp_path / "nested" / "app_state.json")

    assert store.load() is None
    store.save(_state())

    assert store.exists()
    assert store.load() == _state()
    raw = json.loads(store.path.read_text(encoding="utf-8"))
    assert raw["selectedProjectId"] == "proj_1"
    assert raw["projects"][0]["startDate"] == "2024-01-01"
    assert list(tmp_path.joinpath("nested").glob("*.tmp")) == []


def test_corrupt_file_raises_and_is_kept(tmp_path):
    path = tmp_path / "app_state.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StateError):
        LocalStateFile(path).load()
    assert path.read_text(encoding="utf-8") == "{not json"


def test_schema_mismatch_raises(tmp_path):
    path = tmp_path / "app_state.json"
    path.write_text(json.dumps({"projects": "nope"}), encoding="utf-8")

    with pytest.raises(StateError):
        LocalStateFile(path).load()


def test_clear(tmp_path):
    store = LocalStateFile(tmp_path / "app_state.json")
    store.save(_state())

    store.clear()

    assert not store.exists()


def test_sync_repository(tmp_path):
    repo = SyncRepository(tmp_path)

    assert repo.load("user_abc") is None
    repo.save("user_abc", {"appVersion": "1.1"})

    assert repo.load("user_abc") == {"appVersion": "1.1"}
    with pytest.raises(ValueError):
        repo.save("../escape", {})
    with pytest.raises(ValueError):
        repo.save("user_abc\n", {})


def test_remote_client_push_and_pull():
    stored = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            body = json.loads(request.content)
            stored[body["userId"]] = body["appState"]
            return httpx.Response(200, json={"success": True})
        user_id = request.url.params["userId"]
        return httpx.Response(200, json={"appState": stored.get(user_id)})

    client = RemoteSyncClient("http://sync.local/api/v1", transport=httpx.MockTransport(handler))

    assert client.push("user_1", _state())
    assert client.pull("user_1") == _state()
    assert client.pull("user_2") is None


def test_remote_client_errors():
    client = RemoteSyncClient("http://sync.local", transport=httpx.MockTransport(
        lambda request: httpx.Response(503)
    ))

    with pytest.raises(SyncError) as exc_info:
        client.pull("user_1")
    assert exc_info.value.status_code == 503

    with pytest.raises(SyncError):
        RemoteSyncClient("").pull("user_1")
