"""
Durable storage for Axiom application state.

- LocalStateFile: the single JSON document holding the local AppState
- RemoteSyncClient: push/pull of that document to a sync server (httpx)
- SyncRepository: server-side storage, one JSON document per user id

Corrupt data is never replaced silently: loading a malformed file raises
StateError and leaves the file untouched.
"""
import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from core.config_manager import config
from core.exceptions import StateError, SyncError
from core.logger import get_logger
from core.models import AppState

logger = get_logger("persistence")

USER_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


def _write_json_atomic(path: Path, payload: Dict[str, Any]) -> None:
    """Write to a temp file in the same directory, then swap it in."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class LocalStateFile:
    """The local durable store."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[AppState]:
        """
        Read the stored state.

        Returns:
            AppState, or None when nothing has been saved yet

        Raises:
            StateError: the file is not valid JSON or not a valid AppState
        """
        if not self.path.exists():
            return None

        text = self.path.read_text(encoding="utf-8")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error("Local state %s is not valid JSON: %s", self.path, e)
            raise StateError(f"Local state file is not valid JSON: {e}", corrupted_data=text[:500])

        try:
            return AppState.model_validate(data)
        except ValidationError as e:
            logger.error("Local state %s failed validation: %s", self.path, e)
            raise StateError(f"Local state file does not match the state schema: {e}", corrupted_data=text[:500])

    def save(self, state: AppState) -> None:
        _write_json_atomic(self.path, state.to_dict())

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


class RemoteSyncClient:
    """
    Client of the sync server routes (``/sync/push``, ``/sync/pull``).

    Raises SyncError for every transport failure; callers decide how to
    surface it.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url if base_url is not None else config.SYNC_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.SYNC_TIMEOUT_SECONDS
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        if not self.enabled:
            raise SyncError("Cloud sync is not configured (SYNC_BASE_URL is empty)")

        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise SyncError(
                f"Sync server returned {e.response.status_code}",
                status_code=e.response.status_code
            )
        except httpx.TimeoutException:
            raise SyncError(f"Sync request timed out after {self.timeout}s")
        except httpx.HTTPError as e:
            raise SyncError(f"Sync request failed: {e}")
        except ValueError as e:
            raise SyncError(f"Sync server returned invalid JSON: {e}")

    def push(self, user_id: str, app_state: AppState) -> bool:
        body = self._request("POST", "/sync/push", json={
            "userId": user_id,
            "appState": app_state.to_dict(),
        })
        return bool(body.get("success", False))

    def pull(self, user_id: str) -> Optional[AppState]:
        """Remote state for ``user_id``, or None when nothing is stored."""
        body = self._request("GET", "/sync/pull", params={"userId": user_id})
        remote = body.get("appState")
        if remote is None:
            return None
        try:
            return AppState.model_validate(remote)
        except ValidationError as e:
            raise SyncError(f"Remote state does not match the state schema: {e}")


class SyncRepository:
    """Server-side sync storage: ``<root>/<userId>.json``."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path_for(self, user_id: str) -> Path:
        if not USER_ID_PATTERN.fullmatch(user_id or ""):
            raise ValueError(f"Invalid user id: {user_id!r}")
        return self.root / f"{user_id}.json"

    def save(self, user_id: str, app_state: Dict[str, Any]) -> None:
        _write_json_atomic(self._path_for(user_id), app_state)
        logger.info("Stored sync state for %s", user_id)

    def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        path = self._path_for(user_id)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
