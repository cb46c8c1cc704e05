"""
Application state container for Axiom.

AppStore is the only holder of mutable state. Each mutation computes the
next AppState with the pure engines (state_engine, pause_scheduler) and
swaps it in under one lock, then persists it, so no reader ever sees a
task flagged done without its skill deltas.

Replans run outside the lock (model calls take tens of seconds). Every
committed change bumps a per-project revision; ``commit_replan`` drops a
replan result if the project changed after ``begin_replan`` was called.
"""
import secrets
import string
import threading
import uuid
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from core import state_engine
from core.config_manager import config
from core.exceptions import SyncError
from core.logger import get_logger
from core.models import AppState, DailyHistory, Pause, Progress, Project, ProjectStatus, TaskState
from core.paths import APP_STATE_PATH
from core.persistence import LocalStateFile, RemoteSyncClient
from core.timeline import now_iso
from scheduler import pause_scheduler

logger = get_logger("app_store")

USER_ID_ALPHABET = string.digits + string.ascii_lowercase
USER_ID_LENGTH = 13


@dataclass
class SyncStatus:
    is_syncing: bool = False
    last_sync_error: Optional[str] = None
    last_synced_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ReplanTicket:
    """Snapshot handed to a replan: the project as sent, and its revision."""
    project: Project
    revision: int


def generate_user_id() -> str:
    """Opaque sync identity: ``user_`` + 13 base-36 characters."""
    return "user_" + "".join(secrets.choice(USER_ID_ALPHABET) for _ in range(USER_ID_LENGTH))


def initial_state() -> AppState:
    return AppState(app_version=config.APP_VERSION, updated_at=now_iso())


def duplicate_project(original: Project, today: Optional[date] = None, now: Optional[str] = None) -> Project:
    """
    Copy a project under fresh identifiers.

    Every phase, milestone, task and skill gets a new id; references are
    rewritten through the id maps (dangling ids are kept as they are).
    The copy starts today, active, with all tasks todo, all skill levels
    at 0 and no history.
    """
    timestamp = now or now_iso()
    phase_ids = {p.phase_id: str(uuid.uuid4()) for p in original.roadmap.phases}
    task_ids = {t.task_id: str(uuid.uuid4()) for t in original.tasks}
    skill_ids = {s.skill_id: str(uuid.uuid4()) for s in original.skill_tree.skills}

    phases = [
        p.model_copy(update={
            "phase_id": phase_ids[p.phase_id],
            "milestones": [m.model_copy(update={"milestone_id": str(uuid.uuid4())}) for m in p.milestones],
        })
        for p in original.roadmap.phases
    ]
    tasks = [
        t.model_copy(update={
            "task_id": task_ids[t.task_id],
            "phase_id": phase_ids.get(t.phase_id, t.phase_id),
            "depends_on_task_ids": [task_ids.get(d, d) for d in t.depends_on_task_ids],
            "skill_impact": [
                si.model_copy(update={"skill_id": skill_ids.get(si.skill_id, si.skill_id)})
                for si in t.skill_impact
            ],
            "state": TaskState.TODO,
            "last_updated": timestamp,
        })
        for t in original.tasks
    ]
    skills = [
        s.model_copy(update={
            "skill_id": skill_ids[s.skill_id],
            "parents": [skill_ids.get(p, p) for p in s.parents],
            "level": 0,
        })
        for s in original.skill_tree.skills
    ]

    return original.model_copy(update={
        "project_id": str(uuid.uuid4()),
        "name": f"{original.name} (Copy)",
        "created_at": timestamp,
        "updated_at": timestamp,
        "start_date": today or date.today(),
        "status": ProjectStatus.ACTIVE,
        "pause": Pause(is_paused=False),
        "roadmap": original.roadmap.model_copy(update={"phases": phases}),
        "tasks": tasks,
        "skill_tree": original.skill_tree.model_copy(update={"skills": skills}),
        "progress": Progress(),
        "synced_at": None,
    })


class AppStore:
    """
    Single-writer container of the AppState.

    Project-level operations return the resulting Project, or None when
    the project id is unknown. Unknown task ids are no-ops.
    """

    def __init__(
        self,
        state_file: Optional[LocalStateFile] = None,
        sync_client: Optional[RemoteSyncClient] = None,
    ):
        self._lock = threading.RLock()
        self._file = state_file
        self._sync = sync_client if sync_client is not None else RemoteSyncClient()
        self._revisions: Dict[str, int] = {}

        loaded = state_file.load() if state_file is not None else None
        self._state = loaded or initial_state()
        self.sync_status = SyncStatus(last_synced_at=self._state.last_synced_at)

    @classmethod
    def open_default(cls) -> "AppStore":
        return cls(LocalStateFile(APP_STATE_PATH))

    # --- Internal ---

    def _commit(self, state: AppState, touched: Iterable[str] = ()) -> AppState:
        """Swap in the next state, bump revisions, persist. Caller holds the lock."""
        self._state = state
        for project_id in touched:
            self._revisions[project_id] = self._revisions.get(project_id, 0) + 1
        if self._file is not None:
            self._file.save(state)
        return state

    def _replace_project(self, project: Project) -> None:
        projects = [project if p.project_id == project.project_id else p for p in self._state.projects]
        self._commit(
            self._state.model_copy(update={"projects": projects, "updated_at": now_iso()}),
            [project.project_id],
        )

    def _apply(self, project_id: str, transition: Callable[[Project], Project]) -> Optional[Project]:
        with self._lock:
            project = self._state.get_project(project_id)
            if project is None:
                return None
            updated = transition(project)
            if updated is not project:
                self._replace_project(updated)
            return updated

    def _all_ids(self, *states: AppState) -> List[str]:
        return [p.project_id for s in states for p in s.projects]

    # --- Reads ---

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def projects(self) -> List[Project]:
        return list(self._state.projects)

    def get_project(self, project_id: str) -> Optional[Project]:
        return self._state.get_project(project_id)

    def selected_project(self) -> Optional[Project]:
        return self._state.get_project(self._state.selected_project_id)

    def revision(self, project_id: str) -> int:
        return self._revisions.get(project_id, 0)

    # --- Project management ---

    def add_project(self, project: Project) -> Project:
        """Add a project and select it."""
        with self._lock:
            self._commit(self._state.model_copy(update={
                "projects": self._state.projects + [project],
                "selected_project_id": project.project_id,
                "updated_at": now_iso(),
            }), [project.project_id])
        logger.info("Project %s added", project.project_id)
        return project

    def update_project(self, project_id: str, updates: Dict[str, Any]) -> Optional[Project]:
        """
        Apply field updates (snake_case names) and refresh updatedAt.

        Raises:
            ValidationError: the updated project would not be valid; the
                stored state is left untouched
        """
        return self._apply(
            project_id,
            lambda p: Project.model_validate({**p.model_dump(), **updates, "updated_at": now_iso()}),
        )

    def delete_project(self, project_id: str) -> bool:
        """Remove a project; deleting the selected one selects the first remaining."""
        with self._lock:
            if self._state.get_project(project_id) is None:
                return False
            remaining = [p for p in self._state.projects if p.project_id != project_id]
            selected = self._state.selected_project_id
            if selected == project_id:
                selected = remaining[0].project_id if remaining else None
            self._commit(self._state.model_copy(update={
                "projects": remaining,
                "selected_project_id": selected,
                "updated_at": now_iso(),
            }), [project_id])
        logger.info("Project %s deleted", project_id)
        return True

    def select_project(self, project_id: Optional[str]) -> bool:
        """Select a project (None clears the selection). Unknown ids are rejected."""
        with self._lock:
            if project_id is not None and self._state.get_project(project_id) is None:
                return False
            self._commit(self._state.model_copy(update={"selected_project_id": project_id}))
            return True

    def duplicate_project(self, project_id: str) -> Optional[Project]:
        """Add and select a fresh copy of a project."""
        with self._lock:
            original = self._state.get_project(project_id)
            if original is None:
                return None
            return self.add_project(duplicate_project(original))

    # --- Task transitions ---

    def mark_task_done(self, project_id: str, task_id: str) -> Optional[Project]:
        return self._apply(project_id, lambda p: state_engine.apply_task_state_change(p, task_id, TaskState.DONE))

    def mark_task_skipped(self, project_id: str, task_id: str) -> Optional[Project]:
        return self._apply(project_id, lambda p: state_engine.apply_task_state_change(p, task_id, TaskState.SKIPPED))

    def undo_task_state(self, project_id: str, task_id: str) -> Optional[Project]:
        return self._apply(project_id, lambda p: state_engine.undo_task_state(p, task_id))

    def add_daily_history(self, project_id: str, entry: DailyHistory) -> Optional[Project]:
        return self._apply(project_id, lambda p: state_engine.add_daily_history(p, entry))

    # --- Pause ---

    def pause_project(self, project_id: str, days: int, reason: Optional[str] = None) -> Optional[Project]:
        """
        Raises:
            ValueError: days < 1
        """
        return self._apply(project_id, lambda p: pause_scheduler.pause_project(p, days, reason))

    def resume_project(self, project_id: str) -> Optional[Project]:
        return self._apply(project_id, pause_scheduler.resume_project)

    # --- Replans ---

    def begin_replan(self, project_id: str) -> Optional[ReplanTicket]:
        with self._lock:
            project = self._state.get_project(project_id)
            if project is None:
                return None
            return ReplanTicket(project=project, revision=self.revision(project_id))

    def commit_replan(self, ticket: ReplanTicket, project: Project) -> bool:
        """
        Install a replanned project unless the local one changed meanwhile.

        Returns:
            True when applied; False when the result was stale (or the
            project was deleted) and has been discarded
        """
        project_id = ticket.project.project_id
        if project.project_id != project_id:
            raise ValueError(f"Replan result {project.project_id} does not match ticket {project_id}")

        with self._lock:
            if self._state.get_project(project_id) is None or self.revision(project_id) != ticket.revision:
                logger.info(
                    "Discarded stale replan for %s (revision %d, now %d)",
                    project_id, ticket.revision, self.revision(project_id),
                )
                return False
            self._replace_project(project)
            return True

    # --- Whole-state operations ---

    def get_user_id(self) -> str:
        """The sync identity, generated and persisted on first use."""
        with self._lock:
            if not self._state.user_id:
                self._commit(self._state.model_copy(update={"user_id": generate_user_id()}))
            return self._state.user_id

    def export_app_state(self) -> AppState:
        return self._state.model_copy(update={"user_id": None, "last_synced_at": None})

    def import_app_state(self, data: Any) -> Tuple[bool, Optional[str]]:
        """
        Replace projects and selection with an exported state.

        Returns:
            (True, None) on success, (False, error) when ``data`` is not a
            valid AppState; the current state is then left untouched
        """
        try:
            imported = data if isinstance(data, AppState) else AppState.model_validate(data)
        except ValidationError as e:
            logger.warning("Import rejected: %d validation error(s)", e.error_count())
            return False, str(e)

        with self._lock:
            previous = self._state
            self._commit(imported.model_copy(update={
                "updated_at": now_iso(),
                "user_id": imported.user_id or previous.user_id,
                "last_synced_at": imported.last_synced_at or previous.last_synced_at,
            }), self._all_ids(previous, imported))
        return True, None

    def reset_app(self) -> None:
        with self._lock:
            previous = self._state
            self._commit(initial_state(), self._all_ids(previous))
            self.sync_status = SyncStatus()
        logger.info("Application state reset")

    # --- Cloud sync ---

    def sync_to_cloud(self) -> SyncStatus:
        """Push the local state. Failures are recorded in sync_status, never raised."""
        user_id = self.get_user_id()
        self.sync_status = SyncStatus(is_syncing=True, last_synced_at=self.sync_status.last_synced_at)
        try:
            self._sync.push(user_id, self.export_app_state())
        except SyncError as e:
            logger.warning("Sync push failed: %s", e.message)
            self.sync_status = SyncStatus(last_sync_error=e.message, last_synced_at=self.sync_status.last_synced_at)
            return self.sync_status

        synced_at = now_iso()
        with self._lock:
            self._commit(self._state.model_copy(update={"last_synced_at": synced_at}))
        self.sync_status = SyncStatus(last_synced_at=synced_at)
        return self.sync_status

    def sync_from_cloud(self) -> SyncStatus:
        """Pull the remote state and replace the local one with it, if any."""
        user_id = self._state.user_id
        if not user_id:
            self.sync_status = SyncStatus(last_sync_error="No user ID", last_synced_at=self.sync_status.last_synced_at)
            return self.sync_status

        self.sync_status = SyncStatus(is_syncing=True, last_synced_at=self.sync_status.last_synced_at)
        try:
            remote = self._sync.pull(user_id)
        except SyncError as e:
            logger.warning("Sync pull failed: %s", e.message)
            self.sync_status = SyncStatus(last_sync_error=e.message, last_synced_at=self.sync_status.last_synced_at)
            return self.sync_status

        if remote is None:
            self.sync_status = SyncStatus(last_synced_at=self.sync_status.last_synced_at)
            return self.sync_status

        synced_at = now_iso()
        with self._lock:
            previous = self._state
            self._commit(remote.model_copy(update={
                "user_id": user_id,
                "last_synced_at": synced_at,
            }), self._all_ids(previous, remote))
        self.sync_status = SyncStatus(last_synced_at=synced_at)
        return self.sync_status


# Global store instance used by the web service and the CLI
_store: Optional[AppStore] = None
_store_lock = threading.Lock()


def get_store() -> AppStore:
    global _store
    with _store_lock:
        if _store is None:
            _store = AppStore.open_default()
        return _store


def set_store(store: Optional[AppStore]) -> None:
    """Install a store (tests) or drop the cached one (None)."""
    global _store
    with _store_lock:
        _store = store
