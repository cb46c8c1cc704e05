"""
Filesystem locations of Axiom's runtime data.

data/app_state.json   local AppState (single writer: core.app_store)
data/sync/<id>.json   server-side sync documents
logs/                 rotating log files
"""
import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent


def _dir_from_env(env_var: str, default: Path) -> Path:
    raw = os.getenv(env_var, "").strip()
    return Path(raw).expanduser() if raw else default


def get_data_dir() -> Path:
    """AXIOM_DATA_DIR, else <project_root>/data."""
    return _dir_from_env("AXIOM_DATA_DIR", PROJECT_ROOT / "data")


def get_logs_dir() -> Path:
    """AXIOM_LOG_DIR, else <project_root>/logs."""
    return _dir_from_env("AXIOM_LOG_DIR", PROJECT_ROOT / "logs")


DATA_DIR = get_data_dir()
APP_STATE_PATH = DATA_DIR / "app_state.json"
SYNC_DIR = DATA_DIR / "sync"
