"""
Configuration Manager for Axiom.

Central place for system constants. Every tunable value is declared here
and can be overridden from config/runtime.yaml.

Usage:
    from core.config_manager import config
    limit = config.TODAY_MAX_TASKS
"""
from dataclasses import dataclass
from pathlib import Path

import yaml


CONFIG_DIR = Path(__file__).parent.parent / "config"
RUNTIME_CONFIG_PATH = CONFIG_DIR / "runtime.yaml"


@dataclass
class SystemConfig:
    """
    Runtime constants.

    Defaults match the behaviour of the hosted app; override per install
    in runtime.yaml.
    """

    # Version stamped into exported/persisted AppState
    APP_VERSION: str = "1.1"

    # === Today card ===

    # Upper bound on tasks shown for a day
    TODAY_MAX_TASKS: int = 3

    # === Plan defaults ===

    # maxLevel given to skills that arrive without one
    DEFAULT_MAX_SKILL_LEVEL: int = 10

    # latestDay = recommendedDay + slack when a schedule is missing
    DEFAULT_LATEST_DAY_SLACK: int = 7

    # Days generated per progressive (monthly) batch
    GENERATION_WINDOW_DAYS: int = 30

    # === Plan generation service ===

    # Bounded wait for a single model call (seconds)
    LLM_TIMEOUT_SECONDS: float = 120.0

    LLM_TEMPERATURE: float = 0.7

    # User text sent to the model is truncated to these lengths;
    # the long limit applies to horizons above 180 days
    MAX_USER_TEXT: int = 2500
    MAX_USER_TEXT_LONG: int = 4000

    # === Sync ===

    SYNC_TIMEOUT_SECONDS: float = 15.0

    # Base URL of the sync server, e.g. "http://localhost:8010/api/v1";
    # empty disables cloud sync
    SYNC_BASE_URL: str = ""


def _load_runtime_config() -> dict:
    """Load runtime overrides if the file exists."""
    if not RUNTIME_CONFIG_PATH.exists():
        return {}

    try:
        with open(RUNTIME_CONFIG_PATH, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError):
        return {}


def get_config() -> SystemConfig:
    """
    Build the system configuration.

    Priority: runtime.yaml > defaults
    """
    base = SystemConfig()
    overrides = _load_runtime_config()

    for key, value in overrides.items():
        if hasattr(base, key):
            setattr(base, key, value)

    return base


# Global config instance
config = get_config()
