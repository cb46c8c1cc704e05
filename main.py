import os
import sys
from pathlib import Path

import uvicorn

from core.exceptions import ConfigError
from core.logger import get_logger, setup_logging

PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

logger = get_logger("main")


def _port_from_env() -> int:
    raw = os.getenv("AXIOM_PORT", "8010")
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"AXIOM_PORT must be an integer, got {raw!r}")


def main():
    """Serve the Axiom API (web.backend.app) with uvicorn."""
    setup_logging()

    reload_enabled = os.getenv("AXIOM_RELOAD", "0").lower() in {"1", "true", "yes"}
    host = os.getenv("AXIOM_HOST", "0.0.0.0")
    port = _port_from_env()
    logger.info("Starting Axiom API on %s:%d (reload=%s)", host, port, reload_enabled)

    uvicorn.run(
        "web.backend.app:app",
        host=host,
        port=port,
        reload=reload_enabled,
        reload_dirs=["web", "core", "scheduler"] if reload_enabled else None,
    )


if __name__ == "__main__":
    main()
