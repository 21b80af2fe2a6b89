from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv


logger = logging.getLogger(__name__)

_LOADED = False


def load_env(*, force: bool = False) -> Path | None:
    global _LOADED
    if _LOADED and not force:
        return None
    _LOADED = True

    base_dir = Path(__file__).resolve().parent
    # Project root .env first, then one placed next to the package.
    candidates = [
        base_dir.parent / ".env",
        base_dir / ".env",
    ]

    loaded_path: Path | None = None
    for path in candidates:
        if not path.exists():
            continue
        loaded_path = path
        # Real environment variables win (Docker/K8s).
        load_dotenv(dotenv_path=path, override=False)

    if loaded_path is not None:
        logger.debug("Environment loaded from %s", loaded_path)
    return loaded_path
