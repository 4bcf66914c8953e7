# graphpipe/config/loader.py
import logging
import os
from pathlib import Path
from typing import Iterable

from .config import AppSettings


def _existing(paths: Iterable[Path]) -> list[Path]:
    return [p for p in paths if p.exists()]


def load_settings() -> AppSettings:
    root = Path.cwd()

    # allow an explicit path via env var
    explicit = Path(os.environ["GRAPHPIPE_ENV_FILE"]) if "GRAPHPIPE_ENV_FILE" in os.environ else None

    candidates = _existing([
        explicit or Path("NON_EXISTENT"),  # placeholder if not set
        root / ".env",
        root / ".env.local",
    ])

    if explicit and not explicit.exists():
        raise FileNotFoundError(f"Explicitly specified env file not found: {explicit}")

    if not candidates:
        log = logging.getLogger("graphpipe.config.loader")
        log.debug("No env files found; using defaults and env vars only.")
        return AppSettings()

    # Later files override earlier ones
    return AppSettings(_env_file=[str(p) for p in candidates])
