from __future__ import annotations

from .config import AppSettings
from .runtime import get_settings

_current: AppSettings | None = None


def set_current_settings(cfg: AppSettings) -> None:
    global _current
    _current = cfg


def current_settings() -> AppSettings:
    """Installed settings, falling back to the cached loader result."""
    return _current if _current is not None else get_settings()


def reset_current_settings() -> None:
    global _current
    _current = None
    get_settings.cache_clear()
