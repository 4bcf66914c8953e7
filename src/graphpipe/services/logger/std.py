from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
import logging, queue
import logging.handlers

from typing import Optional, Mapping

from graphpipe.config.config import AppSettings

from .base import LoggerService, LogContext
from .formatters import SafeFormatter, JsonFormatter, ColorFormatter


def _ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class LoggingConfig:
    """
    Configure sinks & formats.

    Attributes:
      root_ns: base logger name to use (`graphpipe`).
      level: default level for root logger.
      log_dir: directory for file logs (rotated); None disables the file sink.
      use_json: True => JSON logs for files; console stays text.
      enable_queue: True => offload file IO via QueueHandler/Listener (non-blocking).
      per_namespace_levels: optional map (e.g. {"graphpipe.driver": "DEBUG"}).
      console_pattern: text format string for console.
      file_pattern: text format string for file when use_json=False.
      max_bytes / backup_count: rotation for file handlers.
    """
    root_ns: str = "graphpipe"
    level: str = "INFO"
    log_dir: Optional[str] = None
    use_json: bool = False
    enable_queue: bool = False
    per_namespace_levels: Mapping[str, str] = field(default_factory=dict)
    console_pattern: str = "%(asctime)s %(levelname)s \t%(name)s    epoch=%(epoch)s - %(message)s"
    file_pattern: str = "%(asctime)s %(levelname)s %(name)s %(epoch)s %(component)s %(message)s"
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5

    @staticmethod
    def from_env() -> "LoggingConfig":
        return LoggingConfig(
            root_ns=os.getenv("GRAPHPIPE_LOG_ROOT", "graphpipe"),
            level=os.getenv("GRAPHPIPE_LOG_LEVEL", "INFO"),
            log_dir=os.getenv("GRAPHPIPE_LOG_DIR") or None,
            use_json=os.getenv("GRAPHPIPE_LOG_JSON", "0") == "1",
            enable_queue=os.getenv("GRAPHPIPE_LOG_ASYNC", "0") == "1",
        )

    @staticmethod
    def from_cfg(cfg: AppSettings, log_dir: Optional[str] = None) -> "LoggingConfig":
        return LoggingConfig(
            root_ns="graphpipe",
            level=cfg.logging.level,
            log_dir=log_dir or cfg.logging.log_dir,
            use_json=cfg.logging.json_logs,
            enable_queue=True,
        )


class _ContextAdapter(logging.LoggerAdapter):
    """
    Injects contextual fields into LogRecord via `extra`.
    Preserves original logger API (info, debug, etc.).
    """
    def process(self, msg, kwargs):
        extra = kwargs.get("extra") or {}
        merged = {**self.extra, **extra}
        kwargs["extra"] = merged
        return msg, kwargs


class StdLoggerService(LoggerService):
    """
      • text/JSON formatters
      • per-namespace levels
      • optional async file IO via QueueHandler
      • context helpers (with_context / for_*)
    """
    def __init__(self, base: logging.Logger, *, cfg: LoggingConfig,
                 listener: Optional[logging.handlers.QueueListener] = None):
        self._base = base
        self._cfg = cfg
        self._listener = listener

    # --- LoggerService interface ---

    def base(self) -> logging.Logger:
        return self._base

    def for_namespace(self, ns: str) -> logging.Logger:
        return self._base.getChild(ns)

    def with_context(self, logger: logging.Logger, ctx: LogContext) -> logging.Logger:
        return _ContextAdapter(logger, ctx.as_extra())

    def for_store(self, *, epoch: Optional[float] = None) -> logging.Logger:
        return self.with_context(self.for_namespace("store"), LogContext(epoch=epoch, component="store"))

    def for_driver(self, *, epoch: Optional[float] = None) -> logging.Logger:
        return self.with_context(self.for_namespace("driver"), LogContext(epoch=epoch, component="driver"))

    def for_api(self) -> logging.Logger:
        return self.with_context(self.for_namespace("api"), LogContext(component="api"))

    def shutdown(self) -> None:
        if self._listener is not None:
            self._listener.stop()
            self._listener = None

    # --- builder ---

    @staticmethod
    def build(cfg: Optional[LoggingConfig] = None) -> "StdLoggerService":
        cfg = cfg or LoggingConfig.from_env()
        level = getattr(logging, cfg.level.upper(), logging.INFO)

        root = logging.getLogger(cfg.root_ns)
        # Reset handlers if rebuilding (idempotent server restarts)
        for h in list(root.handlers):
            root.removeHandler(h)
        root.setLevel(level)
        root.propagate = False

        # Per-namespace levels
        for ns, lvl in cfg.per_namespace_levels.items():
            logging.getLogger(ns).setLevel(getattr(logging, str(lvl).upper(), logging.INFO))

        # Console handler (text)
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(ColorFormatter(cfg.console_pattern))
        root.addHandler(console)

        listener = None
        if cfg.log_dir:
            # File handler (rotating)
            _ensure_dir(Path(cfg.log_dir))
            file_path = Path(cfg.log_dir) / "graphpipe.log"
            fh = logging.handlers.RotatingFileHandler(
                file_path, maxBytes=cfg.max_bytes, backupCount=cfg.backup_count, encoding="utf-8"
            )
            if cfg.use_json:
                fh.setFormatter(JsonFormatter())
            else:
                fh.setFormatter(SafeFormatter(cfg.file_pattern))
            fh.setLevel(level)

            if cfg.enable_queue:
                # Non-blocking file IO
                q = queue.Queue(-1)
                root.addHandler(logging.handlers.QueueHandler(q))
                listener = logging.handlers.QueueListener(q, fh, respect_handler_level=True)
                listener.start()
            else:
                root.addHandler(fh)

        return StdLoggerService(root, cfg=cfg, listener=listener)
