from __future__ import annotations
from dataclasses import dataclass
from typing import Protocol, Optional, Mapping, Any
import logging


@dataclass(frozen=True)
class LogContext:
    epoch: Optional[float] = None
    component: Optional[str] = None

    def as_extra(self) -> Mapping[str, Any]:
        # Only include non-None fields; logging.Formatter will lookup keys by name.
        return {k: v for k, v in self.__dict__.items() if v is not None}


class LoggerService(Protocol):
    """Contract used by the rest of the system (store, driver, api)."""

    def base(self) -> logging.Logger: ...
    def for_namespace(self, ns: str) -> logging.Logger: ...
    def with_context(self, logger: logging.Logger, ctx: LogContext) -> logging.Logger: ...

    def for_store(self, *, epoch: Optional[float] = None) -> logging.Logger: ...
    def for_driver(self, *, epoch: Optional[float] = None) -> logging.Logger: ...
    def for_api(self) -> logging.Logger: ...
