from __future__ import annotations

from typing import Any


class GraphpipeError(Exception):
    """Base class for all errors raised by graphpipe."""


class ParseError(GraphpipeError):
    """Malformed graph-description text. The store is never touched."""

    def __init__(self, message: str, *, line: int | None = None, column: int | None = None):
        self.message = message
        self.line = line
        self.column = column
        where = f" (line {line}, column {column})" if line is not None else ""
        super().__init__(f"{message}{where}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "parse_error",
            "message": self.message,
            "line": self.line,
            "column": self.column,
        }


class ValidationError(GraphpipeError):
    """
    A merge batch was rejected as a whole.

    kind is one of:
      - "missing_endpoint": a new edge references a node that does not exist
      - "endpoint_redefinition": an existing edge id was resubmitted with other endpoints
      - "duplicate_edge": the same new edge id appears twice with different endpoints
    """

    def __init__(self, kind: str, message: str, *, item: dict[str, Any] | None = None):
        self.kind = kind
        self.message = message
        self.item = item or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "validation_error",
            "kind": self.kind,
            "message": self.message,
            "item": self.item,
        }


class UnknownNodeError(GraphpipeError, KeyError):
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")

    def __str__(self) -> str:
        return f"Node not found: {self.node_id}"


class LayoutError(GraphpipeError, RuntimeError):
    """Internal: the simulation produced coordinates that must not be published."""
