# Schemas for request and response bodies used in the API.

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, FiniteFloat


# --------- Submit ---------
class NodeIn(BaseModel):
    id: str
    data: dict[str, Any] | None = None  # defaults to {"label": id}

    def resolved_data(self) -> dict[str, Any]:
        return self.data if self.data is not None else {"label": self.id}


class EdgeRecord(BaseModel):
    """Edge record of a submission: an optional `id` plus arbitrary data fields."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None

    def data(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class EdgeIn(BaseModel):
    a: str
    b: str
    edge: EdgeRecord = Field(default_factory=EdgeRecord)


class SubmitRequest(BaseModel):
    nodes: list[NodeIn] = []
    edges: list[EdgeIn] = []


class SubmitResponse(BaseModel):
    ok: bool = True
    added_nodes: list[str] = []
    updated_nodes: list[str] = []
    added_edges: list[str] = []
    updated_edges: list[str] = []


# --------- Reads ---------
class NodeOut(BaseModel):
    id: str
    data: dict[str, Any]


class GraphEdgeOut(BaseModel):
    a: str
    b: str
    edge: dict[str, Any]


class GraphResponse(BaseModel):
    nodes: list[NodeOut]
    edges: list[GraphEdgeOut]
    creation_time: float


class LayoutNodeOut(BaseModel):
    node: NodeOut
    pos: tuple[float, float]


class LayoutResponse(BaseModel):
    nodes: list[LayoutNodeOut]
    edges: list[tuple[str, str, dict[str, Any]]]
    creation_time: float


# --------- Control ---------
class PinRequest(BaseModel):
    id: str
    pos: tuple[FiniteFloat, FiniteFloat] | None = None  # None releases the pin


class PinResponse(BaseModel):
    ok: bool = True
    id: str
    pinned: bool


class ResetResponse(BaseModel):
    ok: bool = True
    creation_time: float


class HealthResponse(BaseModel):
    status: str = "ok"
    nodes: int
    edges: int
    converged: bool
    creation_time: float
    ticks: int = 0
