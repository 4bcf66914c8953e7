from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Position is a plain (x, y) pair of finite floats.
Position = tuple[float, float]


@dataclass(frozen=True)
class Node:
    id: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "data": self.data}


@dataclass(frozen=True)
class Edge:
    """Directed edge a -> b. Endpoints are fixed once the edge exists."""

    id: str
    a: str
    b: str
    data: dict[str, Any] = field(default_factory=dict)

    def payload(self) -> dict[str, Any]:
        """Wire form of the edge record: the data fields plus `id`."""
        return {**self.data, "id": self.id}


@dataclass(frozen=True)
class EdgeSpec:
    """A submitted edge; `id=None` lets the store allocate one."""

    a: str
    b: str
    id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class MergeResult:
    added_nodes: list[str] = field(default_factory=list)
    updated_nodes: list[str] = field(default_factory=list)
    added_edges: list[str] = field(default_factory=list)
    updated_edges: list[str] = field(default_factory=list)

    @property
    def structural(self) -> bool:
        # no deletions exist, so additions are the only structural change
        return bool(self.added_nodes or self.added_edges)

    def summary_line(self) -> str:
        return (
            f"nodes +{len(self.added_nodes)} ~{len(self.updated_nodes)}, "
            f"edges +{len(self.added_edges)} ~{len(self.updated_edges)}"
        )


@dataclass(frozen=True)
class TopologyView:
    """
    Immutable copy of the store's topology at one instant.

    `slots[i]` is the dense IdIndex slot of `nodes[i]`; `capacity` bounds all
    slots, so a layout engine can keep per-slot arrays of that size.
    `links` are (source, target) positions into `nodes` for every edge.
    """

    epoch: float
    version: int
    nodes: tuple[Node, ...] = ()
    slots: tuple[int, ...] = ()
    edges: tuple[Edge, ...] = ()
    links: tuple[tuple[int, int], ...] = ()
    capacity: int = 0

    @property
    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes]

    def __len__(self) -> int:
        return len(self.nodes)
