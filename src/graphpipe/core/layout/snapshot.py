from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import math
import threading
from typing import Any

from graphpipe.contracts.errors import LayoutError
from graphpipe.core.graph.types import Edge, Node, Position, TopologyView


@dataclass(frozen=True)
class Snapshot:
    """
    Complete, consistent externally visible state at one publish instant.

    Immutable: tuples all the way down, and node/edge payloads are never
    mutated by the store (a merge replaces them wholesale).
    """

    epoch: float
    nodes: tuple[tuple[Node, Position], ...] = ()
    edges: tuple[tuple[str, str, Edge], ...] = ()
    version: int = 0  # store version the snapshot was built from
    converged: bool = False

    @classmethod
    def empty(cls, epoch: float) -> Snapshot:
        return cls(epoch=epoch)

    @classmethod
    def build(
        cls,
        view: TopologyView,
        positions: Mapping[str, Position],
        *,
        converged: bool = False,
    ) -> Snapshot:
        return cls(
            epoch=view.epoch,
            nodes=tuple((node, positions[node.id]) for node in view.nodes),
            edges=tuple((e.a, e.b, e) for e in view.edges),
            version=view.version,
            converged=converged,
        )

    def positions(self) -> dict[str, Position]:
        return {node.id: pos for node, pos in self.nodes}

    def check(self) -> None:
        """Raise LayoutError unless every position is finite and every edge endpoint is present."""
        ids = set()
        for node, (x, y) in self.nodes:
            if not (math.isfinite(x) and math.isfinite(y)):
                raise LayoutError(f"non-finite position for node {node.id!r}")
            ids.add(node.id)
        for a, b, edge in self.edges:
            if a not in ids or b not in ids:
                raise LayoutError(f"edge {edge.id!r} references a node missing from the snapshot")

    def to_dict(self) -> dict[str, Any]:
        """Wire form polled by viewers."""
        return {
            "nodes": [{"node": node.to_dict(), "pos": [x, y]} for node, (x, y) in self.nodes],
            "edges": [[a, b, edge.payload()] for a, b, edge in self.edges],
            "creation_time": self.epoch,
        }


class SnapshotPublisher:
    """
    Holds the latest Snapshot.

    latest() is a plain attribute read of an immutable value and never blocks.
    publish() swaps the reference; the writer-side lock only orders concurrent
    publishers (the driver and a reset) and is never taken by readers.
    """

    def __init__(self, epoch: float):
        self._latest = Snapshot.empty(epoch)
        self._epoch = epoch
        self._write_lock = threading.Lock()

    @property
    def epoch(self) -> float:
        return self._epoch

    def latest(self) -> Snapshot:
        return self._latest

    def publish(self, snapshot: Snapshot) -> bool:
        """
        Make `snapshot` visible.

        Returns False (and keeps the current snapshot) when the snapshot belongs
        to a graph instance that has since been reset.

        Raises:
            LayoutError: the snapshot is internally inconsistent or has non-finite positions.
        """
        snapshot.check()
        with self._write_lock:
            if snapshot.epoch != self._epoch:
                return False
            self._latest = snapshot
            return True

    def reset(self, epoch: float) -> None:
        """Switch to a new graph instance and publish its empty snapshot."""
        with self._write_lock:
            self._epoch = epoch
            self._latest = Snapshot.empty(epoch)
