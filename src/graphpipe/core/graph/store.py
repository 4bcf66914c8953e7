from __future__ import annotations

from collections.abc import Iterable, Sequence
import copy
import logging
import threading
import time
from typing import Any

from graphpipe.contracts.errors import UnknownNodeError, ValidationError

from .ids import IdIndex
from .types import Edge, EdgeSpec, MergeResult, Node, TopologyView

_epoch_lock = threading.Lock()
_last_epoch = 0.0


def new_epoch() -> float:
    """Wall-clock seconds, strictly increasing within this process."""
    global _last_epoch
    with _epoch_lock:
        now = time.time()
        if now <= _last_epoch:
            now = _last_epoch + 1e-6
        _last_epoch = now
        return now


class GraphStore:
    """
    Canonical node/edge collections of one graph instance.

    - Nodes and edges are keyed by stable string ids and kept in insertion order.
    - The only mutation is merge(); a rejected batch leaves no trace.
    - `epoch` is fixed at construction; a reset means building a new store.
    - Thread-safe via one RLock held for the duration of a merge or a read,
      never across a layout tick.
    """

    def __init__(
        self,
        *,
        epoch: float | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.epoch = epoch if epoch is not None else new_epoch()
        self._nodes: dict[str, Node] = {}
        self._edges: dict[str, Edge] = {}
        self._ids = IdIndex()
        self._adjacent: dict[str, set[str]] = {}
        self._edge_counter = 0
        self._version = 0
        self._view: TopologyView | None = None
        self._lock = threading.RLock()
        self._log = logger or logging.getLogger("graphpipe.store")

    # -------- reads --------

    @property
    def version(self) -> int:
        """Incremented by every merge that changes anything."""
        return self._version

    @property
    def node_count(self) -> int:
        with self._lock:
            return len(self._nodes)

    @property
    def edge_count(self) -> int:
        with self._lock:
            return len(self._edges)

    def has_node(self, node_id: str) -> bool:
        with self._lock:
            return node_id in self._nodes

    def get_node(self, node_id: str) -> Node:
        with self._lock:
            try:
                return self._nodes[node_id]
            except KeyError:
                raise UnknownNodeError(node_id) from None

    def get_edge(self, edge_id: str) -> Edge | None:
        with self._lock:
            return self._edges.get(edge_id)

    def nodes(self) -> list[Node]:
        with self._lock:
            return list(self._nodes.values())

    def edges(self) -> list[Edge]:
        with self._lock:
            return list(self._edges.values())

    def neighbors(self, node_id: str) -> list[str]:
        """Ids of nodes sharing an edge with `node_id`, in either direction."""
        with self._lock:
            if node_id not in self._nodes:
                raise UnknownNodeError(node_id)
            return sorted(self._adjacent.get(node_id, ()))

    def slot_of(self, node_id: str) -> int:
        with self._lock:
            return self._ids.index_of(node_id)

    def topology(self) -> TopologyView:
        """
        Immutable topology for the layout engine.

        The view is rebuilt only after a merge changed something; between merges
        every caller gets the same object.
        """
        with self._lock:
            if self._view is not None and self._view.version == self._version:
                return self._view
            nodes = tuple(self._nodes.values())
            position = {n.id: i for i, n in enumerate(nodes)}
            edges = tuple(self._edges.values())
            self._view = TopologyView(
                epoch=self.epoch,
                version=self._version,
                nodes=nodes,
                slots=tuple(self._ids.index_of(n.id) for n in nodes),
                edges=edges,
                links=tuple((position[e.a], position[e.b]) for e in edges),
                capacity=self._ids.capacity,
            )
            return self._view

    # -------- merge --------

    def merge(
        self,
        nodes: Sequence[Node],
        edges: Sequence[EdgeSpec],
        *,
        ensure: Iterable[str] = (),
    ) -> MergeResult:
        """
        Apply one submission atomically.

        Nodes are applied first, in order, so edges may reference nodes of the
        same batch. `ensure` lists node ids that must exist afterwards; missing
        ones are created with `{"label": id}` while existing ones keep their data.

        Raises:
            ValidationError: a new edge references a missing node, or an existing
              edge id is resubmitted with different endpoints. Nothing is applied.
        """
        ensure = list(ensure)
        with self._lock:
            self._validate(nodes, edges, ensure)
            result = self._apply(nodes, edges, ensure)
            if result.added_nodes or result.updated_nodes or result.added_edges or result.updated_edges:
                self._version += 1
        self._log.debug("merge applied: %s", result.summary_line())
        return result

    def _validate(self, nodes: Sequence[Node], edges: Sequence[EdgeSpec], ensure: list[str]) -> None:
        known = set(self._nodes)
        known.update(n.id for n in nodes)
        known.update(ensure)

        pending: dict[str, tuple[str, str]] = {}
        for spec in edges:
            item = {"id": spec.id, "a": spec.a, "b": spec.b}
            existing = self._edges.get(spec.id) if spec.id is not None else None
            if existing is not None:
                if (existing.a, existing.b) != (spec.a, spec.b):
                    self._reject(
                        "endpoint_redefinition",
                        f"Edge {spec.id!r} already connects {existing.a!r} -> {existing.b!r}; "
                        f"endpoints cannot change to {spec.a!r} -> {spec.b!r}",
                        item,
                    )
                continue

            for endpoint in (spec.a, spec.b):
                if endpoint not in known:
                    self._reject(
                        "missing_endpoint",
                        f"Edge {spec.id or '<new>'} references unknown node {endpoint!r}",
                        item,
                    )

            if spec.id is not None:
                seen = pending.setdefault(spec.id, (spec.a, spec.b))
                if seen != (spec.a, spec.b):
                    self._reject(
                        "duplicate_edge",
                        f"Edge {spec.id!r} appears twice in one batch with different endpoints",
                        item,
                    )

    def _reject(self, kind: str, message: str, item: dict[str, Any]) -> None:
        self._log.info("merge rejected (%s): %s", kind, message)
        raise ValidationError(kind, message, item=item)

    def _apply(self, nodes: Sequence[Node], edges: Sequence[EdgeSpec], ensure: list[str]) -> MergeResult:
        result = MergeResult()
        added: set[str] = set()
        updated: set[str] = set()

        for node in nodes:
            fresh = node.id not in self._nodes
            self._nodes[node.id] = Node(id=node.id, data=copy.deepcopy(node.data))
            if fresh:
                self._ids.acquire(node.id)
                self._adjacent.setdefault(node.id, set())
                result.added_nodes.append(node.id)
                added.add(node.id)
            elif node.id not in added and node.id not in updated:
                result.updated_nodes.append(node.id)
                updated.add(node.id)

        for node_id in ensure:
            if node_id in self._nodes:
                continue
            self._nodes[node_id] = Node(id=node_id, data={"label": node_id})
            self._ids.acquire(node_id)
            self._adjacent.setdefault(node_id, set())
            result.added_nodes.append(node_id)
            added.add(node_id)

        added_edges: set[str] = set()
        reserved = {s.id for s in edges if s.id is not None}
        for spec in edges:
            edge_id = spec.id if spec.id is not None else self._new_edge_id(reserved)
            data = copy.deepcopy(spec.data)
            if edge_id in self._edges:
                self._edges[edge_id] = Edge(id=edge_id, a=spec.a, b=spec.b, data=data)
                if edge_id not in added_edges and edge_id not in result.updated_edges:
                    result.updated_edges.append(edge_id)
                continue
            self._edges[edge_id] = Edge(id=edge_id, a=spec.a, b=spec.b, data=data)
            if spec.a != spec.b:
                self._adjacent[spec.a].add(spec.b)
                self._adjacent[spec.b].add(spec.a)
            result.added_edges.append(edge_id)
            added_edges.add(edge_id)

        return result

    def _new_edge_id(self, reserved: set[str]) -> str:
        # Not registered here; the caller inserts the edge right away.
        while True:
            self._edge_counter += 1
            edge_id = f"_gpe{self._edge_counter}"
            if edge_id not in self._edges and edge_id not in reserved:
                return edge_id
