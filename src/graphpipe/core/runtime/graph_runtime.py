from __future__ import annotations

from collections.abc import Iterable, Sequence
import logging
import threading

from graphpipe.config.config import AppSettings
from graphpipe.contracts.errors import UnknownNodeError
from graphpipe.core.graph.store import GraphStore, new_epoch
from graphpipe.core.graph.types import EdgeSpec, MergeResult, Node, Position
from graphpipe.core.layout.engine import LayoutEngine
from graphpipe.core.layout.snapshot import Snapshot, SnapshotPublisher
from graphpipe.services.logger.base import LoggerService
from graphpipe.services.parsers.dot import parse_dot

from .driver import Driver


class GraphRuntime:
    """
    One live graph instance plus the machinery that lays it out.

    - store: accumulates submissions (merge only)
    - engine: force-directed layout state
    - publisher: latest immutable Snapshot for pollers
    - driver: background tick loop

    reset() swaps in a fresh store and engine; the epoch changes only there.
    """

    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        logger_service: LoggerService | None = None,
    ):
        self.settings = settings or AppSettings()
        self._logs = logger_service
        self._reset_lock = threading.Lock()

        self.store = self._new_store()
        self.engine = self._new_engine()
        self.publisher = SnapshotPublisher(self.store.epoch)
        self.driver = Driver(
            store=self.store,
            engine=self.engine,
            publisher=self.publisher,
            settings=self.settings.driver,
            logger=self._driver_logger(self.store.epoch),
        )

    # -------- logging helpers --------

    def _store_logger(self, epoch: float) -> logging.Logger | logging.LoggerAdapter:
        if self._logs is not None:
            return self._logs.for_store(epoch=epoch)
        return logging.getLogger("graphpipe.store")

    def _driver_logger(self, epoch: float) -> logging.Logger | logging.LoggerAdapter:
        if self._logs is not None:
            return self._logs.for_driver(epoch=epoch)
        return logging.getLogger("graphpipe.driver")

    def _new_store(self) -> GraphStore:
        epoch = new_epoch()
        return GraphStore(epoch=epoch, logger=self._store_logger(epoch))

    def _new_engine(self) -> LayoutEngine:
        return LayoutEngine(self.settings.layout, seed=self.settings.random_seed)

    # -------- lifecycle --------

    def start(self) -> None:
        self.driver.start()

    def stop(self) -> None:
        self.driver.stop()

    @property
    def epoch(self) -> float:
        return self.store.epoch

    def reset(self) -> float:
        """Discard the whole graph and start a new instance. Returns the new epoch."""
        with self._reset_lock:
            store = self._new_store()
            engine = self._new_engine()
            self.store, self.engine = store, engine
            self.publisher.reset(store.epoch)
            self.driver.bind(store, engine, logger=self._driver_logger(store.epoch))
        self._store_logger(store.epoch).info("graph reset, new epoch %.6f", store.epoch)
        return store.epoch

    # -------- writes --------

    def merge(
        self,
        nodes: Sequence[Node],
        edges: Sequence[EdgeSpec],
        *,
        ensure: Iterable[str] = (),
    ) -> MergeResult:
        """Merge into the current instance; a concurrent reset() waits for it to land."""
        with self._reset_lock:
            result = self.store.merge(nodes, edges, ensure=ensure)
            self.driver.notify(result)
        return result

    def submit_dot(self, text: str) -> MergeResult:
        """Parse DOT text and merge it; implicit edge endpoints are created on demand."""
        fragment = parse_dot(text)
        return self.merge(fragment.nodes, fragment.edges, ensure=fragment.implicit_nodes)

    def pin(self, node_id: str, position: Position | None) -> None:
        with self._reset_lock:
            store, engine = self.store, self.engine
            if not store.has_node(node_id):
                raise UnknownNodeError(node_id)
            engine.pin(store.slot_of(node_id), position)
        self.driver.wake()

    # -------- reads --------

    def latest(self) -> Snapshot:
        return self.publisher.latest()
