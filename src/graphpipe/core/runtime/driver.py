from __future__ import annotations

import logging
import threading

from graphpipe.config.config import DriverSettings
from graphpipe.contracts.errors import LayoutError
from graphpipe.core.graph.store import GraphStore
from graphpipe.core.graph.types import MergeResult
from graphpipe.core.layout.engine import LayoutEngine
from graphpipe.core.layout.snapshot import Snapshot, SnapshotPublisher


class Driver:
    """
    Owns the background tick loop.

    Each iteration reads the store's topology (under the store lock, released
    before any computation), ticks the engine, and publishes a Snapshot.

    Cadence:
      - `tick_interval` while the simulation is unconverged
      - `idle_interval` once converged
      - a structural change (notify) re-heats the engine and wakes the loop at once

    A tick that fails is logged and skipped; the previous snapshot stays visible.
    """

    def __init__(
        self,
        *,
        store: GraphStore,
        engine: LayoutEngine,
        publisher: SnapshotPublisher,
        settings: DriverSettings | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.settings = settings or DriverSettings()
        self._store = store
        self._engine = engine
        self._publisher = publisher
        self._bind_lock = threading.Lock()
        self._log = logger or logging.getLogger("graphpipe.driver")

        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._idle = False

        self.ticks = 0
        self.skipped = 0

    # -------- wiring --------

    def bind(
        self,
        store: GraphStore,
        engine: LayoutEngine,
        *,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        """Point the loop at a new graph instance (used by reset)."""
        with self._bind_lock:
            self._store = store
            self._engine = engine
            if logger is not None:
                self._log = logger
        self._idle = False
        self._wake.set()

    @property
    def engine(self) -> LayoutEngine:
        return self._engine

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def idle(self) -> bool:
        return self._idle

    def notify(self, result: MergeResult) -> None:
        """Called after every successful merge."""
        if not result.structural:
            return
        self._engine.reheat()
        self._idle = False
        self._log.debug("structural change, re-heating (%s)", result.summary_line())
        self._wake.set()

    def wake(self) -> None:
        self._wake.set()

    # -------- one iteration --------

    def step(self) -> Snapshot | None:
        """Run exactly one tick and publish its snapshot. Returns None if the tick was skipped."""
        with self._bind_lock:
            store, engine = self._store, self._engine

        view = store.topology()
        prior = self._publisher.latest()
        prior_positions = prior.positions() if prior.epoch == view.epoch else None

        try:
            positions = engine.tick(view, prior_positions)
            snapshot = Snapshot.build(view, positions, converged=engine.converged)
            published = self._publisher.publish(snapshot)
        except LayoutError as exc:
            self.skipped += 1
            self._log.warning("skipping tick, keeping last good snapshot: %s", exc)
            return None

        self.ticks += 1
        return snapshot if published else None

    # -------- background loop --------

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="graphpipe-layout", daemon=True)
        self._thread.start()
        self._log.info("layout driver started")

    def stop(self, timeout_s: float | None = None) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._wake.set()
        self._thread.join(timeout=timeout_s if timeout_s is not None else self.settings.join_timeout)
        if self._thread.is_alive():
            self._log.warning("layout driver did not stop within timeout")
        else:
            self._log.info("layout driver stopped after %d ticks (%d skipped)", self.ticks, self.skipped)
        self._thread = None

    def _run(self) -> None:
        while not self._stop.is_set():
            self._wake.clear()
            try:
                self.step()
            except Exception:  # noqa: BLE001
                # keep serving the last good snapshot whatever went wrong
                self._log.exception("layout tick failed")

            converged = self._engine.converged
            if converged and not self._idle:
                self._log.info("layout converged after %d ticks, idling", self.ticks)
            self._idle = converged
            interval = self.settings.idle_interval if converged else self.settings.tick_interval
            self._wake.wait(interval)
