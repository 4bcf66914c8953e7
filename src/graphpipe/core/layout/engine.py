from __future__ import annotations

from collections.abc import Mapping
import threading

import numpy as np

from graphpipe.config.config import LayoutSettings
from graphpipe.contracts.errors import LayoutError
from graphpipe.core.graph.types import Position, TopologyView

_JIGGLE = 1e-6


class LayoutEngine:
    """
    Incremental force-directed layout (d3-force style, exact pairwise repulsion).

    Per-node LayoutState lives in slot-indexed arrays sized to the store's
    IdIndex capacity:

      pos[slot]    current position
      vel[slot]    current velocity
      pinned[slot] position is fixed
      known[slot]  the slot has state at all

    Forces:
      - link: pulls edge endpoints toward `link_distance`
      - many-body: every pair repels with `charge_strength / distance`
      - both are scaled by the temperature `alpha`, which decays every tick

    tick() never mutates state when it fails: all new arrays are computed first
    and committed only if every coordinate is finite.
    """

    def __init__(self, settings: LayoutSettings | None = None, *, seed: int | None = None):
        self.settings = settings or LayoutSettings()
        self._rng = np.random.default_rng(seed)
        self._pos = np.zeros((0, 2))
        self._vel = np.zeros((0, 2))
        self._pinned = np.zeros(0, dtype=bool)
        self._known = np.zeros(0, dtype=bool)
        self._alpha = self.settings.initial_alpha
        self._alpha_decay = self.settings.resolved_alpha_decay()
        self._last_displacement = float("inf")

        # Requests from other threads, applied at the start of the next tick.
        self._requests = threading.Lock()
        self._reheat_pending = False
        self._pin_requests: dict[int, Position | None] = {}

    # -------- control (any thread) --------

    def reheat(self) -> None:
        """Restore the temperature; positions and velocities are kept."""
        with self._requests:
            self._reheat_pending = True

    def pin(self, slot: int, position: Position | None) -> None:
        """Pin the node in `slot` at `position`, or release it when None."""
        with self._requests:
            self._pin_requests[slot] = position
            self._reheat_pending = True

    # -------- state --------

    @property
    def alpha(self) -> float:
        return self._alpha

    @property
    def last_displacement(self) -> float:
        return self._last_displacement

    @property
    def converged(self) -> bool:
        with self._requests:
            if self._reheat_pending:
                return False
        s = self.settings
        return self._alpha < s.alpha_min or self._last_displacement < s.convergence_threshold

    def has_state(self, slot: int) -> bool:
        return slot < len(self._known) and bool(self._known[slot])

    def is_pinned(self, slot: int) -> bool:
        return slot < len(self._pinned) and bool(self._pinned[slot])

    def forget(self, slot: int) -> None:
        """Drop the LayoutState of `slot`; the node is re-seeded on its next tick."""
        if slot < len(self._known):
            self._known[slot] = False
            self._pinned[slot] = False
            self._vel[slot] = 0.0

    # -------- simulation --------

    def tick(
        self,
        view: TopologyView,
        prior_positions: Mapping[str, Position] | None = None,
    ) -> dict[str, Position]:
        """
        Advance the simulation one step over `view`.

        Nodes with LayoutState continue from it. Nodes without state adopt their
        entry in `prior_positions` if any, else are seeded near their positioned
        neighbours (or the whole graph) with bounded jitter.

        Returns node id -> new position for every node of the view.

        Raises:
            LayoutError: the step produced non-finite coordinates; nothing is committed
              and queued reheat / pin requests stay queued for the next tick.
        """
        pos, vel, pinned, known = self._grown(view.capacity)
        reheat, pins = self._take_requests()
        try:
            return self._step(view, prior_positions, pos, vel, pinned, known, reheat, pins)
        except LayoutError:
            self._requeue(reheat, pins)
            raise

    def _step(self, view, prior_positions, pos, vel, pinned, known, reheat, pins) -> dict[str, Position]:
        s = self.settings
        alpha = self._apply_requests(pos, vel, pinned, known, reheat, pins)

        n = len(view.nodes)
        if n == 0:
            self._commit(pos, vel, pinned, known, alpha, 0.0)
            return {}

        slots = np.fromiter(view.slots, dtype=np.intp, count=n)
        links = np.array(view.links, dtype=np.intp).reshape(-1, 2)
        links = links[links[:, 0] != links[:, 1]]

        p = pos[slots]
        v = vel[slots]
        fixed = pinned[slots]
        had_state = known[slots]

        self._adopt_prior(view, p, v, had_state, prior_positions)
        self._seed(p, v, had_state, links)

        alpha += (s.alpha_target - alpha) * self._alpha_decay

        self._apply_links(p, v, links, alpha)
        self._apply_charge(p, v, alpha)

        v *= 1.0 - s.velocity_decay
        v[fixed] = 0.0
        p_new = p + v

        if not (np.isfinite(p_new).all() and np.isfinite(v).all()):
            bad = [view.nodes[i].id for i in np.flatnonzero(~np.isfinite(p_new).all(axis=1))]
            raise LayoutError(f"non-finite positions for nodes {bad[:10]}")

        displacement = float(np.sqrt((v * v).sum(axis=1)).max())
        pos[slots] = p_new
        vel[slots] = v
        known[slots] = True
        self._commit(pos, vel, pinned, known, alpha, displacement)

        return {node.id: (float(x), float(y)) for node, (x, y) in zip(view.nodes, p_new)}

    # -------- internals --------

    def _grown(self, capacity: int) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Copies of the state arrays, extended to `capacity` slots."""
        extra = max(0, capacity - len(self._known))
        pos = np.concatenate([self._pos, np.zeros((extra, 2))])
        vel = np.concatenate([self._vel, np.zeros((extra, 2))])
        pinned = np.concatenate([self._pinned, np.zeros(extra, dtype=bool)])
        known = np.concatenate([self._known, np.zeros(extra, dtype=bool)])
        return pos, vel, pinned, known

    def _take_requests(self) -> tuple[bool, dict[int, Position | None]]:
        with self._requests:
            reheat = self._reheat_pending
            pins = self._pin_requests
            self._reheat_pending = False
            self._pin_requests = {}
        return reheat, pins

    def _requeue(self, reheat: bool, pins: dict[int, Position | None]) -> None:
        """Put back requests taken by a tick that failed; newer pins win."""
        with self._requests:
            self._reheat_pending = self._reheat_pending or reheat
            self._pin_requests = {**pins, **self._pin_requests}

    def _apply_requests(self, pos, vel, pinned, known, reheat: bool, pins: dict[int, Position | None]) -> float:
        for slot, target in pins.items():
            if slot >= len(known):
                continue
            if target is None:
                pinned[slot] = False
                continue
            pos[slot] = target
            vel[slot] = 0.0
            pinned[slot] = True
            known[slot] = True

        alpha = self._alpha
        if reheat:
            alpha = max(alpha, self.settings.reheat_alpha)
        return alpha

    def _commit(self, pos, vel, pinned, known, alpha: float, displacement: float) -> None:
        self._pos, self._vel, self._pinned, self._known = pos, vel, pinned, known
        self._alpha = alpha
        self._last_displacement = displacement

    @staticmethod
    def _adopt_prior(view, p, v, had_state, prior_positions) -> None:
        if not prior_positions:
            return
        for i in np.flatnonzero(~had_state):
            prior = prior_positions.get(view.nodes[i].id)
            if prior is not None and all(np.isfinite(prior)):
                p[i] = prior
                v[i] = 0.0
                had_state[i] = True

    def _seed(self, p, v, had_state, links) -> None:
        fresh = np.flatnonzero(~had_state)
        if len(fresh) == 0:
            return

        if had_state.any():
            centroid = p[had_state].mean(axis=0)
        else:
            centroid = np.zeros(2)

        # Only neighbours positioned before this tick count as anchors.
        sums = np.zeros_like(p)
        counts = np.zeros(len(p))
        if len(links):
            src, dst = links[:, 0], links[:, 1]
            for a, b in ((src, dst), (dst, src)):
                anchored = had_state[b]
                np.add.at(sums, a[anchored], p[b[anchored]])
                np.add.at(counts, a[anchored], 1.0)

        jitter = self.settings.seed_jitter
        for i in fresh:
            base = sums[i] / counts[i] if counts[i] > 0 else centroid
            p[i] = base + self._rng.uniform(-jitter, jitter, size=2)
            v[i] = 0.0

    def _apply_links(self, p, v, links, alpha: float) -> None:
        if len(links) == 0:
            return
        s = self.settings
        src, dst = links[:, 0], links[:, 1]

        degree = np.bincount(links.ravel(), minlength=len(p)).astype(float)
        bias = degree[src] / (degree[src] + degree[dst])

        delta = (p[dst] + v[dst]) - (p[src] + v[src])
        delta = self._jiggled(delta)
        length = np.sqrt((delta * delta).sum(axis=1))
        scale = (length - s.link_distance) / length * alpha * s.link_strength
        delta *= scale[:, None]

        np.add.at(v, dst, -delta * bias[:, None])
        np.add.at(v, src, delta * (1.0 - bias)[:, None])

    def _apply_charge(self, p, v, alpha: float) -> None:
        n = len(p)
        if n < 2:
            return
        s = self.settings

        delta = p[None, :, :] - p[:, None, :]  # delta[i, j] = p[j] - p[i]
        off_diag = ~np.eye(n, dtype=bool)
        coincident = off_diag & (delta == 0.0).all(axis=2)
        if coincident.any():
            delta[coincident] = self._rng.uniform(-_JIGGLE, _JIGGLE, size=(int(coincident.sum()), 2))

        dist2 = (delta * delta).sum(axis=2)
        min2 = s.distance_min * s.distance_min
        close = dist2 < min2
        dist2 = np.where(close, np.sqrt(min2 * dist2), dist2)
        dist2[~off_diag] = 1.0

        weight = np.where(off_diag, s.charge_strength * alpha / dist2, 0.0)
        v += (delta * weight[:, :, None]).sum(axis=1)

    def _jiggled(self, delta: np.ndarray) -> np.ndarray:
        zero = (delta == 0.0).all(axis=1)
        if zero.any():
            delta = delta.copy()
            delta[zero] = self._rng.uniform(-_JIGGLE, _JIGGLE, size=(int(zero.sum()), 2))
        return delta
