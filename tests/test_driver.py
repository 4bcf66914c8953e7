import threading
import time

import pytest

from graphpipe.config.config import AppSettings, DriverSettings
from graphpipe.contracts.errors import LayoutError
from graphpipe.core.graph.types import EdgeSpec, Node
from graphpipe.core.runtime.graph_runtime import GraphRuntime


@pytest.fixture()
def runtime() -> GraphRuntime:
    cfg = AppSettings(random_seed=3, driver=DriverSettings(tick_interval=0.005, idle_interval=0.05))
    rt = GraphRuntime(cfg)
    yield rt
    rt.stop()


def _wait_for(predicate, timeout_s: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_step_publishes_current_topology(runtime: GraphRuntime):
    runtime.merge([Node(id="a"), Node(id="b")], [EdgeSpec(a="a", b="b", id="e")])

    snap = runtime.driver.step()

    assert snap is not None
    assert runtime.latest() is snap
    assert {n.id for n, _ in snap.nodes} == {"a", "b"}
    assert [e.id for _, _, e in snap.edges] == ["e"]
    assert snap.epoch == runtime.epoch
    assert runtime.driver.ticks == 1


def test_failed_tick_keeps_the_last_snapshot(runtime: GraphRuntime, monkeypatch):
    runtime.merge([Node(id="a")], [])
    good = runtime.driver.step()

    def _boom(view, prior_positions=None):
        raise LayoutError("non-finite positions")

    monkeypatch.setattr(runtime.engine, "tick", _boom)
    runtime.merge([Node(id="b")], [])

    assert runtime.driver.step() is None
    assert runtime.driver.skipped == 1
    assert runtime.latest() is good


def test_notify_reheats_only_on_structural_change(runtime: GraphRuntime):
    runtime.merge([Node(id="a"), Node(id="b")], [EdgeSpec(a="a", b="b", id="e")])
    for _ in range(1000):
        runtime.driver.step()
        if runtime.engine.converged:
            break
    assert runtime.engine.converged

    runtime.merge([Node(id="a", data={"label": "renamed"})], [])
    assert runtime.engine.converged

    runtime.merge([Node(id="c")], [])
    assert not runtime.engine.converged


def test_background_loop_lays_out_and_stops(runtime: GraphRuntime):
    runtime.start()
    assert runtime.driver.running

    runtime.merge([Node(id="a"), Node(id="b")], [EdgeSpec(a="a", b="b")])
    assert _wait_for(lambda: len(runtime.latest().nodes) == 2)
    assert _wait_for(lambda: runtime.driver.idle)

    runtime.merge([Node(id="c")], [EdgeSpec(a="b", b="c")])
    assert _wait_for(lambda: len(runtime.latest().nodes) == 3)

    runtime.stop()
    assert not runtime.driver.running
    ticks = runtime.driver.ticks
    time.sleep(0.05)
    assert runtime.driver.ticks == ticks


def test_reset_discards_graph_and_changes_epoch(runtime: GraphRuntime):
    runtime.merge([Node(id="a")], [])
    runtime.driver.step()
    old_epoch = runtime.epoch

    new_epoch = runtime.reset()

    assert new_epoch > old_epoch
    assert runtime.epoch == new_epoch
    assert runtime.latest().epoch == new_epoch
    assert runtime.latest().nodes == ()
    assert runtime.store.node_count == 0

    runtime.merge([Node(id="z")], [])
    snap = runtime.driver.step()
    assert snap.epoch == new_epoch
    assert [n.id for n, _ in snap.nodes] == ["z"]


def test_dot_submission_creates_implicit_nodes(runtime: GraphRuntime):
    runtime.merge([Node(id="a", data={"label": "Alpha"})], [])

    result = runtime.submit_dot('digraph { a -> b [id=e1, color=red]; c [shape=box] }')

    assert sorted(result.added_nodes) == ["b", "c"]
    assert result.added_edges == ["e1"]
    assert runtime.store.get_node("a").data == {"label": "Alpha"}
    assert runtime.store.get_node("b").data == {"label": "b"}
    assert runtime.store.get_node("c").data == {"label": "c", "shape": "box"}
    assert runtime.store.get_edge("e1").data == {"color": "red"}


def test_pin_unknown_node_raises(runtime: GraphRuntime):
    from graphpipe.contracts.errors import UnknownNodeError

    with pytest.raises(UnknownNodeError):
        runtime.pin("ghost", (0.0, 0.0))


def test_identical_resubmission_leaves_converged_layout_alone(runtime: GraphRuntime):
    nodes = [Node(id="a", data={"label": "A"}), Node(id="b", data={"label": "B"})]
    edges = [EdgeSpec(a="a", b="b", id="e")]
    runtime.merge(nodes, edges)
    for _ in range(1000):
        runtime.driver.step()
        if runtime.engine.converged:
            break
    assert runtime.engine.converged
    settled = runtime.latest().positions()

    result = runtime.merge(nodes, edges)

    assert not result.structural
    assert result.added_nodes == [] and result.added_edges == []
    assert runtime.engine.converged

    after = runtime.driver.step().positions()
    for node_id, (x, y) in settled.items():
        ax, ay = after[node_id]
        assert abs(ax - x) < 0.1 and abs(ay - y) < 0.1


def test_reset_waits_for_an_in_flight_merge(runtime: GraphRuntime, monkeypatch):
    old_store, old_epoch = runtime.store, runtime.epoch
    entered, release = threading.Event(), threading.Event()
    real_merge = old_store.merge

    def _slow_merge(*args, **kwargs):
        entered.set()
        release.wait(5.0)
        return real_merge(*args, **kwargs)

    monkeypatch.setattr(old_store, "merge", _slow_merge)

    merger = threading.Thread(target=runtime.merge, args=([Node(id="late")], []))
    merger.start()
    assert entered.wait(2.0)

    resetter = threading.Thread(target=runtime.reset)
    resetter.start()
    time.sleep(0.1)
    try:
        assert resetter.is_alive()
        assert runtime.store is old_store
    finally:
        release.set()
        merger.join(5.0)
        resetter.join(5.0)

    assert old_store.has_node("late")
    assert runtime.store is not old_store
    assert runtime.epoch > old_epoch
    assert runtime.store.node_count == 0

    runtime.merge([Node(id="fresh")], [])
    assert runtime.store.has_node("fresh")
    assert [n.id for n, _ in runtime.driver.step().nodes] == ["fresh"]
