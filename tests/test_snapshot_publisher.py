import threading

import pytest

from graphpipe.contracts.errors import LayoutError
from graphpipe.core.graph.store import GraphStore
from graphpipe.core.graph.types import EdgeSpec, Node
from graphpipe.core.layout.snapshot import Snapshot, SnapshotPublisher


@pytest.fixture()
def store() -> GraphStore:
    s = GraphStore()
    s.merge([Node(id="a", data={"label": "A"}), Node(id="b")], [EdgeSpec(a="a", b="b", id="e", data={"w": 2})])
    return s


def test_empty_publisher_serves_empty_snapshot():
    pub = SnapshotPublisher(epoch=123.0)
    snap = pub.latest()
    assert snap.nodes == () and snap.edges == ()
    assert snap.to_dict() == {"nodes": [], "edges": [], "creation_time": 123.0}


def test_wire_form(store: GraphStore):
    snap = Snapshot.build(store.topology(), {"a": (1.0, 2.0), "b": (3.0, 4.0)}, converged=True)

    assert snap.to_dict() == {
        "nodes": [
            {"node": {"id": "a", "data": {"label": "A"}}, "pos": [1.0, 2.0]},
            {"node": {"id": "b", "data": {}}, "pos": [3.0, 4.0]},
        ],
        "edges": [["a", "b", {"w": 2, "id": "e"}]],
        "creation_time": store.epoch,
    }
    assert snap.converged
    assert snap.positions() == {"a": (1.0, 2.0), "b": (3.0, 4.0)}


def test_publish_swaps_the_reference(store: GraphStore):
    pub = SnapshotPublisher(store.epoch)
    snap = Snapshot.build(store.topology(), {"a": (0.0, 0.0), "b": (1.0, 1.0)})

    assert pub.publish(snap) is True
    assert pub.latest() is snap


def test_inconsistent_snapshots_are_refused(store: GraphStore):
    pub = SnapshotPublisher(store.epoch)
    before = pub.latest()

    with pytest.raises(LayoutError):
        pub.publish(Snapshot.build(store.topology(), {"a": (float("nan"), 0.0), "b": (1.0, 1.0)}))

    view = store.topology()
    edge = view.edges[0]
    dangling = Snapshot(
        epoch=store.epoch,
        nodes=((view.nodes[0], (0.0, 0.0)),),
        edges=((edge.a, edge.b, edge),),
    )
    with pytest.raises(LayoutError):
        pub.publish(dangling)

    assert pub.latest() is before


def test_stale_epoch_is_not_published(store: GraphStore):
    pub = SnapshotPublisher(store.epoch)
    snap = Snapshot.build(store.topology(), {"a": (0.0, 0.0), "b": (1.0, 1.0)})

    pub.reset(store.epoch + 1.0)
    assert pub.publish(snap) is False
    assert pub.latest().epoch == store.epoch + 1.0
    assert pub.latest().nodes == ()


def test_readers_always_see_a_consistent_snapshot(store: GraphStore):
    pub = SnapshotPublisher(store.epoch)
    stop = threading.Event()
    errors: list[str] = []

    def reader():
        while not stop.is_set():
            snap = pub.latest()
            ids = {n.id for n, _ in snap.nodes}
            for a, b, _ in snap.edges:
                if a not in ids or b not in ids:
                    errors.append(f"dangling edge {a}->{b}")

    t = threading.Thread(target=reader)
    t.start()
    try:
        for i in range(200):
            store.merge([Node(id=f"n{i}")], [EdgeSpec(a="a", b=f"n{i}")])
            view = store.topology()
            pub.publish(Snapshot.build(view, {n.id: (float(k), 0.0) for k, n in enumerate(view.nodes)}))
    finally:
        stop.set()
        t.join()

    assert errors == []
    assert len(pub.latest().nodes) == 202
