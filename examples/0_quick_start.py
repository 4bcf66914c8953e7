import time

import httpx

from graphpipe import start_server

# a small graph: nodes first, then edges (edges may reference nodes of the same batch)
FIRST = {
    "nodes": [{"id": "0", "data": {"label": "A"}}, {"id": "1", "data": {"label": "B"}}],
    "edges": [{"a": "0", "b": "1", "edge": {"id": "e0"}}],
}
SECOND = {
    "nodes": [{"id": "2", "data": {"label": "C"}}],
    "edges": [{"a": "1", "b": "2", "edge": {"id": "e1"}}],
}

if __name__ == "__main__":
    # start graphpipe in this process on a free port
    handle = start_server(port=0)
    print(f"Graphpipe server started at: {handle.url}")

    httpx.post(f"{handle.url}/graph", json=FIRST).raise_for_status()
    time.sleep(1.0)  # let the layout warm up

    httpx.post(f"{handle.url}/graph", json=SECOND).raise_for_status()
    httpx.post(f"{handle.url}/graph/graphviz", content="digraph { 2 -> 3 -> 0 }").raise_for_status()

    # poll the layout the way a viewer does
    for _ in range(5):
        layout = httpx.get(f"{handle.url}/graph/layout").json()
        positions = {item["node"]["id"]: item["pos"] for item in layout["nodes"]}
        print(f"creation_time={layout['creation_time']:.3f} positions={positions}")
        time.sleep(0.5)

    handle.stop()
