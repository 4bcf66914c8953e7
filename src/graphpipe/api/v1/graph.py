# /graph, /health

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from graphpipe.contracts.errors import ParseError, UnknownNodeError, ValidationError
from graphpipe.core.graph.types import EdgeSpec, MergeResult, Node
from graphpipe.core.runtime.graph_runtime import GraphRuntime

from .deps import get_runtime
from .schemas import (
    GraphResponse,
    HealthResponse,
    LayoutResponse,
    PinRequest,
    PinResponse,
    ResetResponse,
    SubmitRequest,
    SubmitResponse,
)

router = APIRouter(tags=["graph"])


def _submit_response(result: MergeResult) -> SubmitResponse:
    return SubmitResponse(
        added_nodes=result.added_nodes,
        updated_nodes=result.updated_nodes,
        added_edges=result.added_edges,
        updated_edges=result.updated_edges,
    )


@router.post("/graph", response_model=SubmitResponse)
def submit_graph(
    req: SubmitRequest,
    runtime: GraphRuntime = Depends(get_runtime),  # noqa: B008
) -> SubmitResponse:
    """
    Merge a batch of nodes and edges into the live graph.

    Nodes are applied before edges, so an edge may reference a node of the same
    batch. A batch that fails validation is rejected as a whole.
    """
    nodes = [Node(id=n.id, data=n.resolved_data()) for n in req.nodes]
    edges = [EdgeSpec(a=e.a, b=e.b, id=e.edge.id, data=e.edge.data()) for e in req.edges]
    try:
        result = runtime.merge(nodes, edges)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.to_dict()) from e
    return _submit_response(result)


@router.post("/graph/graphviz", response_model=SubmitResponse)
async def submit_graphviz(
    request: Request,
    runtime: GraphRuntime = Depends(get_runtime),  # noqa: B008
) -> SubmitResponse:
    """Merge a graph written in DOT (request body is the raw text)."""
    body = await request.body()
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise HTTPException(
            status_code=400,
            detail=ParseError("request body is not valid UTF-8").to_dict(),
        ) from e

    try:
        result = await run_in_threadpool(runtime.submit_dot, text)
    except ParseError as e:
        raise HTTPException(status_code=400, detail=e.to_dict()) from e
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.to_dict()) from e
    return _submit_response(result)


@router.get("/graph", response_model=GraphResponse)
def read_graph(
    runtime: GraphRuntime = Depends(get_runtime),  # noqa: B008
) -> GraphResponse:
    """Current topology (no positions). Takes the store lock, so it runs in the threadpool."""
    view = runtime.store.topology()
    return GraphResponse(
        nodes=[n.to_dict() for n in view.nodes],
        edges=[{"a": e.a, "b": e.b, "edge": e.payload()} for e in view.edges],
        creation_time=view.epoch,
    )


@router.get("/graph/layout", response_model=LayoutResponse)
async def read_layout(
    runtime: GraphRuntime = Depends(get_runtime),  # noqa: B008
) -> LayoutResponse:
    """Latest published snapshot. Never waits on a merge or a layout tick."""
    return LayoutResponse(**runtime.latest().to_dict())


@router.post("/graph/pin", response_model=PinResponse)
def pin_node(
    req: PinRequest,
    runtime: GraphRuntime = Depends(get_runtime),  # noqa: B008
) -> PinResponse:
    """Fix a node at `pos`, or release it when `pos` is null."""
    try:
        runtime.pin(req.id, req.pos)
    except UnknownNodeError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return PinResponse(id=req.id, pinned=req.pos is not None)


@router.post("/graph/reset", response_model=ResetResponse)
def reset_graph(
    runtime: GraphRuntime = Depends(get_runtime),  # noqa: B008
) -> ResetResponse:
    """Discard the graph and start a new instance with a new creation_time."""
    return ResetResponse(creation_time=runtime.reset())


@router.get("/health", response_model=HealthResponse)
async def health(
    runtime: GraphRuntime = Depends(get_runtime),  # noqa: B008
) -> HealthResponse:
    snapshot = runtime.latest()
    return HealthResponse(
        nodes=len(snapshot.nodes),
        edges=len(snapshot.edges),
        converged=snapshot.converged,
        creation_time=snapshot.epoch,
        ticks=runtime.driver.ticks,
    )
