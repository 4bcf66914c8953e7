from fastapi import Request

from graphpipe.core.runtime.graph_runtime import GraphRuntime


def get_runtime(request: Request) -> GraphRuntime:
    """The GraphRuntime installed by create_app()."""
    return request.app.state.runtime
