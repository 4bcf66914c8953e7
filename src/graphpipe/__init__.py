__version__ = "0.1.0"

# Server
from .server.start import start_server  # start an in-process server
from .server.start import stop_server   # stop the in-process server
from .server.app_factory import create_app  # FastAPI app for embedding / tests

# Runtime
from .core.runtime.graph_runtime import GraphRuntime  # store + layout engine + driver
from .core.graph.types import Node, Edge, EdgeSpec  # submission / snapshot records

# Errors
from .contracts.errors import GraphpipeError, ParseError, ValidationError, UnknownNodeError

__all__ = [
    # Server
    "start_server", "stop_server", "create_app",
    # Runtime
    "GraphRuntime", "Node", "Edge", "EdgeSpec",
    # Errors
    "GraphpipeError", "ParseError", "ValidationError", "UnknownNodeError",
]
