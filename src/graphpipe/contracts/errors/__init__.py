from .errors import GraphpipeError, LayoutError, ParseError, UnknownNodeError, ValidationError

__all__ = ["GraphpipeError", "LayoutError", "ParseError", "UnknownNodeError", "ValidationError"]
