from .engine import ExecutionEngine
from .types import ErrorKind, ExecutionRequest, ExecutionResult

__all__ = [
    "ErrorKind",
    "ExecutionEngine",
    "ExecutionRequest",
    "ExecutionResult",
]
