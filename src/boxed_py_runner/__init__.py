from .execution.config import ExecutorConfig, ImageReference
from .execution.docker_engine import DockerExecutor
from .execution.types import ErrorKind, ExecutionRequest, ExecutionResult
from .runner import run_code, run_code_async

__all__ = [
    "DockerExecutor",
    "ErrorKind",
    "ExecutionRequest",
    "ExecutionResult",
    "ExecutorConfig",
    "ImageReference",
    "run_code",
    "run_code_async",
]
