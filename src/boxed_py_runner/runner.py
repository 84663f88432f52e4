from __future__ import annotations

import asyncio

from .execution.engine import ExecutionEngine
from .execution.types import ExecutionRequest, ExecutionResult


async def run_code_async(
    code: str,
    engine: ExecutionEngine,
    timeout_seconds: float | None = None,
) -> ExecutionResult:
    """Execute code with the provided engine from inside a running event loop.

    Example:
        ```python
        result = await run_code_async("print(2 + 2)", engine=DockerExecutor())
        ```
    """
    if timeout_seconds is not None and timeout_seconds <= 0:
        raise ValueError("timeout_seconds must be positive when set")
    return await engine.execute(ExecutionRequest(code=code), timeout_seconds=timeout_seconds)


def run_code(
    code: str,
    engine: ExecutionEngine,
    timeout_seconds: float | None = None,
) -> ExecutionResult:
    """Execute code in a sandbox container and block until the result is ready.

    Example:
        ```python
        from boxed_py_runner import DockerExecutor, run_code
        result = run_code("print(2 + 2)", engine=DockerExecutor())
        print(result.text)
        ```
    """
    return asyncio.run(run_code_async(code, engine, timeout_seconds=timeout_seconds))
