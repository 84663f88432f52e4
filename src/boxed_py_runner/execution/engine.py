from __future__ import annotations

from typing import Protocol

from .types import ExecutionRequest, ExecutionResult


class ExecutionEngine(Protocol):
    async def execute(
        self,
        request: ExecutionRequest,
        *,
        timeout_seconds: float | None = None,
    ) -> ExecutionResult:
        """Execute one request and return its tagged result.

        Example:
            ```python
            result = await engine.execute(ExecutionRequest("print(1)"), timeout_seconds=5)
            ```
        """
        ...
