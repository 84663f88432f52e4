from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ErrorKind(StrEnum):
    """Failure categories an execution can end with.

    Example:
        ```python
        if result.error_kind is ErrorKind.TIMEOUT:
            ...
        ```
    """

    IO_FAILURE = "io_failure"
    ENGINE_UNREACHABLE = "engine_unreachable"
    IMAGE_PULL_FAILURE = "image_pull_failure"
    ENGINE_API_ERROR = "engine_api_error"
    CONTAINER_START_FAILURE = "container_start_failure"
    TIMEOUT = "timeout"


@dataclass(frozen=True, slots=True)
class ExecutionRequest:
    """Source code accepted for one sandboxed execution.

    Example:
        ```python
        req = ExecutionRequest(code="print(2 + 2)")
        ```
    """

    code: str


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Terminal value of one execution: captured output or a tagged failure.

    `output` holds whatever the log stream yielded, including partial output
    when the execution failed or timed out mid-stream.

    Example:
        ```python
        result = ExecutionResult.succeeded("4\\n")
        ```
    """

    ok: bool
    output: str = ""
    error_kind: ErrorKind | None = None
    error: str | None = None

    @classmethod
    def succeeded(cls, output: str) -> "ExecutionResult":
        """Build a successful result around drained output.

        Example:
            ```python
            result = ExecutionResult.succeeded("hello\\n")
            ```
        """
        return cls(ok=True, output=output)

    @classmethod
    def failed(cls, kind: ErrorKind, message: str, output: str = "") -> "ExecutionResult":
        """Build a failed result carrying its kind and a readable message.

        Example:
            ```python
            result = ExecutionResult.failed(ErrorKind.TIMEOUT, "Execution timed out after 5s")
            ```
        """
        return cls(ok=False, output=output, error_kind=kind, error=message)

    @property
    def text(self) -> str:
        """Collapse the result into a single display string.

        Example:
            ```python
            print(result.text)
            ```
        """
        if self.ok:
            return self.output
        if self.output:
            return f"{self.output}{self.error}"
        return self.error or ""


@dataclass(frozen=True, slots=True)
class ContainerInfo:
    """Snapshot of a labelled execution container.

    Example:
        ```python
        info = ContainerInfo("abc", "python-executor-1", "python:3.9-slim", "running", "Up 2s")
        ```
    """

    id: str
    name: str
    image: str
    state: str
    status: str
