from __future__ import annotations

import pytest

from boxed_py_runner import ErrorKind, ExecutionRequest, ExecutionResult, run_code


class _RecordingEngine:
    def __init__(self, result: ExecutionResult) -> None:
        self.result = result
        self.calls: list[tuple[ExecutionRequest, float | None]] = []

    async def execute(self, request: ExecutionRequest, *, timeout_seconds: float | None = None) -> ExecutionResult:
        self.calls.append((request, timeout_seconds))
        return self.result


def test_engine_required() -> None:
    with pytest.raises(TypeError):
        run_code("print(1)")  # type: ignore[call-arg]


def test_run_code_forwards_request_and_timeout() -> None:
    engine = _RecordingEngine(ExecutionResult.succeeded("4\n"))
    result = run_code("print(2 + 2)", engine=engine, timeout_seconds=3)
    assert result.text == "4\n"
    assert engine.calls == [(ExecutionRequest("print(2 + 2)"), 3)]


def test_run_code_rejects_non_positive_timeout() -> None:
    engine = _RecordingEngine(ExecutionResult.succeeded(""))
    with pytest.raises(ValueError, match="timeout_seconds"):
        run_code("pass", engine=engine, timeout_seconds=0)
    assert engine.calls == []


def test_failed_result_text_includes_partial_output() -> None:
    result = ExecutionResult.failed(ErrorKind.TIMEOUT, "Execution timed out after 1s", output="tick\n")
    assert result.ok is False
    assert result.text == "tick\nExecution timed out after 1s"
    assert ExecutionResult.failed(ErrorKind.ENGINE_API_ERROR, "Docker API error: x").text == "Docker API error: x"
