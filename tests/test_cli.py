from __future__ import annotations

import io
from pathlib import Path

import pytest

from boxed_py_runner import ErrorKind, ExecutionRequest, ExecutionResult, ExecutorConfig
from boxed_py_runner.execution.types import ContainerInfo
from bpr import cli


class _FakeExecutor:
    result = ExecutionResult.succeeded("4\n")
    requests: list[ExecutionRequest] = []
    instances: list["_FakeExecutor"] = []

    def __init__(self, config: ExecutorConfig | None = None, **kwargs) -> None:
        self.config = config or ExecutorConfig()
        self.kwargs = kwargs
        self.killed: str | None = None
        self.__class__.instances.append(self)

    async def execute(self, request: ExecutionRequest, *, timeout_seconds: float | None = None) -> ExecutionResult:
        self.__class__.requests.append(request)
        return self.__class__.result

    def ensure_runtime_image(self) -> bool:
        return True

    def list_containers(self) -> list[ContainerInfo]:
        return [ContainerInfo("abc123", "python-executor-1", "python:3.9-slim", "running", "Up 1s")]

    def kill_container(self, container_id: str) -> None:
        if container_id == "foreign":
            raise ValueError("Container 'foreign' is not managed by boxed-py-runner and cannot be modified")
        self.killed = container_id


@pytest.fixture(autouse=True)
def _patch_executor(monkeypatch: pytest.MonkeyPatch) -> None:
    _FakeExecutor.result = ExecutionResult.succeeded("4\n")
    _FakeExecutor.requests = []
    _FakeExecutor.instances = []
    monkeypatch.setattr(cli, "DockerExecutor", _FakeExecutor)


def test_cli_run_inline_code(capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["run", "-c", "print(2 + 2)"])
    output = capsys.readouterr().out
    assert code == 0
    assert "Execution Result" in output
    assert "4" in output
    assert _FakeExecutor.requests == [ExecutionRequest("print(2 + 2)")]


def test_cli_run_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    script = tmp_path / "script.py"
    script.write_text("print('from file')\n", encoding="utf-8")
    code = cli.main(["run", str(script)])
    capsys.readouterr()
    assert code == 0
    assert _FakeExecutor.requests == [ExecutionRequest("print('from file')\n")]


def test_cli_run_stdin(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setattr("sys.stdin", io.StringIO("print(1)\n"))
    code = cli.main(["run"])
    capsys.readouterr()
    assert code == 0
    assert _FakeExecutor.requests == [ExecutionRequest("print(1)\n")]


def test_cli_run_failure_reports_kind(capsys: pytest.CaptureFixture[str]) -> None:
    _FakeExecutor.result = ExecutionResult.failed(
        ErrorKind.CONTAINER_START_FAILURE,
        "Failed to start Docker container.",
    )
    code = cli.main(["run", "-c", "print(1)"])
    output = capsys.readouterr().out
    assert code == 1
    assert "container_start_failure" in output
    assert "Failed to start Docker container." in output


def test_cli_run_rejects_file_and_code(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["run", str(tmp_path / "a.py"), "-c", "print(1)"])
    assert exc.value.code == 2
    assert "not both" in capsys.readouterr().out


def test_cli_flags_override_config_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config_path = tmp_path / "executor.toml"
    config_path.write_text(
        '[executor]\nimage = "python:3.11-slim"\ncpu_shares = 128\nmemory_limit_bytes = 67108864\n',
        encoding="utf-8",
    )
    code = cli.main(
        [
            "--config",
            str(config_path),
            "--docker-host",
            "tcp://127.0.0.1:2375",
            "run",
            "-c",
            "print(1)",
            "--cpu-shares",
            "256",
            "--timeout-seconds",
            "7",
        ]
    )
    capsys.readouterr()
    assert code == 0
    executor = _FakeExecutor.instances[0]
    assert executor.config.image.reference == "python:3.11-slim"
    assert executor.config.cpu_shares == 256
    assert executor.config.memory_limit_bytes == 64 * 1024 * 1024
    assert executor.config.timeout_seconds == 7.0
    assert executor.kwargs["docker_host"] == "tcp://127.0.0.1:2375"


@pytest.mark.parametrize(
    ("flag", "message"),
    [
        ("--cpu-shares", "cpu_shares must be positive"),
        ("--memory-mb", "memory_limit_bytes must be positive"),
        ("--timeout-seconds", "timeout_seconds must be positive"),
    ],
)
def test_cli_zero_limits_are_validated_not_ignored(
    flag: str,
    message: str,
    capsys: pytest.CaptureFixture[str],
) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["run", "-c", "print(1)", flag, "0"])
    assert exc.value.code == 2
    assert message in capsys.readouterr().out
    assert _FakeExecutor.instances == []


def test_cli_pull(capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["--image", "python:3.12-slim", "pull"])
    output = capsys.readouterr().out
    assert code == 0
    assert "Runtime Image" in output
    assert "'image': 'python:3.12-slim'" in output
    assert "'pulled': True" in output


def test_cli_list_containers(capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["list", "containers"])
    output = capsys.readouterr().out
    assert code == 0
    assert "python-executor-1" in output


def test_cli_kill_container(capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["kill", "container", "abc123"])
    output = capsys.readouterr().out
    assert code == 0
    assert "Killed container abc123" in output
    assert _FakeExecutor.instances[0].killed == "abc123"


def test_cli_kill_foreign_container_refused(capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["kill", "container", "foreign"])
    output = capsys.readouterr().out
    assert code == 1
    assert "not managed" in output


def test_cli_top_level_help_examples(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["--help"])
    output = capsys.readouterr().out
    assert exc.value.code == 0
    assert "Quick Examples:" in output
    assert "python -m bpr list containers" in output


def test_cli_print_help_writes_to_requested_stream(capsys: pytest.CaptureFixture[str]) -> None:
    parser = cli.build_parser()
    buffer = io.StringIO()
    parser.print_help(file=buffer)
    output = capsys.readouterr().out
    assert output == ""
    help_text = buffer.getvalue()
    assert "Usage:" in help_text
    assert "boxed-py-runner CLI" in help_text
