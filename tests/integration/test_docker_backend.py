import os
import shutil

import pytest

from boxed_py_runner import DockerExecutor, ErrorKind, ExecutorConfig, run_code


def _docker_ready() -> bool:
    if shutil.which("docker") is None:
        return False
    return os.getenv("RUN_DOCKER_TESTS") == "1"


pytestmark = pytest.mark.skipif(not _docker_ready(), reason="Docker integration tests disabled")


@pytest.fixture(scope="module")
def executor() -> DockerExecutor:
    return DockerExecutor(ExecutorConfig(timeout_seconds=120))


def test_docker_prints_result(executor: DockerExecutor) -> None:
    result = run_code("print(2+2)", engine=executor)
    assert result.ok is True
    assert "4" in result.output


def test_docker_runtime_error_is_captured(executor: DockerExecutor) -> None:
    result = run_code("print('before')\n1 / 0", engine=executor)
    assert result.ok is True
    assert "before" in result.output
    assert "ZeroDivisionError" in result.output


def test_docker_empty_output(executor: DockerExecutor) -> None:
    result = run_code('print("")', engine=executor)
    assert result.ok is True
    assert result.output.strip() == ""


def test_docker_timeout_kills_runaway_container(executor: DockerExecutor) -> None:
    result = run_code("while True:\n    pass", engine=executor, timeout_seconds=3)
    assert result.ok is False
    assert result.error_kind is ErrorKind.TIMEOUT
    assert executor.active_containers() == []


def test_docker_memory_ceiling_enforced() -> None:
    engine = DockerExecutor(ExecutorConfig(memory_limit_bytes=32 * 1024 * 1024, timeout_seconds=60))
    result = run_code("x = bytearray(512 * 1024 * 1024)\nprint('allocated')", engine=engine)
    assert "allocated" not in result.output


def test_docker_unreachable_host_reported() -> None:
    engine = DockerExecutor(docker_host="unix:///var/run/definitely-missing.sock")
    result = run_code("print(1)", engine=engine)
    assert result.ok is False
    assert result.error_kind is ErrorKind.ENGINE_UNREACHABLE
