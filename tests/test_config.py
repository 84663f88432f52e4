from __future__ import annotations

from pathlib import Path

import pytest

from boxed_py_runner.execution.config import (
    DEFAULT_CPU_SHARES,
    DEFAULT_MEMORY_LIMIT_BYTES,
    ExecutorConfig,
    ImageReference,
    build_container_spec,
)


def test_defaults_match_runtime_constants() -> None:
    config = ExecutorConfig()
    assert config.image.reference == "python:3.9-slim"
    assert config.memory_limit_bytes == DEFAULT_MEMORY_LIMIT_BYTES == 256 * 1024 * 1024
    assert config.cpu_shares == DEFAULT_CPU_SHARES == 512
    assert config.script_path == "/code/script.py"
    assert config.timeout_seconds is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("python:3.12-slim", ImageReference("python", "3.12-slim")),
        ("python", ImageReference("python", "latest")),
        ("registry.local:5000/team/python", ImageReference("registry.local:5000/team/python", "latest")),
        ("registry.local:5000/team/python:3.11", ImageReference("registry.local:5000/team/python", "3.11")),
    ],
)
def test_image_reference_parse(value: str, expected: ImageReference) -> None:
    assert ImageReference.parse(value) == expected


def test_image_reference_parse_rejects_empty() -> None:
    with pytest.raises(ValueError, match="empty"):
        ImageReference.parse("  ")


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"memory_limit_bytes": 0}, "memory_limit_bytes"),
        ({"cpu_shares": -1}, "cpu_shares"),
        ({"script_path": "script.py"}, "script_path"),
        ({"interpreter": ()}, "interpreter"),
        ({"mount_mode": "rwx"}, "mount_mode"),
        ({"timeout_seconds": 0}, "timeout_seconds"),
    ],
)
def test_invalid_config_values_rejected(kwargs: dict, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        ExecutorConfig(**kwargs)


def test_from_file_reads_executor_table(tmp_path: Path) -> None:
    path = tmp_path / "executor.toml"
    path.write_text(
        "[executor]\n"
        'image = "python:3.12-slim"\n'
        "memory_limit_bytes = 134217728\n"
        "cpu_shares = 256\n"
        'interpreter = ["python", "-I"]\n'
        "timeout_seconds = 15\n",
        encoding="utf-8",
    )

    config = ExecutorConfig.from_file(str(path))

    assert config.image == ImageReference("python", "3.12-slim")
    assert config.memory_limit_bytes == 128 * 1024 * 1024
    assert config.cpu_shares == 256
    assert config.interpreter == ("python", "-I")
    assert config.timeout_seconds == 15.0
    assert config.mount_mode == "ro"


def test_from_file_accepts_root_table(tmp_path: Path) -> None:
    path = tmp_path / "executor.toml"
    path.write_text('name_prefix = "sandbox"\n', encoding="utf-8")
    assert ExecutorConfig.from_file(str(path)).name_prefix == "sandbox"


def test_from_mapping_rejects_bad_interpreter() -> None:
    with pytest.raises(ValueError, match="interpreter"):
        ExecutorConfig.from_mapping({"interpreter": 3})


def test_container_spec_is_derived_from_config() -> None:
    config = ExecutorConfig(interpreter=("python", "-u"))
    spec = build_container_spec(config, Path("/tmp/user_code_ab12.py"))

    assert spec.create_kwargs()["command"] == ["python", "-u", "/code/script.py"]
    assert spec.create_kwargs()["labels"]["boxed_py_runner.managed"] == "true"
    assert spec.host_config_kwargs() == {
        "binds": {"/tmp/user_code_ab12.py": {"bind": "/code/script.py", "mode": "ro"}},
        "auto_remove": True,
        "mem_limit": 256 * 1024 * 1024,
        "cpu_shares": 512,
    }


def test_container_names_are_never_reused() -> None:
    config = ExecutorConfig()
    names = {build_container_spec(config, "/tmp/x.py").name for _ in range(50)}
    assert len(names) == 50
    assert all(name.startswith("python-executor-") for name in names)
