from __future__ import annotations

import tomllib
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_IMAGE_NAME = "python"
DEFAULT_IMAGE_TAG = "3.9-slim"
DEFAULT_MEMORY_LIMIT_BYTES = 256 * 1024 * 1024
DEFAULT_CPU_SHARES = 512
DEFAULT_SCRIPT_PATH = "/code/script.py"
DEFAULT_INTERPRETER = ("python",)
DEFAULT_NAME_PREFIX = "python-executor"
DEFAULT_MOUNT_MODE = "ro"
MANAGED_LABEL_KEY = "boxed_py_runner.managed"
MANAGED_LABEL_VALUE = "true"
MANAGED_LABELS_BASE = {
    MANAGED_LABEL_KEY: MANAGED_LABEL_VALUE,
    "boxed_py_runner.project": "boxed-py-runner",
}
_MOUNT_MODES = {"ro", "rw"}


@dataclass(frozen=True, slots=True)
class ImageReference:
    """Runtime image name and tag pair.

    Example:
        ```python
        ref = ImageReference("python", "3.9-slim")
        ```
    """

    name: str
    tag: str

    @property
    def reference(self) -> str:
        """Return the `name:tag` reference used by the engine.

        Example:
            ```python
            ImageReference("python", "3.9-slim").reference  # "python:3.9-slim"
            ```
        """
        return f"{self.name}:{self.tag}"

    @classmethod
    def parse(cls, value: str) -> "ImageReference":
        """Parse a `name[:tag]` string, defaulting the tag to `latest`.

        Registry hosts with ports (`host:5000/img`) are kept in the name.

        Example:
            ```python
            ref = ImageReference.parse("python:3.12-slim")
            ```
        """
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Image reference must not be empty")
        name, sep, tag = cleaned.rpartition(":")
        if not sep or "/" in tag:
            return cls(cleaned, "latest")
        if not name or not tag:
            raise ValueError(f"Invalid image reference: {value!r}")
        return cls(name, tag)


@dataclass(frozen=True, slots=True)
class ExecutorConfig:
    """Runtime image and resource limits applied to every execution.

    Example:
        ```python
        config = ExecutorConfig(image=ImageReference("python", "3.12-slim"), cpu_shares=256)
        ```
    """

    image: ImageReference = field(
        default_factory=lambda: ImageReference(DEFAULT_IMAGE_NAME, DEFAULT_IMAGE_TAG)
    )
    memory_limit_bytes: int = DEFAULT_MEMORY_LIMIT_BYTES
    cpu_shares: int = DEFAULT_CPU_SHARES
    script_path: str = DEFAULT_SCRIPT_PATH
    interpreter: tuple[str, ...] = DEFAULT_INTERPRETER
    name_prefix: str = DEFAULT_NAME_PREFIX
    mount_mode: str = DEFAULT_MOUNT_MODE
    timeout_seconds: float | None = None
    scratch_dir: str | None = None

    def __post_init__(self) -> None:
        """Validate limits and container parameters.

        Example:
            ```python
            ExecutorConfig(memory_limit_bytes=0)  # raises ValueError
            ```
        """
        if self.memory_limit_bytes <= 0:
            raise ValueError("memory_limit_bytes must be positive")
        if self.cpu_shares <= 0:
            raise ValueError("cpu_shares must be positive")
        if not self.script_path.startswith("/"):
            raise ValueError("script_path must be an absolute in-container path")
        if not self.interpreter:
            raise ValueError("interpreter must name at least one command token")
        if not self.name_prefix:
            raise ValueError("name_prefix must not be empty")
        if self.mount_mode not in _MOUNT_MODES:
            raise ValueError("mount_mode must be 'ro' or 'rw'")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive when set")

    @classmethod
    def from_file(cls, config_path: str) -> "ExecutorConfig":
        """Create a config from a TOML file with an optional `[executor]` table.

        Example:
            ```python
            config = ExecutorConfig.from_file("/etc/bpr/executor.toml")
            ```
        """
        raw = tomllib.loads(Path(config_path).read_text(encoding="utf-8"))
        table = raw.get("executor", raw)
        if not isinstance(table, dict):
            raise ValueError("Executor config must be a TOML table")
        return cls.from_mapping(table)

    @classmethod
    def from_mapping(cls, raw: dict[str, Any]) -> "ExecutorConfig":
        """Build a config from a plain mapping, filling gaps with defaults.

        Example:
            ```python
            config = ExecutorConfig.from_mapping({"image": "python:3.12-slim", "cpu_shares": 256})
            ```
        """
        image_raw = raw.get("image")
        if image_raw is None:
            image = ImageReference(DEFAULT_IMAGE_NAME, DEFAULT_IMAGE_TAG)
        elif isinstance(image_raw, str):
            image = ImageReference.parse(image_raw)
        else:
            raise ValueError("'image' must be a 'name:tag' string")
        interpreter_raw = raw.get("interpreter", list(DEFAULT_INTERPRETER))
        if isinstance(interpreter_raw, str):
            interpreter = (interpreter_raw,)
        elif isinstance(interpreter_raw, list) and all(isinstance(p, str) for p in interpreter_raw):
            interpreter = tuple(interpreter_raw)
        else:
            raise ValueError("'interpreter' must be a string or a list of strings")
        timeout_raw = raw.get("timeout_seconds")
        return cls(
            image=image,
            memory_limit_bytes=int(raw.get("memory_limit_bytes", DEFAULT_MEMORY_LIMIT_BYTES)),
            cpu_shares=int(raw.get("cpu_shares", DEFAULT_CPU_SHARES)),
            script_path=str(raw.get("script_path", DEFAULT_SCRIPT_PATH)),
            interpreter=interpreter,
            name_prefix=str(raw.get("name_prefix", DEFAULT_NAME_PREFIX)),
            mount_mode=str(raw.get("mount_mode", DEFAULT_MOUNT_MODE)),
            timeout_seconds=float(timeout_raw) if timeout_raw is not None else None,
            scratch_dir=raw.get("scratch_dir"),
        )


@dataclass(frozen=True, slots=True)
class ContainerSpec:
    """Write-once creation parameters for one execution container.

    Example:
        ```python
        spec = build_container_spec(ExecutorConfig(), Path("/tmp/user_code_ab12.py"))
        ```
    """

    image: str
    name: str
    command: tuple[str, ...]
    artifact_path: str
    script_path: str
    mount_mode: str
    memory_limit_bytes: int
    cpu_shares: int
    auto_remove: bool = True
    labels: dict[str, str] = field(default_factory=lambda: dict(MANAGED_LABELS_BASE))

    def binds(self) -> dict[str, dict[str, str]]:
        """Return the single bind mount in docker SDK form.

        Example:
            ```python
            spec.binds()  # {"/tmp/user_code_ab12.py": {"bind": "/code/script.py", "mode": "ro"}}
            ```
        """
        return {self.artifact_path: {"bind": self.script_path, "mode": self.mount_mode}}

    def host_config_kwargs(self) -> dict[str, Any]:
        """Return keyword arguments for `APIClient.create_host_config`.

        Example:
            ```python
            host_config = api.create_host_config(**spec.host_config_kwargs())
            ```
        """
        return {
            "binds": self.binds(),
            "auto_remove": self.auto_remove,
            "mem_limit": self.memory_limit_bytes,
            "cpu_shares": self.cpu_shares,
        }

    def create_kwargs(self) -> dict[str, Any]:
        """Return keyword arguments for `APIClient.create_container` minus host config.

        Example:
            ```python
            api.create_container(**spec.create_kwargs(), host_config=host_config)
            ```
        """
        return {
            "image": self.image,
            "name": self.name,
            "command": list(self.command),
            "labels": dict(self.labels),
        }


def unique_container_name(prefix: str) -> str:
    """Return a fresh container name that is never reused.

    Example:
        ```python
        name = unique_container_name("python-executor")
        ```
    """
    return f"{prefix}-{uuid.uuid4()}"


def build_container_spec(config: ExecutorConfig, artifact_path: Path | str) -> ContainerSpec:
    """Derive the container parameters for one staged artifact.

    Example:
        ```python
        spec = build_container_spec(config, Path("/tmp/user_code_ab12.py"))
        ```
    """
    return ContainerSpec(
        image=config.image.reference,
        name=unique_container_name(config.name_prefix),
        command=(*config.interpreter, config.script_path),
        artifact_path=str(artifact_path),
        script_path=config.script_path,
        mount_mode=config.mount_mode,
        memory_limit_bytes=config.memory_limit_bytes,
        cpu_shares=config.cpu_shares,
    )
