from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator

import docker
from docker.errors import DockerException, NotFound
from requests.exceptions import RequestException

from .config import MANAGED_LABEL_KEY, MANAGED_LABEL_VALUE, ContainerSpec, ExecutorConfig, build_container_spec
from .drain import GLOBAL_BUFFER_POOL, BufferPool, MultiplexedStream, drain, join_lines
from .endpoint import resolve_endpoint
from .errors import ExecutionError
from .images import ProgressObserver, ensure_image
from .registry import GLOBAL_CONTAINER_REGISTRY, ContainerRegistry, TrackedContainer
from .staging import cleanup, stage
from .types import ContainerInfo, ErrorKind, ExecutionRequest, ExecutionResult

logger = logging.getLogger(__name__)

ENGINE_ERRORS: tuple[type[BaseException], ...] = (DockerException, RequestException, OSError)

ClientFactory = Callable[[str], Any]


def default_client_factory(base_url: str) -> Any:
    """Open a low-level docker SDK client against a control-socket address.

    Example:
        ```python
        api = default_client_factory("unix:///var/run/docker.sock")
        ```
    """
    return docker.APIClient(base_url=base_url)


@dataclass(slots=True)
class _Run:
    """Mutable bookkeeping for one execution in flight.

    Example:
        ```python
        run = _Run(artifact=Path("/tmp/user_code_ab12.py"))
        ```
    """

    artifact: Path
    api: Any = None
    container_id: str | None = None
    lines: list[str] = field(default_factory=list)
    launch: asyncio.Future[bool] | None = None

    def output(self) -> str:
        """Return the output drained so far.

        Example:
            ```python
            partial = run.output()
            ```
        """
        return join_lines(self.lines)


class DockerExecutor:
    """Run untrusted code in a fresh, resource-limited, auto-removed container.

    One call to `execute` stages the code, checks the engine, ensures the
    runtime image, creates and starts exactly one container and drains its
    logs. Engine failures come back as tagged `ExecutionResult` values.

    Example:
        ```python
        executor = DockerExecutor(ExecutorConfig(timeout_seconds=10))
        result = asyncio.run(executor.execute(ExecutionRequest("print(2 + 2)")))
        ```
    """

    def __init__(
        self,
        config: ExecutorConfig | None = None,
        *,
        docker_host: str | None = None,
        client_factory: ClientFactory | None = None,
        progress: ProgressObserver | None = None,
        registry: ContainerRegistry | None = None,
        buffer_pool: BufferPool | None = None,
    ) -> None:
        """Initialize the executor with its runtime config and collaborators.

        Example:
            ```python
            executor = DockerExecutor(docker_host="tcp://127.0.0.1:2375", progress=print)
            ```
        """
        self._config = config or ExecutorConfig()
        self._docker_host = docker_host
        self._client_factory = client_factory or default_client_factory
        self._progress = progress
        self._registry = registry or GLOBAL_CONTAINER_REGISTRY
        self._buffer_pool = buffer_pool or GLOBAL_BUFFER_POOL

    @property
    def config(self) -> ExecutorConfig:
        """Return the runtime configuration applied to every execution.

        Example:
            ```python
            image = executor.config.image.reference
            ```
        """
        return self._config

    @property
    def endpoint(self) -> str:
        """Return the engine address, preferring an explicit `docker_host`.

        Example:
            ```python
            executor.endpoint  # "unix:///var/run/docker.sock"
            ```
        """
        return self._docker_host or resolve_endpoint()

    async def execute(
        self,
        request: ExecutionRequest,
        *,
        timeout_seconds: float | None = None,
    ) -> ExecutionResult:
        """Execute one request end to end and return its result.

        On timeout or cancellation the container is killed before the staged
        file is removed; cancellation is re-raised after cleanup.

        Example:
            ```python
            result = await executor.execute(ExecutionRequest("print(2 + 2)"), timeout_seconds=5)
            ```
        """
        timeout = timeout_seconds if timeout_seconds is not None else self._config.timeout_seconds
        try:
            artifact = stage(request.code, self._config.scratch_dir)
        except OSError as exc:
            logger.error("Failed to stage code: %s", exc)
            return ExecutionResult.failed(ErrorKind.IO_FAILURE, f"Execution failed: {exc}")

        run = _Run(artifact=artifact)
        try:
            async with asyncio.timeout(timeout):
                return await self._execute_staged(run)
        except TimeoutError:
            logger.warning("Execution timed out after %ss", timeout)
            await self._force_stop(run)
            return ExecutionResult.failed(
                ErrorKind.TIMEOUT,
                f"Execution timed out after {timeout:g}s",
                output=run.output(),
            )
        except asyncio.CancelledError:
            logger.warning("Execution cancelled")
            await self._force_stop(run)
            raise
        finally:
            if run.container_id is not None:
                self._registry.release(run.container_id)
            cleanup(run.artifact)
            if run.api is not None:
                _close_quietly(run.api)

    async def _execute_staged(self, run: _Run) -> ExecutionResult:
        """Drive the connect, image, create, start and drain stages.

        Example:
            ```python
            result = await executor._execute_staged(_Run(artifact=path))
            ```
        """
        try:
            run.api = await asyncio.to_thread(self._connect)
        except (ExecutionError, *ENGINE_ERRORS) as exc:
            logger.error("Docker engine unreachable at %s: %s", self.endpoint, exc)
            return ExecutionResult.failed(
                ErrorKind.ENGINE_UNREACHABLE,
                f"Docker engine unreachable at {self.endpoint}: {exc}",
            )

        image = self._config.image
        try:
            await asyncio.to_thread(ensure_image, run.api, image.name, image.tag, self._progress)
        except (ExecutionError, *ENGINE_ERRORS) as exc:
            logger.error("Error while pulling image '%s': %s", image.reference, exc)
            return ExecutionResult.failed(
                ErrorKind.IMAGE_PULL_FAILURE,
                f"Error while pulling image '{image.reference}': {exc}",
            )

        spec = build_container_spec(self._config, run.artifact)
        try:
            run.launch = asyncio.ensure_future(asyncio.to_thread(self._launch, run, spec))
            started = await asyncio.shield(run.launch)
            if not started:
                logger.error("Failed to start Docker container %s", spec.name)
                await asyncio.to_thread(self._remove_forcefully, run.api, run.container_id)
                return ExecutionResult.failed(
                    ErrorKind.CONTAINER_START_FAILURE,
                    "Failed to start Docker container.",
                )
            logger.info("Fetching container logs")
            stream = await asyncio.to_thread(self._open_logs, run.api, run.container_id)
            output = await asyncio.to_thread(drain, stream, pool=self._buffer_pool, lines=run.lines)
        except (ExecutionError, *ENGINE_ERRORS) as exc:
            logger.error("Docker API error: %s", exc)
            return ExecutionResult.failed(
                ErrorKind.ENGINE_API_ERROR,
                f"Docker API error: {exc}",
                output=run.output(),
            )
        return ExecutionResult.succeeded(output)

    def _connect(self) -> Any:
        """Open a client against the engine and verify it answers a ping.

        Example:
            ```python
            api = executor._connect()
            ```
        """
        endpoint = self.endpoint
        logger.info("Using Docker URI: %s", endpoint)
        api = self._client_factory(endpoint)
        try:
            alive = api.ping()
        except BaseException:
            _close_quietly(api)
            raise
        if not alive:
            _close_quietly(api)
            raise ExecutionError(ErrorKind.ENGINE_UNREACHABLE, "Docker ping was not acknowledged")
        logger.info("Docker connectivity verified")
        return api

    def _create(self, api: Any, spec: ContainerSpec) -> str:
        """Create the execution container and return its id.

        Example:
            ```python
            container_id = executor._create(api, spec)
            ```
        """
        logger.info("Creating Docker container %s", spec.name)
        host_config = api.create_host_config(**spec.host_config_kwargs())
        response = api.create_container(**spec.create_kwargs(), host_config=host_config)
        container_id = str(response["Id"])
        logger.info("Container created with ID: %s", container_id)
        return container_id

    def _start(self, api: Any, container_id: str) -> bool:
        """Start a container and report whether the engine actually started it.

        A container the engine already removed has run to completion, so it
        counts as started. One still in the `created` state did not start.

        Example:
            ```python
            started = executor._start(api, container_id)
            ```
        """
        api.start(container_id)
        try:
            info = api.inspect_container(container_id)
        except NotFound:
            return True
        state = info.get("State") or {}
        started = state.get("Status") != "created"
        if started:
            logger.info("Docker container started")
        return started

    def _launch(self, run: _Run, spec: ContainerSpec) -> bool:
        """Create, track and start the container in one uninterrupted step.

        Runs in a worker thread behind `asyncio.shield`, so a timeout never
        leaves a container the executor does not know about.

        Example:
            ```python
            started = executor._launch(run, spec)
            ```
        """
        run.container_id = self._create(run.api, spec)
        self._registry.track(run.container_id, spec.name, spec.image)
        return self._start(run.api, run.container_id)

    def _remove_forcefully(self, api: Any, container_id: str) -> None:
        """Force-remove a container that auto-remove will not clean up.

        Example:
            ```python
            executor._remove_forcefully(api, container_id)
            ```
        """
        try:
            api.remove_container(container_id, force=True)
            logger.info("Removed container %s", container_id)
        except ENGINE_ERRORS as exc:
            logger.warning("Failed to remove container %s: %s", container_id, exc)

    def _open_logs(self, api: Any, container_id: str) -> MultiplexedStream:
        """Open the followed stdout/stderr log stream of a container.

        Example:
            ```python
            stream = executor._open_logs(api, container_id)
            ```
        """
        chunks = api.logs(container_id, stdout=True, stderr=True, stream=True, follow=True)
        return MultiplexedStream(chunks)

    async def _force_stop(self, run: _Run) -> None:
        """Stop the container of an abandoned execution.

        An in-flight create/start is awaited first so its container id is
        known and the container is no longer mid-start when it is killed.

        Example:
            ```python
            await executor._force_stop(run)
            ```
        """
        if run.launch is not None:
            if not run.launch.done():
                await asyncio.wait({run.launch})
            if not run.launch.cancelled() and run.launch.exception() is not None:
                logger.warning("Abandoned container launch failed: %s", run.launch.exception())
        if run.api is None or run.container_id is None or run.container_id not in self._registry:
            return
        await asyncio.to_thread(self._stop_quietly, run.api, run.container_id)

    def _stop_quietly(self, api: Any, container_id: str) -> None:
        """Kill a container, force-removing it when the kill is refused.

        A refused kill means the container is not running: never started,
        or already exited.

        Example:
            ```python
            executor._stop_quietly(api, container_id)
            ```
        """
        try:
            api.kill(container_id)
            logger.info("Killed container %s", container_id)
            return
        except ENGINE_ERRORS as exc:
            logger.warning("Failed to kill container %s: %s", container_id, exc)
        self._remove_forcefully(api, container_id)

    @contextmanager
    def _client(self) -> Iterator[Any]:
        """Yield a connected client and close it afterwards.

        Example:
            ```python
            with executor._client() as api:
                api.version()
            ```
        """
        api = self._connect()
        try:
            yield api
        finally:
            _close_quietly(api)

    def ensure_runtime_image(self) -> bool:
        """Ensure the configured runtime image is present, pulling when absent.

        Raises engine errors instead of converting them, for operator tooling.

        Example:
            ```python
            pulled = executor.ensure_runtime_image()
            ```
        """
        image = self._config.image
        with self._client() as api:
            return ensure_image(api, image.name, image.tag, self._progress)

    def active_containers(self) -> list[TrackedContainer]:
        """Return containers of executions currently in flight.

        Example:
            ```python
            names = [entry.name for entry in executor.active_containers()]
            ```
        """
        return self._registry.active()

    def list_containers(self) -> list[ContainerInfo]:
        """List execution containers carrying the ownership label.

        Example:
            ```python
            containers = executor.list_containers()
            ```
        """
        with self._client() as api:
            rows = api.containers(
                all=True,
                filters={"label": f"{MANAGED_LABEL_KEY}={MANAGED_LABEL_VALUE}"},
            )
        items: list[ContainerInfo] = []
        for row in rows:
            names = row.get("Names") or [""]
            items.append(
                ContainerInfo(
                    id=str(row.get("Id", ""))[:12],
                    name=str(names[0]).lstrip("/"),
                    image=str(row.get("Image", "")),
                    state=str(row.get("State", "")),
                    status=str(row.get("Status", "")),
                )
            )
        return items

    def kill_container(self, container_id: str) -> None:
        """Force-kill one execution container, refusing unlabelled ones.

        Example:
            ```python
            executor.kill_container("3f2a9c")
            ```
        """
        with self._client() as api:
            try:
                info = api.inspect_container(container_id)
            except NotFound as exc:
                raise ValueError(f"Container '{container_id}' was not found") from exc
            labels = (info.get("Config") or {}).get("Labels") or {}
            if labels.get(MANAGED_LABEL_KEY) != MANAGED_LABEL_VALUE:
                raise ValueError(
                    f"Container '{container_id}' is not managed by boxed-py-runner and cannot be modified"
                )
            api.kill(container_id)


def _close_quietly(api: Any) -> None:
    """Close a client, logging failures instead of raising.

    Example:
        ```python
        _close_quietly(api)
        ```
    """
    close = getattr(api, "close", None)
    if not callable(close):
        return
    try:
        close()
    except ENGINE_ERRORS as exc:
        logger.debug("Failed to close Docker client: %s", exc)
