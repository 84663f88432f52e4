from __future__ import annotations

import threading
import time
from dataclasses import dataclass


@dataclass(slots=True)
class TrackedContainer:
    """Container handle held while its execution is still in flight.

    Example:
        ```python
        entry = TrackedContainer("3f2a...", "python-executor-1", "python:3.9-slim", 0.0)
        ```
    """

    container_id: str
    name: str
    image: str
    created_at: float


class ContainerRegistry:
    """Track container handles from creation until their logs are drained.

    The engine removes a container itself once its process exits; the
    registry exists so a hung container can still be force-stopped.

    Example:
        ```python
        registry = ContainerRegistry()
        ```
    """

    def __init__(self) -> None:
        """Initialize an empty thread-safe registry.

        Example:
            ```python
            registry = ContainerRegistry()
            ```
        """
        self._lock = threading.Lock()
        self._by_id: dict[str, TrackedContainer] = {}

    def track(self, container_id: str, name: str, image: str) -> TrackedContainer:
        """Register a freshly created container.

        Example:
            ```python
            registry.track("3f2a", "python-executor-1", "python:3.9-slim")
            ```
        """
        entry = TrackedContainer(container_id, name, image, time.time())
        with self._lock:
            if container_id in self._by_id:
                raise ValueError(f"Container '{container_id}' is already tracked")
            self._by_id[container_id] = entry
        return entry

    def release(self, container_id: str) -> TrackedContainer | None:
        """Forget a container once its execution has finished.

        Example:
            ```python
            registry.release("3f2a")
            ```
        """
        with self._lock:
            return self._by_id.pop(container_id, None)

    def get(self, container_id: str) -> TrackedContainer | None:
        """Look up a tracked container by id.

        Example:
            ```python
            entry = registry.get("3f2a")
            ```
        """
        with self._lock:
            return self._by_id.get(container_id)

    def active(self) -> list[TrackedContainer]:
        """Return a snapshot of every tracked container, oldest first.

        Example:
            ```python
            for entry in registry.active():
                print(entry.name)
            ```
        """
        with self._lock:
            entries = list(self._by_id.values())
        return sorted(entries, key=lambda entry: entry.created_at)

    def __contains__(self, container_id: object) -> bool:
        """Return whether a container id is currently tracked.

        Example:
            ```python
            assert "3f2a" in registry
            ```
        """
        with self._lock:
            return container_id in self._by_id

    def __len__(self) -> int:
        """Return the number of tracked containers.

        Example:
            ```python
            assert len(registry) == 0
            ```
        """
        with self._lock:
            return len(self._by_id)


GLOBAL_CONTAINER_REGISTRY = ContainerRegistry()
