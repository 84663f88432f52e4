from __future__ import annotations

import sys

POSIX_ENDPOINT = "unix:///var/run/docker.sock"
WINDOWS_ENDPOINT = "npipe:////./pipe/docker_engine"


def resolve_endpoint(platform: str | None = None) -> str:
    """Return the local Docker control-socket address for a host platform.

    Example:
        ```python
        resolve_endpoint("win32")  # "npipe:////./pipe/docker_engine"
        ```
    """
    current = sys.platform if platform is None else platform
    if current.startswith("win"):
        return WINDOWS_ENDPOINT
    return POSIX_ENDPOINT
