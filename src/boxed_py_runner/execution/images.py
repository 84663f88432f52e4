from __future__ import annotations

import logging
from typing import Any, Callable

from .errors import ImagePullError

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[str], None]


def _log_progress(message: str) -> None:
    """Default pull observer that forwards progress to the module logger.

    Example:
        ```python
        _log_progress("Pulling fs layer")
        ```
    """
    logger.info("%s", message)


def image_exists(api: Any, name: str, tag: str) -> bool:
    """Check whether the engine knows the exact `name:tag` image locally.

    Example:
        ```python
        present = image_exists(api, "python", "3.9-slim")
        ```
    """
    images = api.images(all=True, filters={"reference": f"{name}:{tag}"})
    return bool(images)


def pull_image(api: Any, name: str, tag: str, progress: ProgressObserver | None = None) -> None:
    """Pull `name:tag`, forwarding each non-empty status line to an observer.

    The engine reports pull failures inside the progress stream, so an
    `error` entry raises `ImagePullError`.

    Example:
        ```python
        pull_image(api, "python", "3.9-slim", progress=print)
        ```
    """
    observer = progress or _log_progress
    for event in api.pull(name, tag=tag, stream=True, decode=True):
        if not isinstance(event, dict):
            continue
        if event.get("error"):
            raise ImagePullError(str(event["error"]))
        status = event.get("status")
        if status:
            observer(str(status))


def ensure_image(api: Any, name: str, tag: str, progress: ProgressObserver | None = None) -> bool:
    """Make sure `name:tag` is present, pulling it when absent.

    Returns True when a pull was issued. Safe to call before every execution.

    Example:
        ```python
        pulled = ensure_image(api, "python", "3.9-slim")
        ```
    """
    reference = f"{name}:{tag}"
    logger.info("Checking if image '%s' exists locally", reference)
    if image_exists(api, name, tag):
        logger.info("Image '%s' already exists locally", reference)
        return False
    logger.info("Image '%s' not found locally, pulling", reference)
    pull_image(api, name, tag, progress=progress)
    logger.info("Image '%s' pulled successfully", reference)
    return True
