from __future__ import annotations

import logging
import tempfile
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

ARTIFACT_PREFIX = "user_code_"
ARTIFACT_SUFFIX = ".py"


def stage(code: str, directory: str | Path | None = None) -> Path:
    """Write code verbatim to a freshly named scratch file and return its path.

    The file is opened in exclusive-create mode, so an existing path is never
    overwritten. Filesystem errors propagate as `OSError`.

    Example:
        ```python
        path = stage("print(2 + 2)")
        ```
    """
    root = Path(directory) if directory is not None else Path(tempfile.gettempdir())
    path = root / f"{ARTIFACT_PREFIX}{uuid.uuid4().hex}{ARTIFACT_SUFFIX}"
    with path.open("x", encoding="utf-8", newline="") as handle:
        handle.write(code)
    logger.debug("Staged code at %s", path)
    return path


def cleanup(path: str | Path) -> bool:
    """Delete a staged file, treating a missing file as a no-op.

    Returns whether a file was removed. Deletion errors are logged, not raised.

    Example:
        ```python
        removed = cleanup(path)
        ```
    """
    target = Path(path)
    try:
        target.unlink()
    except FileNotFoundError:
        logger.debug("Staged file %s already gone", target)
        return False
    except OSError as exc:
        logger.warning("Failed to delete staged file %s: %s", target, exc)
        return False
    logger.debug("Deleted staged file %s", target)
    return True
