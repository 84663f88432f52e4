from __future__ import annotations

from .types import ErrorKind


class ExecutionError(Exception):
    """Failure raised inside an execution stage, tagged with its kind.

    Example:
        ```python
        raise ExecutionError(ErrorKind.ENGINE_UNREACHABLE, "Docker ping returned False")
        ```
    """

    def __init__(self, kind: ErrorKind, message: str) -> None:
        """Store the failure kind alongside the message.

        Example:
            ```python
            err = ExecutionError(ErrorKind.ENGINE_API_ERROR, "boom")
            ```
        """
        super().__init__(message)
        self.kind = kind


class ImagePullError(ExecutionError):
    """Raised when the engine reports an error while pulling an image.

    Example:
        ```python
        raise ImagePullError("manifest for python:nope not found")
        ```
    """

    def __init__(self, message: str) -> None:
        """Tag the message as an image pull failure.

        Example:
            ```python
            err = ImagePullError("pull access denied")
            ```
        """
        super().__init__(ErrorKind.IMAGE_PULL_FAILURE, message)
