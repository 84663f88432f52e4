from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Iterator

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 81920


@dataclass(frozen=True, slots=True)
class ReadResult:
    """Outcome of one read from a multiplexed stream.

    Example:
        ```python
        result = ReadResult(count=12, eof=False)
        ```
    """

    count: int
    eof: bool


class MultiplexedStream:
    """Fixed-size reader over the engine's interleaved stdout/stderr chunks.

    The docker SDK yields one payload per log frame; frames larger than the
    caller's buffer are handed out across several reads.

    Example:
        ```python
        stream = MultiplexedStream(api.logs(container_id, stream=True, follow=True))
        ```
    """

    def __init__(self, chunks: Iterable[bytes]) -> None:
        """Wrap an iterable of raw log chunks.

        Example:
            ```python
            stream = MultiplexedStream([b"a\\n", b"b\\n"])
            ```
        """
        self._chunks: Iterator[bytes] = iter(chunks)
        self._pending = memoryview(b"")
        self._eof = False

    def read_output(self, buffer: bytearray) -> ReadResult:
        """Copy up to `len(buffer)` bytes of the next output into `buffer`.

        Example:
            ```python
            result = stream.read_output(buffer)
            ```
        """
        if not self._pending:
            if self._eof:
                return ReadResult(0, True)
            try:
                chunk = next(self._chunks)
            except StopIteration:
                self._eof = True
                return ReadResult(0, True)
            if isinstance(chunk, str):
                chunk = chunk.encode("utf-8")
            self._pending = memoryview(chunk)
        count = min(len(buffer), len(self._pending))
        buffer[:count] = self._pending[:count]
        self._pending = self._pending[count:]
        return ReadResult(count, False)

    def close(self) -> None:
        """Close the underlying chunk source when it supports closing.

        Example:
            ```python
            stream.close()
            ```
        """
        close = getattr(self._chunks, "close", None)
        if callable(close):
            close()
        self._eof = True
        self._pending = memoryview(b"")


class BufferPool:
    """Thread-safe pool of reusable read buffers shared across executions.

    Example:
        ```python
        pool = BufferPool(size=4096)
        with pool.rent() as buffer:
            ...
        ```
    """

    def __init__(self, size: int = DEFAULT_BUFFER_SIZE, max_idle: int = 8) -> None:
        """Initialize an empty pool handing out buffers of `size` bytes.

        Example:
            ```python
            pool = BufferPool(size=81920, max_idle=4)
            ```
        """
        if size <= 0:
            raise ValueError("Buffer size must be positive")
        self._size = size
        self._max_idle = max_idle
        self._lock = threading.Lock()
        self._idle: list[bytearray] = []
        self._rented = 0

    @property
    def size(self) -> int:
        """Return the byte size of buffers handed out by this pool.

        Example:
            ```python
            assert pool.size == 81920
            ```
        """
        return self._size

    @property
    def rented(self) -> int:
        """Return how many buffers are currently checked out.

        Example:
            ```python
            assert pool.rented == 0
            ```
        """
        with self._lock:
            return self._rented

    def acquire(self) -> bytearray:
        """Check out an idle buffer, allocating one when none is idle.

        Example:
            ```python
            buffer = pool.acquire()
            ```
        """
        with self._lock:
            self._rented += 1
            if self._idle:
                return self._idle.pop()
        return bytearray(self._size)

    def release(self, buffer: bytearray) -> None:
        """Return a buffer to the pool.

        Example:
            ```python
            pool.release(buffer)
            ```
        """
        with self._lock:
            self._rented -= 1
            if len(self._idle) < self._max_idle and len(buffer) == self._size:
                self._idle.append(buffer)

    @contextmanager
    def rent(self) -> Iterator[bytearray]:
        """Lend a buffer for the duration of a `with` block.

        Example:
            ```python
            with pool.rent() as buffer:
                stream.read_output(buffer)
            ```
        """
        buffer = self.acquire()
        try:
            yield buffer
        finally:
            self.release(buffer)


GLOBAL_BUFFER_POOL = BufferPool()


def drain(
    stream: MultiplexedStream,
    *,
    pool: BufferPool = GLOBAL_BUFFER_POOL,
    lines: list[str] | None = None,
) -> str:
    """Read a multiplexed log stream to its end and return the decoded text.

    Every read is decoded as UTF-8, stripped of trailing whitespace and
    appended as one line. Reading stops at end-of-file or at a zero-byte
    read. Lines land in `lines` as they arrive so a caller keeps partial
    output when the stream fails.

    Example:
        ```python
        text = drain(MultiplexedStream([b"a\\n", b"b\\n"]))  # "a\\nb\\n"
        ```
    """
    collected = lines if lines is not None else []
    with pool.rent() as buffer:
        while True:
            buffer[:] = bytes(len(buffer))
            result = stream.read_output(buffer)
            if result.eof or result.count == 0:
                break
            text = bytes(buffer[: result.count]).decode("utf-8", errors="replace")
            collected.append(text.rstrip())
    logger.debug("Drained %d chunk(s) from log stream", len(collected))
    return join_lines(collected)


def join_lines(lines: list[str]) -> str:
    """Join drained lines, terminating each with a newline.

    Example:
        ```python
        join_lines(["a", "b"])  # "a\\nb\\n"
        ```
    """
    return "".join(f"{line}\n" for line in list(lines))
