"""Bounded in-memory pipe between the body producer and the HTTP transport.

The writer side blocks while the single slot is occupied, so the producer is
at most one chunk ahead of what the transport has drained. The reader side is
an iterable with a ``__len__`` so that ``requests`` sends it with a fixed
Content-Length instead of chunked transfer encoding.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Iterator

logger = logging.getLogger(__name__)

_POLL_INTERVAL_SECONDS = 0.1


class PipeClosedError(OSError):
    """Raised on write after the reader abandoned the pipe."""


class PipeLengthError(OSError):
    """Raised to the reader when the stream ends short of its declared length."""


class _EndOfStream:
    def __init__(self, error: BaseException | None = None) -> None:
        self.error = error


class BytePipe:
    """Single-producer, single-consumer byte pipe with one buffered slot.

    The producer calls :meth:`write` and finally :meth:`close_writer`, passing
    the error that stopped it if any. The consumer iterates the pipe; the
    iteration ends at the writer's close, or re-raises the writer's error.
    A clean end of stream that falls short of the declared length raises
    :class:`PipeLengthError` on the reader side.
    The consumer calls :meth:`close_reader` once it no longer drains the pipe
    so that a blocked producer is released.
    """

    def __init__(self, length: int, maxsize: int = 1) -> None:
        """Initialize the pipe.

        Args:
            length: Exact number of bytes the producer promises to write.
            maxsize: Number of chunks buffered before ``write`` blocks.
        """
        self._length = length
        self._queue: queue.Queue[bytes | _EndOfStream] = queue.Queue(maxsize=maxsize)
        self._reader_closed = threading.Event()
        self._writer_closed = threading.Event()

    def __len__(self) -> int:
        return self._length

    @property
    def reader_closed(self) -> bool:
        """Whether the consumer has abandoned the pipe."""
        return self._reader_closed.is_set()

    def _put(self, item: bytes | _EndOfStream) -> None:
        while True:
            if self._reader_closed.is_set():
                raise PipeClosedError("read end of the pipe is closed")
            try:
                self._queue.put(item, timeout=_POLL_INTERVAL_SECONDS)
                return
            except queue.Full:
                continue

    def write(self, data: bytes) -> None:
        """Hand one chunk to the consumer, blocking while the slot is full.

        Raises:
            PipeClosedError: If the reader was closed or the writer already
                closed the pipe.
        """
        if self._writer_closed.is_set():
            raise PipeClosedError("write end of the pipe is closed")
        if not data:
            return
        self._put(bytes(data))

    def close_writer(self, error: BaseException | None = None) -> None:
        """Signal end of stream, optionally carrying the producer's error.

        Closing twice is a no-op. When the reader is already gone the end
        marker is dropped.
        """
        if self._writer_closed.is_set():
            return
        self._writer_closed.set()
        try:
            self._put(_EndOfStream(error))
        except PipeClosedError:
            logger.debug("pipe reader closed before the end of stream was sent")

    def close_reader(self) -> None:
        """Abandon the pipe and release a producer blocked on ``write``."""
        self._reader_closed.set()
        # Drop a pending chunk so a blocked put can observe the close.
        try:
            while True:
                self._queue.get_nowait()
        except queue.Empty:
            pass

    def __iter__(self) -> Iterator[bytes]:
        received = 0
        while True:
            item = self._queue.get()
            if isinstance(item, _EndOfStream):
                if item.error is not None:
                    raise item.error
                if received != self._length:
                    raise PipeLengthError(
                        f"ContentLength={self._length} with body length {received}"
                    )
                return
            received += len(item)
            yield item
