"""Producer thread that feeds a request body through a :class:`BytePipe`."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import BinaryIO

from metaverse_sdk_automation.core.models import ProgressState
from metaverse_sdk_automation.exceptions import ProducerError
from metaverse_sdk_automation.upload.pipe import BytePipe, PipeClosedError

logger = logging.getLogger(__name__)


class StreamPump(threading.Thread):
    """Write framing and file bytes into one end of a pipe.

    The pump writes, in order, the opening header (if any), successive reads
    of up to ``chunk_size`` bytes until end of file, and the closing trailer
    (if any). Progress is reported once before the first write and after
    every write. The pipe is always closed when the pump stops.

    A failure reading the file, or a file that yields more or fewer bytes
    than ``file_size``, is kept in :attr:`error`. With ``propagate_errors``
    the error is also sent down the pipe so the consumer aborts the request;
    otherwise the pipe is closed cleanly and the error is only logged. A
    consumer that abandons the pipe is not an error of the pump and only
    sets :attr:`aborted`.
    """

    def __init__(
        self,
        pipe: BytePipe,
        file: BinaryIO,
        file_size: int,
        chunk_size: int,
        header: bytes = b"",
        trailer: bytes = b"",
        progress_callback: Callable[[int, int], object] | None = None,
        propagate_errors: bool = True,
    ) -> None:
        """Initialize the pump.

        Args:
            pipe: Pipe whose write end the pump owns.
            file: Binary handle positioned at offset 0.
            file_size: Number of payload bytes the file must yield.
            chunk_size: Maximum bytes per file read.
            header: Bytes written before the payload.
            trailer: Bytes written after the payload.
            progress_callback: Called with ``(sent, total)`` after each write.
            propagate_errors: Whether producer errors abort the consumer.
        """
        super().__init__(name="stream-pump", daemon=True)
        self._pipe = pipe
        self._file = file
        self._file_size = file_size
        self._chunk_size = chunk_size
        self._header = header
        self._trailer = trailer
        self._progress_callback = progress_callback
        self._propagate_errors = propagate_errors
        self._progress = ProgressState(total_bytes=len(pipe))

        self.error: ProducerError | None = None
        self.aborted = False
        self.chunk_count = 0

    @property
    def bytes_sent(self) -> int:
        """Bytes handed to the pipe so far."""
        return self._progress.bytes_sent

    def _report(self) -> None:
        if self._progress_callback is None:
            return
        try:
            self._progress_callback(
                self._progress.bytes_sent, self._progress.total_bytes
            )
        except Exception:
            logger.exception("progress callback failed")

    def _send(self, data: bytes) -> None:
        if not data:
            return
        try:
            self._progress.advance(len(data))
        except ValueError as e:
            raise ProducerError(str(e)) from e
        self._pipe.write(data)
        self._report()

    def _pump_file(self) -> None:
        payload_sent = 0
        while True:
            try:
                chunk = self._file.read(self._chunk_size)
            except OSError as e:
                raise ProducerError(f"failed to read from the file: {e}") from e
            if not chunk:
                break
            if payload_sent + len(chunk) > self._file_size:
                raise ProducerError(
                    f"file grew beyond its declared size of {self._file_size} bytes"
                )
            logger.debug(
                "sending bytes '%d' to '%d'", payload_sent, payload_sent + len(chunk)
            )
            self._send(chunk)
            payload_sent += len(chunk)
            self.chunk_count += 1

        if payload_sent != self._file_size:
            raise ProducerError(
                f"file ended after {payload_sent} of {self._file_size} bytes"
            )

    def run(self) -> None:
        """Produce the whole body, then close the pipe."""
        failure: ProducerError | None = None
        try:
            self._report()
            self._send(self._header)
            self._pump_file()
            self._send(self._trailer)
        except PipeClosedError:
            self.aborted = True
            logger.debug("pipe reader closed, stopping after %d bytes", self.bytes_sent)
        except ProducerError as e:
            failure = e
        except Exception as e:
            failure = ProducerError(f"unexpected producer failure: {e}")
            failure.__cause__ = e
        finally:
            if failure is not None:
                self.error = failure
                logger.error("failed to stream the request body: %s", failure)
                self._pipe.close_writer(failure if self._propagate_errors else None)
            else:
                self._pipe.close_writer()
