"""Single-attempt streaming uploader.

One call to :meth:`Uploader.upload` is one transfer. The exact body length is
computed before any byte reaches the network, then a :class:`StreamPump`
thread feeds the body through a bounded :class:`BytePipe` while the calling
thread blocks in ``requests.put``. Memory use is bounded by one chunk
whatever the file size.

There is no retry and no cancellation. The optional configured timeout is the
only deadline.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

import requests
from pydantic import ValidationError

from metaverse_sdk_automation.api.http_errors import extract_error_detail
from metaverse_sdk_automation.config.automation_config import AutomationConfig
from metaverse_sdk_automation.const import MULTIPART_FILE_FIELD
from metaverse_sdk_automation.core.models import (
    FileMetadata,
    TransferDescriptor,
    TransferState,
    UploadMode,
    UploadResult,
    UploadTarget,
)
from metaverse_sdk_automation.exceptions import (
    ConstructionError,
    ProducerError,
    ServerError,
    TransportError,
)
from metaverse_sdk_automation.upload.content_type import sniff_content_type
from metaverse_sdk_automation.upload.multipart import build_multipart_envelope
from metaverse_sdk_automation.upload.pipe import BytePipe
from metaverse_sdk_automation.upload.progress import ProgressReporter
from metaverse_sdk_automation.upload.stream_pump import StreamPump

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[TransferState, frozenset[TransferState]] = {
    TransferState.IDLE: frozenset(
        {TransferState.FRAMING_COMPUTED, TransferState.FAILED}
    ),
    TransferState.FRAMING_COMPUTED: frozenset(
        {TransferState.STREAMING, TransferState.FAILED}
    ),
    TransferState.STREAMING: frozenset(
        {TransferState.COMPLETED, TransferState.FAILED}
    ),
    TransferState.COMPLETED: frozenset(),
    TransferState.FAILED: frozenset(),
}


class ProducerErrorPolicy(str, Enum):
    """What a mid-stream producer failure does to the transfer.

    ``FAIL`` aborts the request body and raises :class:`ProducerError`.
    ``TOLERATE`` only logs the failure; the body is closed where the producer
    stopped and the transport outcome decides the result.
    """

    FAIL = "fail"
    TOLERATE = "tolerate"


@dataclass(frozen=True)
class _Framing:
    header: bytes
    trailer: bytes
    headers: dict[str, str]
    total_bytes: int


class Uploader:
    """Stream one local file to an upload target."""

    def __init__(
        self,
        config: AutomationConfig,
        progress_reporter: ProgressReporter | None = None,
        producer_error_policy: ProducerErrorPolicy = ProducerErrorPolicy.FAIL,
    ) -> None:
        """Initialize the uploader.

        Args:
            config: Effective configuration; only the HTTP timeout is used here.
            progress_reporter: Sink for progress reports, a logging-only
                reporter by default.
            producer_error_policy: Handling of producer failures.
        """
        self._config = config
        self._progress_reporter = progress_reporter or ProgressReporter()
        self._producer_error_policy = producer_error_policy
        self.state = TransferState.IDLE

    def _transition(self, new_state: TransferState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"illegal transfer transition {self.state.value} -> {new_state.value}"
            )
        logger.debug("transfer %s -> %s", self.state.value, new_state.value)
        self.state = new_state

    def _fail(self) -> None:
        if self.state not in (TransferState.COMPLETED, TransferState.FAILED):
            self._transition(TransferState.FAILED)

    def _compute_framing(
        self,
        descriptor: TransferDescriptor,
        target: UploadTarget,
        fields: Mapping[str, str] | None,
    ) -> _Framing:
        """Compute framing bytes, headers and the exact body length."""
        descriptor.validate()
        target.validate()

        if target.mode is UploadMode.METADATA:
            envelope = build_multipart_envelope(
                fields, filename=descriptor.name, file_field=MULTIPART_FILE_FIELD
            )
            try:
                descriptor.file.seek(0)
            except (OSError, ValueError) as e:
                raise ConstructionError(f"failed to rewind file: {e}") from e
            return _Framing(
                header=envelope.header,
                trailer=envelope.trailer,
                headers={
                    "Content-Type": envelope.content_type,
                    "Accept": "application/json",
                    "Authorization": f"Bearer {target.token}",
                },
                total_bytes=envelope.content_length(descriptor.size),
            )

        if fields:
            raise ConstructionError("presigned uploads do not carry form fields")
        content_type = sniff_content_type(descriptor.file)
        return _Framing(
            header=b"",
            trailer=b"",
            headers={"Content-Type": content_type, "Accept": "application/json"},
            total_bytes=descriptor.size,
        )

    def upload(
        self,
        descriptor: TransferDescriptor,
        target: UploadTarget,
        fields: Mapping[str, str] | None = None,
    ) -> UploadResult:
        """Upload a file in a single attempt.

        Args:
            descriptor: The open file to send.
            target: Destination URL, mode and credentials.
            fields: Extra multipart text fields, metadata mode only.

        Returns:
            The completed transfer; in metadata mode ``metadata`` holds the
            file record decoded from the response when there is one.

        Raises:
            ConstructionError: If the transfer cannot be framed. Nothing was
                sent.
            ProducerError: If reading the file failed mid-stream and the
                policy is ``FAIL``.
            TransportError: If the request could not be sent.
            ServerError: If the server answered with a status of 400 or above.
        """
        self.state = TransferState.IDLE
        try:
            framing = self._compute_framing(descriptor, target, fields)
        except ConstructionError:
            self._fail()
            raise
        self._transition(TransferState.FRAMING_COMPUTED)

        pipe = BytePipe(framing.total_bytes)
        pump = StreamPump(
            pipe,
            descriptor.file,
            file_size=descriptor.size,
            chunk_size=descriptor.chunk_size,
            header=framing.header,
            trailer=framing.trailer,
            progress_callback=self._progress_reporter.report,
            propagate_errors=self._producer_error_policy is ProducerErrorPolicy.FAIL,
        )

        self._transition(TransferState.STREAMING)
        logger.debug(
            "uploading %d bytes of %s to: %s",
            framing.total_bytes,
            descriptor.name,
            target.url,
        )
        pump.start()

        response: requests.Response | None = None
        transport_error: Exception | None = None
        try:
            response = requests.put(
                target.url,
                # requests switches to chunked encoding for an empty iterable
                data=pipe if framing.total_bytes else b"",
                headers=framing.headers,
                timeout=self._config.timeout,
            )
        except ProducerError:
            logger.debug("request body aborted by the producer")
        except requests.exceptions.RequestException as e:
            transport_error = e
        except Exception as e:
            # http.client raises plain errors, e.g. for non latin-1 header values
            logger.debug("request failed outside requests: %r", e)
            transport_error = e
        finally:
            pipe.close_reader()
            pump.join()
            self._progress_reporter.close()

        if pump.error is not None:
            if self._producer_error_policy is ProducerErrorPolicy.FAIL:
                self._fail()
                raise pump.error
            logger.warning(
                "ignoring producer failure for %s: %s", descriptor.name, pump.error
            )

        if transport_error is not None or response is None:
            self._fail()
            raise TransportError(
                f"failed to send request: {transport_error}"
            ) from transport_error

        if response.status_code >= 400:
            self._fail()
            logger.error(
                "upload of %s failed with status %d: %s",
                descriptor.name,
                response.status_code,
                extract_error_detail(response.text),
            )
            raise ServerError(response.status_code, response.text)

        metadata = None
        if target.mode is UploadMode.METADATA:
            metadata = self._decode_metadata(response)

        self._transition(TransferState.COMPLETED)
        logger.info(
            "uploaded %s (%d bytes, status %d)",
            descriptor.name,
            pump.bytes_sent,
            response.status_code,
        )
        return UploadResult(
            state=self.state,
            status_code=response.status_code,
            bytes_sent=pump.bytes_sent,
            total_bytes=framing.total_bytes,
            metadata=metadata,
        )

    @staticmethod
    def _decode_metadata(response: requests.Response) -> FileMetadata | None:
        """Decode a file record from a metadata upload response, if any."""
        if not response.content:
            return None
        try:
            payload = response.json()
        except ValueError:
            logger.debug("upload response is not json, no file metadata")
            return None
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            payload = payload["data"]
        if not isinstance(payload, dict):
            return None
        try:
            return FileMetadata.model_validate(payload)
        except ValidationError as e:
            logger.warning("failed to parse the uploaded file metadata: %s", e)
            return None
