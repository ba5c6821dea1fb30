"""Tests for the single-attempt streaming uploader against a local server."""

from __future__ import annotations

import io
import json
import math
from email import policy
from email.parser import BytesParser

import pytest
import requests
import requests_mock

from metaverse_sdk_automation.config.automation_config import AutomationConfig
from metaverse_sdk_automation.core.models import (
    TransferDescriptor,
    TransferState,
    UploadMode,
    UploadTarget,
)
from metaverse_sdk_automation.exceptions import (
    ConstructionError,
    ProducerError,
    ServerError,
    TransportError,
)
from metaverse_sdk_automation.upload.uploader import ProducerErrorPolicy, Uploader


MIB = 1024 * 1024
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 120


class RecordingReporter:
    def __init__(self) -> None:
        self.reports: list[tuple[int, int]] = []
        self.closed = False

    def report(self, sent: int, total: int) -> float:
        self.reports.append((sent, total))
        return sent / total if total else 0.0

    def close(self) -> None:
        self.closed = True


class FailingReader(io.BytesIO):
    def __init__(self, data: bytes, ok_reads: int) -> None:
        super().__init__(data)
        self.ok_reads = ok_reads

    def read(self, size=-1):
        if self.ok_reads <= 0:
            raise OSError("disk went away")
        self.ok_reads -= 1
        return super().read(size)


def _metadata_target(server, token: str = "test-token") -> UploadTarget:
    return UploadTarget(
        url=f"{server.url}/entities/e/files/upload?type=uplugin",
        mode=UploadMode.METADATA,
        token=token,
    )


def _presigned_target(server) -> UploadTarget:
    return UploadTarget(
        url=f"{server.url}/bucket/object?sig=abc", mode=UploadMode.PRESIGNED
    )


def _parse_form(content_type: str, body: bytes):
    message = BytesParser(policy=policy.default).parsebytes(
        b"Content-Type: " + content_type.encode() + b"\r\n\r\n" + body
    )
    return list(message.iter_parts())


def test_metadata_upload_sends_a_multipart_form(upload_server, config, make_file):
    upload_server.respond(
        200, json.dumps({"data": {"id": "f-1", "type": "uplugin"}}).encode()
    )
    path = make_file("hello.txt", b"hello")
    reporter = RecordingReporter()
    uploader = Uploader(config, progress_reporter=reporter)

    with TransferDescriptor.open(path, config.chunk_size) as descriptor:
        result = uploader.upload(
            descriptor, _metadata_target(upload_server), {"note": "x"}
        )

    request = upload_server.requests[0]
    assert request.method == "PUT"
    assert request.path == "/entities/e/files/upload?type=uplugin"
    assert request.headers["authorization"] == "Bearer test-token"
    assert request.headers["accept"] == "application/json"
    assert "transfer-encoding" not in request.headers
    assert int(request.headers["content-length"]) == len(request.body)

    parts = _parse_form(request.headers["content-type"], request.body)
    assert parts[0].get_param("name", header="content-disposition") == "note"
    assert parts[0].get_payload(decode=True) == b"x"
    assert parts[1].get_filename() == "hello.txt"
    assert parts[1].get_payload(decode=True) == b"hello"

    assert result.state is TransferState.COMPLETED
    assert uploader.state is TransferState.COMPLETED
    assert result.status_code == 200
    assert result.bytes_sent == result.total_bytes == len(request.body)
    assert result.metadata is not None
    assert result.metadata.id == "f-1"
    assert reporter.closed


def test_presigned_upload_sends_raw_bytes_with_sniffed_type(
    upload_server, config, make_file
):
    path = make_file("image.png", PNG_BYTES)

    with TransferDescriptor.open(path, config.chunk_size) as descriptor:
        result = Uploader(config).upload(descriptor, _presigned_target(upload_server))

    request = upload_server.requests[0]
    assert request.body == PNG_BYTES
    assert request.headers["content-type"] == "image/png"
    assert request.headers["content-length"] == str(len(PNG_BYTES))
    assert "authorization" not in request.headers
    assert result.metadata is None
    assert result.bytes_sent == len(PNG_BYTES)


def test_large_file_is_streamed_in_chunks(upload_server, make_file):
    config = AutomationConfig(api_url="http://unused", token="t", chunk_size=MIB + 1)
    data = bytes(range(256)) * (3 * MIB // 256) + b"tail"
    path = make_file("big.bin", data)
    reporter = RecordingReporter()

    with TransferDescriptor.open(path, config.chunk_size) as descriptor:
        result = Uploader(config, progress_reporter=reporter).upload(
            descriptor, _presigned_target(upload_server)
        )

    assert upload_server.requests[0].body == data
    # one initial report plus one per chunk
    assert len(reporter.reports) == 1 + math.ceil(len(data) / config.chunk_size)
    sent = [s for s, _ in reporter.reports]
    assert sent == sorted(sent)
    assert reporter.reports[0] == (0, len(data))
    assert reporter.reports[-1] == (len(data), len(data))
    assert result.bytes_sent == len(data)


def test_zero_byte_presigned_upload(upload_server, config, make_file):
    path = make_file("empty.bin", b"")
    reporter = RecordingReporter()

    with TransferDescriptor.open(path, config.chunk_size) as descriptor:
        result = Uploader(config, progress_reporter=reporter).upload(
            descriptor, _presigned_target(upload_server)
        )

    request = upload_server.requests[0]
    assert request.body == b""
    assert request.headers["content-length"] == "0"
    assert "transfer-encoding" not in request.headers
    assert reporter.reports == [(0, 0)]
    assert result.state is TransferState.COMPLETED
    assert result.total_bytes == 0


def test_zero_byte_metadata_upload_still_sends_the_envelope(
    upload_server, config, make_file
):
    path = make_file("empty.txt", b"")

    with TransferDescriptor.open(path, config.chunk_size) as descriptor:
        result = Uploader(config).upload(descriptor, _metadata_target(upload_server))

    parts = _parse_form(
        upload_server.requests[0].headers["content-type"],
        upload_server.requests[0].body,
    )
    assert parts[-1].get_filename() == "empty.txt"
    assert parts[-1].get_payload(decode=True) == b""
    assert result.total_bytes > 0


def test_server_error_carries_status_and_body(upload_server, config, make_file):
    upload_server.respond(413, b"too large")
    path = make_file("big.zip", b"z" * 1000)
    uploader = Uploader(config)

    with TransferDescriptor.open(path, config.chunk_size) as descriptor:
        with pytest.raises(ServerError) as exc_info:
            uploader.upload(descriptor, _presigned_target(upload_server))

    assert exc_info.value.status_code == 413
    assert exc_info.value.body == "too large"
    assert "status code: 413" in str(exc_info.value)
    assert "too large" in str(exc_info.value)
    assert uploader.state is TransferState.FAILED


@pytest.mark.parametrize("status", [400, 401, 404, 499, 500, 503, 599])
def test_error_statuses_raise_server_error(status, config, make_file):
    path = make_file("f.bin", b"data")
    url = "http://upload.test/object"

    with requests_mock.Mocker() as m:
        m.put(url, status_code=status, text="nope")
        with TransferDescriptor.open(path, config.chunk_size) as descriptor:
            with pytest.raises(ServerError) as exc_info:
                Uploader(config).upload(
                    descriptor, UploadTarget(url=url, mode=UploadMode.PRESIGNED)
                )

    assert exc_info.value.status_code == status


@pytest.mark.parametrize("status", [200, 201, 204, 302, 399])
def test_statuses_below_400_succeed(status, config, make_file):
    path = make_file("f.bin", b"data")
    url = "http://upload.test/object"

    with requests_mock.Mocker() as m:
        m.put(url, status_code=status)
        with TransferDescriptor.open(path, config.chunk_size) as descriptor:
            result = Uploader(config).upload(
                descriptor, UploadTarget(url=url, mode=UploadMode.PRESIGNED)
            )

    assert result.status_code == status
    assert result.state is TransferState.COMPLETED


def test_unreachable_server_is_a_transport_error(config, make_file):
    path = make_file("f.bin", b"data")
    url = "http://upload.test/object"
    uploader = Uploader(config)

    with requests_mock.Mocker() as m:
        m.put(url, exc=requests.exceptions.ConnectTimeout)
        with TransferDescriptor.open(path, config.chunk_size) as descriptor:
            with pytest.raises(TransportError):
                uploader.upload(
                    descriptor, UploadTarget(url=url, mode=UploadMode.PRESIGNED)
                )

    assert uploader.state is TransferState.FAILED


def test_unencodable_header_is_a_transport_error(upload_server, config, make_file):
    path = make_file("f.bin", b"data")
    reporter = RecordingReporter()
    uploader = Uploader(config, progress_reporter=reporter)

    with TransferDescriptor.open(path, config.chunk_size) as descriptor:
        with pytest.raises(TransportError) as exc_info:
            uploader.upload(descriptor, _metadata_target(upload_server, token="t€"))

    assert isinstance(exc_info.value.__cause__, UnicodeEncodeError)
    assert uploader.state is TransferState.FAILED
    assert reporter.closed
    assert upload_server.requests == []


def test_producer_failure_aborts_the_upload_by_default(upload_server, config):
    data = b"a" * (3 * MIB)
    descriptor = TransferDescriptor(
        file=FailingReader(data, ok_reads=2),
        size=len(data),
        chunk_size=MIB,
        name="broken.bin",
    )
    uploader = Uploader(config)

    with pytest.raises(ProducerError, match="disk went away"):
        uploader.upload(descriptor, _presigned_target(upload_server))

    assert uploader.state is TransferState.FAILED


def test_tolerated_producer_failure_surfaces_as_transport_error(
    upload_server, config, caplog
):
    data = b"a" * (3 * MIB)
    descriptor = TransferDescriptor(
        file=FailingReader(data, ok_reads=2),
        size=len(data),
        chunk_size=MIB,
        name="broken.bin",
    )
    uploader = Uploader(config, producer_error_policy=ProducerErrorPolicy.TOLERATE)

    with pytest.raises(TransportError):
        uploader.upload(descriptor, _presigned_target(upload_server))

    assert uploader.state is TransferState.FAILED
    assert any("disk went away" in message for message in caplog.messages)


def test_missing_token_fails_before_any_request(upload_server, config, make_file):
    path = make_file("f.txt", b"data")
    uploader = Uploader(config)
    target = UploadTarget(url=upload_server.url, mode=UploadMode.METADATA)

    with TransferDescriptor.open(path, config.chunk_size) as descriptor:
        with pytest.raises(ConstructionError, match="bearer token"):
            uploader.upload(descriptor, target)

    assert upload_server.requests == []
    assert uploader.state is TransferState.FAILED


def test_presigned_upload_rejects_form_fields(upload_server, config, make_file):
    path = make_file("f.txt", b"data")

    with TransferDescriptor.open(path, config.chunk_size) as descriptor:
        with pytest.raises(ConstructionError, match="form fields"):
            Uploader(config).upload(
                descriptor, _presigned_target(upload_server), {"a": "b"}
            )

    assert upload_server.requests == []


def test_invalid_chunk_size_fails_before_any_request(upload_server, config):
    descriptor = TransferDescriptor(
        file=io.BytesIO(b"data"), size=4, chunk_size=1024, name="f.bin"
    )

    with pytest.raises(ConstructionError, match="chunk size"):
        Uploader(config).upload(descriptor, _presigned_target(upload_server))

    assert upload_server.requests == []


def test_uploader_can_be_reused_after_a_failure(upload_server, config, make_file):
    path = make_file("f.bin", b"data")
    uploader = Uploader(config)

    upload_server.respond(500, b"oops")
    with TransferDescriptor.open(path, config.chunk_size) as descriptor:
        with pytest.raises(ServerError):
            uploader.upload(descriptor, _presigned_target(upload_server))

    upload_server.respond(200)
    with TransferDescriptor.open(path, config.chunk_size) as descriptor:
        result = uploader.upload(descriptor, _presigned_target(upload_server))

    assert result.state is TransferState.COMPLETED
    assert len(upload_server.requests) == 2


def test_non_json_metadata_response_has_no_metadata(upload_server, config, make_file):
    upload_server.respond(200, b"ok")
    path = make_file("f.txt", b"data")

    with TransferDescriptor.open(path, config.chunk_size) as descriptor:
        result = Uploader(config).upload(descriptor, _metadata_target(upload_server))

    assert result.metadata is None
    assert result.state is TransferState.COMPLETED
