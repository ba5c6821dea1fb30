"""Data model for a single transfer and the API records it produces."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import BinaryIO

from pydantic import BaseModel, ConfigDict, Field

from metaverse_sdk_automation.const import MIN_CHUNK_SIZE
from metaverse_sdk_automation.exceptions import ConstructionError

logger = logging.getLogger(__name__)


class UploadMode(str, Enum):
    """How the file bytes are delivered to the target."""

    METADATA = "metadata"
    PRESIGNED = "presigned"


class TransferState(str, Enum):
    """Lifecycle of a single transfer."""

    IDLE = "idle"
    FRAMING_COMPUTED = "framing_computed"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TransferDescriptor:
    """A local file prepared for upload.

    Attributes:
        file: Open binary handle positioned anywhere; the uploader rewinds it.
        size: Size of the file in bytes, taken when the handle was opened.
        chunk_size: Maximum number of bytes read per producer iteration.
        name: File name announced in the multipart ``filename`` parameter.
        original_path: Optional relative path kept by the server to rebuild
            directory structure.
    """

    file: BinaryIO
    size: int
    chunk_size: int
    name: str
    original_path: str | None = None

    def validate(self) -> None:
        """Check the descriptor invariants.

        Raises:
            ConstructionError: If the size is negative or the chunk size is
                below ``MIN_CHUNK_SIZE``.
        """
        if self.size < 0:
            raise ConstructionError(f"invalid file size: {self.size}")
        if self.chunk_size < MIN_CHUNK_SIZE:
            raise ConstructionError(
                f"chunk size {self.chunk_size} is below the minimum {MIN_CHUNK_SIZE}"
            )

    @classmethod
    @contextmanager
    def open(
        cls,
        path: str | os.PathLike,
        chunk_size: int,
        original_path: str | None = None,
    ) -> Iterator[TransferDescriptor]:
        """Open a file and yield a descriptor that owns its handle.

        The handle is closed exactly once when the context exits, whatever the
        outcome of the transfer.

        Args:
            path: Local path of the file to upload.
            chunk_size: Producer read size in bytes.
            original_path: Optional relative path reported to the server.

        Yields:
            The descriptor for the opened file.

        Raises:
            ConstructionError: If the file cannot be opened or stat'ed.
        """
        file_path = Path(path)
        try:
            handle = open(file_path, "rb")
        except OSError as e:
            raise ConstructionError(f"failed to open file: {e}") from e

        try:
            try:
                size = os.fstat(handle.fileno()).st_size
            except OSError as e:
                raise ConstructionError(f"failed to stat file: {e}") from e
            descriptor = cls(
                file=handle,
                size=size,
                chunk_size=chunk_size,
                name=file_path.name,
                original_path=original_path,
            )
            descriptor.validate()
            yield descriptor
        finally:
            try:
                handle.close()
            except OSError:
                logger.error("failed to close the uploading file %s", file_path)


@dataclass(frozen=True)
class UploadTarget:
    """Destination of a transfer.

    Attributes:
        url: Fully qualified destination URL, query string included.
        mode: Whether the body is a multipart envelope or raw file bytes.
        token: Bearer token; required for metadata uploads and forbidden for
            presigned uploads.
    """

    url: str
    mode: UploadMode
    token: str | None = None

    def validate(self) -> None:
        """Check the target invariants.

        Raises:
            ConstructionError: If the URL is empty or the token does not
                match the mode.
        """
        if not self.url:
            raise ConstructionError("upload target url is empty")
        if self.mode is UploadMode.METADATA and not self.token:
            raise ConstructionError("metadata uploads require a bearer token")
        if self.mode is UploadMode.PRESIGNED and self.token:
            raise ConstructionError("presigned uploads must not carry a bearer token")


@dataclass(frozen=True)
class MultipartEnvelope:
    """Framing bytes that surround the raw file payload of a multipart body."""

    header: bytes
    trailer: bytes
    boundary: str
    content_type: str

    def content_length(self, file_size: int) -> int:
        """Return the exact body length for a payload of ``file_size`` bytes."""
        return len(self.header) + file_size + len(self.trailer)


@dataclass
class ProgressState:
    """Bytes pushed into the request body so far."""

    total_bytes: int
    bytes_sent: int = 0

    @property
    def fraction(self) -> float:
        """Fraction of the body sent, 0.0 for an empty body."""
        if self.total_bytes == 0:
            return 0.0
        return self.bytes_sent / self.total_bytes

    def advance(self, n_bytes: int) -> int:
        """Account for ``n_bytes`` more bytes and return the new total sent.

        Raises:
            ValueError: If the count is negative or would exceed the total.
        """
        if n_bytes < 0:
            raise ValueError(f"cannot advance progress by {n_bytes} bytes")
        if self.bytes_sent + n_bytes > self.total_bytes:
            raise ValueError(
                f"sent {self.bytes_sent + n_bytes} bytes, "
                f"more than the declared {self.total_bytes}"
            )
        self.bytes_sent += n_bytes
        return self.bytes_sent


class ApiModel(BaseModel):
    """Base for API records using camelCase field names on the wire."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class FileMetadata(ApiModel):
    """File record returned by the API."""

    id: str | None = None
    entity_id: str | None = Field(default=None, alias="entityId")
    type: str = ""
    url: str = ""
    mime: str | None = None
    size: int | None = None
    version: int = 0
    deployment_type: str = Field(default="", alias="deploymentType")
    platform: str = ""
    uploaded_by: str | None = Field(default=None, alias="uploadedBy")
    width: int | None = None
    height: int | None = None
    variation: int = 0
    original_path: str = Field(default="", alias="originalPath")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")


class ReleaseMetadata(ApiModel):
    """Application release record returned by the API."""

    id: str | None = None
    entity_type: str | None = Field(default=None, alias="entityType")
    public: bool | None = None
    app_id: str | None = Field(default=None, alias="appId")
    app_name: str = Field(default="", alias="appName")
    version: str = ""
    name: str | None = None
    description: str | None = None
    app_description: str | None = Field(default=None, alias="appDescription")
    files: list[FileMetadata] = Field(default_factory=list)


@dataclass
class UploadResult:
    """Outcome of a completed transfer."""

    state: TransferState
    status_code: int
    bytes_sent: int
    total_bytes: int
    metadata: FileMetadata | None = None
