"""Multipart/form-data framing without the file payload.

The envelope is built once, before any network I/O, so the request body
length is known up front: ``len(header) + file_size + len(trailer)``. The
file bytes themselves are streamed between the two frames by the producer.
"""

from __future__ import annotations

import re
import secrets
from collections.abc import Mapping

from metaverse_sdk_automation.const import DEFAULT_BINARY_MIME, MULTIPART_FILE_FIELD
from metaverse_sdk_automation.core.models import MultipartEnvelope
from metaverse_sdk_automation.exceptions import ConstructionError

CRLF = "\r\n"
# RFC 2046 bchars, the trailing space is rejected separately
_BOUNDARY_PATTERN = re.compile(r"^[0-9A-Za-z'()+_,\-./:=? ]{1,70}$")


def random_boundary() -> str:
    """Return a fresh 60 character hexadecimal boundary token."""
    return secrets.token_hex(30)


def validate_boundary(boundary: str) -> None:
    """Check that a boundary token is usable in a multipart body.

    Raises:
        ConstructionError: If the token is empty, too long, ends with a space
            or contains characters outside the RFC 2046 alphabet.
    """
    if not _BOUNDARY_PATTERN.match(boundary) or boundary.endswith(" "):
        raise ConstructionError(f"invalid multipart boundary: {boundary!r}")


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _part_opening(boundary: str, first: bool) -> str:
    if first:
        return f"--{boundary}{CRLF}"
    return f"{CRLF}--{boundary}{CRLF}"


def build_multipart_envelope(
    fields: Mapping[str, str] | None,
    filename: str,
    file_field: str = MULTIPART_FILE_FIELD,
    boundary: str | None = None,
    file_content_type: str = DEFAULT_BINARY_MIME,
) -> MultipartEnvelope:
    """Build the opening header and closing trailer of a multipart body.

    Text fields are written first, in the mapping's iteration order, followed
    by the header of the single file part. Nothing about the file other than
    its name is needed.

    Args:
        fields: Flat text fields to send before the file part.
        filename: Name announced in the file part's ``filename`` parameter.
        file_field: Form field name of the file part.
        boundary: Boundary token; a random one is generated when omitted.
        file_content_type: Content-Type of the file part.

    Returns:
        The envelope holding header bytes, trailer bytes, boundary and the
        ``Content-Type`` header value for the request.

    Raises:
        ConstructionError: If the boundary or a field name is invalid.
    """
    if boundary is None:
        boundary = random_boundary()
    validate_boundary(boundary)
    if not file_field:
        raise ConstructionError("multipart file field name is empty")

    parts: list[str] = []
    for name, value in (fields or {}).items():
        if not name:
            raise ConstructionError("multipart field name is empty")
        parts.append(_part_opening(boundary, first=not parts))
        parts.append(
            f'Content-Disposition: form-data; name="{_quote(name)}"{CRLF}{CRLF}'
        )
        parts.append(str(value))

    parts.append(_part_opening(boundary, first=not parts))
    parts.append(
        f"Content-Disposition: form-data; "
        f'name="{_quote(file_field)}"; filename="{_quote(filename)}"{CRLF}'
        f"Content-Type: {file_content_type}{CRLF}{CRLF}"
    )

    header = "".join(parts).encode("utf-8")
    trailer = f"{CRLF}--{boundary}--{CRLF}".encode("utf-8")
    return MultipartEnvelope(
        header=header,
        trailer=trailer,
        boundary=boundary,
        content_type=f"multipart/form-data; boundary={boundary}",
    )
