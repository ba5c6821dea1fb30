"""MIME type detection from a file's leading bytes."""

from __future__ import annotations

import codecs
import json
import logging
from typing import BinaryIO

import filetype

from metaverse_sdk_automation.const import (
    DEFAULT_BINARY_MIME,
    JSON_MIME,
    SNIFF_PREFIX_SIZE,
    TEXT_MIME,
)

logger = logging.getLogger(__name__)


def _decode_text(prefix: bytes) -> str | None:
    """Decode a NUL-free UTF-8 prefix, allowing a cut last rune."""
    if b"\x00" in prefix:
        return None
    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        return decoder.decode(prefix, final=False)
    except UnicodeDecodeError:
        return None


def _looks_like_json(text: str, truncated: bool) -> bool:
    """Return True for a JSON object or array.

    A prefix cut at the sniff limit counts as JSON when it parses up to the
    point where the input ends.
    """
    text = text.strip()
    if not text or text[0] not in "{[":
        return False
    try:
        json.loads(text)
    except json.JSONDecodeError as e:
        cut = e.pos >= len(text) or e.msg.startswith("Unterminated string")
        return truncated and cut
    return True


def detect_content_type(prefix: bytes, truncated: bool = False) -> str:
    """Classify a byte prefix.

    Args:
        prefix: Leading bytes of a file.
        truncated: Whether the file continues past ``prefix``.

    Returns:
        The detected MIME type, ``application/json`` for a JSON object or
        array, ``text/plain; charset=utf-8`` for other text and
        ``application/octet-stream`` when nothing matches.
    """
    if not prefix:
        return DEFAULT_BINARY_MIME

    kind = filetype.guess(prefix)
    if kind is not None:
        return kind.mime
    text = _decode_text(prefix)
    if text is None:
        return DEFAULT_BINARY_MIME
    if _looks_like_json(text, truncated):
        return JSON_MIME
    return TEXT_MIME


def sniff_content_type(file: BinaryIO, prefix_size: int = SNIFF_PREFIX_SIZE) -> str:
    """Detect the MIME type of an open file and rewind it.

    The read cursor is left at offset 0 on every path, detection failures
    included. Sniffing never aborts a transfer: read errors are logged and
    the generic binary type is returned.

    Args:
        file: Seekable binary handle.
        prefix_size: Maximum number of bytes inspected.

    Returns:
        The detected MIME type.
    """
    try:
        file.seek(0)
        prefix = file.read(prefix_size)
        return detect_content_type(prefix, truncated=len(prefix) >= prefix_size)
    except (OSError, ValueError) as e:
        logger.error("failed to detect the mime type: %s", e)
        return DEFAULT_BINARY_MIME
    finally:
        try:
            file.seek(0)
        except (OSError, ValueError) as e:
            logger.error("failed to rewind file after mime detection: %s", e)
