"""HTTP error helpers for extracting backend error details."""

from __future__ import annotations

import json
from typing import Any


def extract_error_detail(body: str) -> str:
    """Extract the most specific error message from an error response body.

    Falls back to the raw body text when it is not a JSON object carrying an
    ``error``, ``message`` or ``detail`` entry.
    """
    try:
        payload: Any = json.loads(body)
    except ValueError:
        return body

    if not isinstance(payload, dict):
        return str(payload)

    detail_payload = payload.get("detail", payload)
    if not isinstance(detail_payload, dict):
        return str(detail_payload)

    detail = detail_payload.get("error") or detail_payload.get("message")
    return str(detail) if detail else body
