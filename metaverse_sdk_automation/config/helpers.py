"""Helpers for parsing byte-sized configuration values."""

import re

_BYTE_VALUE = re.compile(r"^(\d+)\s*([a-z]*)$")

_UNIT_MULTIPLIERS = {
    "": 1,
    "b": 1,
    "k": 1024,
    "kb": 1024,
    "kib": 1024,
    "m": 1024**2,
    "mb": 1024**2,
    "mib": 1024**2,
    "g": 1024**3,
    "gb": 1024**3,
    "gib": 1024**3,
}


def parse_bytes(value: int | str) -> int:
    """Parse a byte quantity such as ``8388608``, ``8mb`` or ``8 MiB``.

    Args:
        value: Raw byte value as an ``int`` or a string with an optional,
            case-insensitive unit suffix.

    Returns:
        The parsed value in bytes.

    Raises:
        ValueError: If the input cannot be parsed or uses an unknown unit.
    """
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Negative byte value: {value}")
        return value

    match = _BYTE_VALUE.match(str(value).strip().lower())
    if match is None:
        raise ValueError(f"Invalid byte value: {value!r}")

    number, unit = match.groups()
    if unit not in _UNIT_MULTIPLIERS:
        raise ValueError(f"Unknown byte unit in value: {value!r}")
    return int(number) * _UNIT_MULTIPLIERS[unit]
