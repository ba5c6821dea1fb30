"""Pydantic model for the automation client configuration."""

from pydantic import BaseModel, field_validator

from metaverse_sdk_automation.const import MIN_CHUNK_SIZE


class AutomationConfig(BaseModel):
    """Configuration for a single automation run.

    Attributes:
        api_url: base url of the Metaverse API, without a trailing slash.
        token: bearer token (JWT) used for API calls.
        chunk_size: producer read size in bytes; values at or below the
            1 MiB minimum fall back to the minimum.
        timeout: optional HTTP timeout in seconds, ``None`` waits forever.
        verbose: enable debug logging.
        log_to_file: mirror log output to the automation log file.
    """

    api_url: str = ""
    token: str = ""
    chunk_size: int = MIN_CHUNK_SIZE
    timeout: float | None = None
    verbose: bool = False
    log_to_file: bool = False

    @field_validator("api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("chunk_size")
    @classmethod
    def _clamp_chunk_size(cls, value: int) -> int:
        if value > MIN_CHUNK_SIZE:
            return value
        return MIN_CHUNK_SIZE

    @field_validator("timeout")
    @classmethod
    def _positive_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError(f"timeout must be positive, got {value}")
        return value
