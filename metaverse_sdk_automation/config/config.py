"""Resolve the automation configuration from defaults, environment and CLI."""

from __future__ import annotations

import os
from typing import Any

from pydantic import ValidationError

from metaverse_sdk_automation.config.automation_config import AutomationConfig
from metaverse_sdk_automation.config.helpers import parse_bytes
from metaverse_sdk_automation.const import API_URL
from metaverse_sdk_automation.exceptions import ConfigError

_ENV_MAP: dict[str, str] = {
    "api_url": "METAVERSE_API_URL",
    "token": "METAVERSE_TOKEN",
    "chunk_size": "METAVERSE_CHUNK_SIZE",
    "timeout": "METAVERSE_HTTP_TIMEOUT",
}


class ConfigManager:
    """Build the effective configuration from defaults, env and CLI overrides."""

    def __init__(self, base_config: AutomationConfig | None = None) -> None:
        """Initialise ConfigManager.

        Args:
            base_config: Configuration used before any override is applied.
        """
        self.base_config = base_config or AutomationConfig(api_url=API_URL)

    def _read_env_overrides(self) -> dict[str, Any]:
        """Read configuration overrides from environment variables.

        Returns:
            A dictionary of configuration field names to override values.

        Raises:
            ConfigError: If a numeric variable cannot be parsed.
        """
        overrides: dict[str, Any] = {}

        for field_name, env_var_name in _ENV_MAP.items():
            env_value = os.getenv(env_var_name)
            if env_value is None or env_value == "":
                continue

            try:
                if field_name == "chunk_size":
                    overrides[field_name] = parse_bytes(env_value)
                elif field_name == "timeout":
                    overrides[field_name] = float(env_value)
                else:
                    overrides[field_name] = env_value
            except ValueError as e:
                raise ConfigError(f"invalid {env_var_name}: {e}") from e

        return overrides

    def resolve_effective_config(
        self, cli_config: dict[str, Any] | None = None
    ) -> AutomationConfig:
        """Resolve the effective configuration for this run.

        CLI values of ``None`` are ignored so that unset flags do not mask the
        environment.

        Args:
            cli_config: Optional CLI-provided configuration overrides.

        Returns:
            The validated ``AutomationConfig``.

        Raises:
            ConfigError: If an override is invalid.
        """
        merged: dict[str, Any] = self.base_config.model_dump()
        merged.update(self._read_env_overrides())
        if cli_config is not None:
            merged.update({k: v for k, v in cli_config.items() if v is not None})

        try:
            return AutomationConfig.model_validate(merged)
        except ValidationError as e:
            raise ConfigError(f"invalid configuration: {e}") from e
