"""Read the project version from the game's default ini file."""

from __future__ import annotations

import configparser
from pathlib import Path

from packaging.version import InvalidVersion, Version

from metaverse_sdk_automation.exceptions import ProjectError
from metaverse_sdk_automation.project.paths import find_project_dir

GAME_INI = Path("Config") / "DefaultGame.ini"
PROJECT_SETTINGS_SECTION = "/Script/EngineSettings.GeneralProjectSettings"
PROJECT_VERSION_KEY = "ProjectVersion"


def parse_version(value: str) -> Version:
    """Parse a version string such as ``1.2.0`` or ``1.2.0.4``.

    Raises:
        ProjectError: If the value is not a valid version.
    """
    try:
        return Version(value.strip())
    except InvalidVersion as e:
        raise ProjectError(f"failed to parse version: {e}") from e


def read_ini_version(ini_path: Path) -> Version:
    """Read ``ProjectVersion`` from an Unreal ``DefaultGame.ini``.

    Unreal ini files repeat keys and use ``+Key=`` array syntax, so parsing is
    lenient and only the project settings section is consulted.

    Raises:
        ProjectError: If the file, section or key is missing or the value is
            not a version.
    """
    parser = configparser.ConfigParser(
        strict=False, interpolation=None, allow_no_value=True
    )
    try:
        with open(ini_path, encoding="utf-8-sig") as handle:
            parser.read_file(handle)
    except (OSError, configparser.Error) as e:
        raise ProjectError(f"failed to load ini: {e}") from e

    value = parser.get(PROJECT_SETTINGS_SECTION, PROJECT_VERSION_KEY, fallback=None)
    if not value:
        raise ProjectError(
            f"failed to parse version: no {PROJECT_VERSION_KEY} in {ini_path}"
        )
    return parse_version(value)


def get_project_version(project_name: str, start: Path | None = None) -> Version:
    """Return the version of the project found from ``start`` upward."""
    try:
        project_dir = find_project_dir(project_name, start)
    except ProjectError as e:
        raise ProjectError(f"failed to get project version: {e}") from e
    return read_ini_version(project_dir / GAME_INI)
