"""Locate the Unreal project and plugin directories."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from metaverse_sdk_automation.exceptions import ProjectError

logger = logging.getLogger(__name__)

PROJECT_FILE_SUFFIX = ".uproject"


def is_project_dir(project_name: str, directory: Path) -> bool:
    """Return True when ``directory`` holds the project's ``.uproject`` file.

    Args:
        project_name: Project name, matched case-insensitively. Any
            ``.uproject`` file matches when empty.
        directory: Directory to inspect.

    Raises:
        ProjectError: If the directory cannot be listed.
    """
    try:
        entries = os.listdir(directory)
    except OSError as e:
        raise ProjectError(f"failed to list {directory}: {e}") from e

    expected = f"{project_name}{PROJECT_FILE_SUFFIX}".lower()
    for entry in entries:
        lowered = entry.lower()
        if project_name:
            if lowered == expected:
                return True
        elif lowered.endswith(PROJECT_FILE_SUFFIX):
            return True
    return False


def find_project_dir(project_name: str, start: Path | None = None) -> Path:
    """Walk up from ``start`` (the cwd by default) to the project directory.

    The filesystem root itself is never considered a project directory.

    Raises:
        ProjectError: If no ancestor holds the project file.
    """
    current = (start or Path.cwd()).resolve()
    if is_project_dir(project_name, current):
        return current

    for parent in current.parents:
        if parent == Path(parent.anchor):
            break
        if is_project_dir(project_name, parent):
            return parent

    raise ProjectError("failed to find the project dir")


def plugin_dir(project_name: str, plugin_name: str, start: Path | None = None) -> Path:
    """Return ``<project>/Plugins/<plugin>``."""
    try:
        project_dir = find_project_dir(project_name, start)
    except ProjectError as e:
        raise ProjectError(f"failed to find the plugin directory: {e}") from e
    return project_dir / "Plugins" / plugin_name


def plugin_temp_dir(
    project_name: str, plugin_name: str, start: Path | None = None
) -> Path:
    """Return ``<project>/Plugins/<plugin>/Temp/<plugin>``, the staged content."""
    return plugin_dir(project_name, plugin_name, start) / "Temp" / plugin_name
