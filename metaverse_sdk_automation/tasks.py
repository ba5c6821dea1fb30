"""Plugin package tasks run by the CLI."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from uuid import UUID

from metaverse_sdk_automation.api.client import ApiClient
from metaverse_sdk_automation.archive import pack_directory, unpack_archive
from metaverse_sdk_automation.config.automation_config import AutomationConfig
from metaverse_sdk_automation.core.models import (
    TransferDescriptor,
    UploadMode,
    UploadResult,
    UploadTarget,
)
from metaverse_sdk_automation.exceptions import ConstructionError, ProjectError
from metaverse_sdk_automation.project.paths import plugin_dir, plugin_temp_dir
from metaverse_sdk_automation.project.version import get_project_version, parse_version
from metaverse_sdk_automation.upload.uploader import Uploader

logger = logging.getLogger(__name__)

UPLUGIN_FILE_TYPE = "uplugin"
UPLUGIN_MIME = "application/json"
CONTENT_FILE_TYPE = "uplugin_content"
CONTENT_MIME = "application/zip"


def upload_entity_file(
    client: ApiClient,
    uploader: Uploader,
    config: AutomationConfig,
    entity_id: UUID,
    file_type: str,
    mime: str,
    path: Path,
    original_path: str = "",
    fields: Mapping[str, str] | None = None,
) -> UploadResult:
    """Upload a file through the API as a multipart form."""
    target = client.metadata_upload_target(entity_id, file_type, mime, original_path)
    with TransferDescriptor.open(path, config.chunk_size, original_path) as descriptor:
        return uploader.upload(descriptor, target, fields)


def upload_entity_file_presigned(
    client: ApiClient,
    uploader: Uploader,
    config: AutomationConfig,
    entity_id: UUID,
    file_type: str,
    mime: str,
    path: Path,
    original_path: str = "",
) -> UploadResult:
    """Negotiate a presigned URL for a file and upload the raw bytes to it."""
    try:
        size = path.stat().st_size
    except OSError as e:
        raise ConstructionError(f"failed to stat file: {e}") from e
    metadata = client.get_upload_url(entity_id, file_type, mime, size, original_path)
    logger.debug("uploading file %s", metadata.id)
    target = UploadTarget(url=metadata.url, mode=UploadMode.PRESIGNED)
    with TransferDescriptor.open(path, config.chunk_size, original_path) as descriptor:
        return uploader.upload(descriptor, target)


def upload_package_source(
    client: ApiClient,
    uploader: Uploader,
    config: AutomationConfig,
    entity_id: UUID,
    project: str,
    plugin: str,
    start: Path | None = None,
) -> None:
    """Upload a plugin's descriptor and zipped content, then request packaging.

    The zip is written next to the plugin and removed afterwards whatever
    the outcome.
    """
    source_dir = plugin_dir(project, plugin, start)
    content_dir = plugin_temp_dir(project, plugin, start)

    logger.debug("uploading '%s' package descriptor", plugin)
    upload_entity_file(
        client,
        uploader,
        config,
        entity_id,
        UPLUGIN_FILE_TYPE,
        UPLUGIN_MIME,
        source_dir / f"{plugin}.uplugin",
        original_path=f"{plugin}.uplugin",
    )

    logger.debug("compressing '%s' package content", plugin)
    zip_path = source_dir / f"{plugin}.zip"
    try:
        pack_directory(content_dir, zip_path)

        logger.debug("uploading '%s' package content", plugin)
        upload_entity_file_presigned(
            client,
            uploader,
            config,
            entity_id,
            CONTENT_FILE_TYPE,
            CONTENT_MIME,
            zip_path,
            original_path=f"{plugin}.zip",
        )
    finally:
        try:
            zip_path.unlink(missing_ok=True)
        except OSError as e:
            logger.error("failed to delete zip file: %s", e)

    client.create_package_job(entity_id)


def unzip_package_source(
    project: str, plugin: str, start: Path | None = None
) -> list[Path]:
    """Extract ``<plugin>/temp/<plugin>.zip`` into the plugin's Content folder."""
    source_dir = plugin_dir(project, plugin, start)
    logger.debug("unzip '%s' package content", plugin)
    return unpack_archive(source_dir / "temp" / f"{plugin}.zip", source_dir / "Content")


def check_sdk_update(
    client: ApiClient, project: str, app_id: UUID, start: Path | None = None
) -> bool:
    """Return whether the latest release is newer than the project version.

    Only the version check is performed, downloading and replacing files is
    left to the editor.
    """
    current_version = get_project_version(project, start)
    release = client.get_latest_release(app_id)
    if not release.version:
        raise ProjectError("failed to get the latest version")
    latest_version = parse_version(release.version)

    if current_version >= latest_version:
        logger.debug("up to date")
        return False
    logger.info("update available: %s -> %s", current_version, latest_version)
    return True
