"""JSON REST calls used around a transfer: URL negotiation and job creation."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode
from uuid import UUID

import requests
from pydantic import ValidationError

from metaverse_sdk_automation.api.http_errors import extract_error_detail
from metaverse_sdk_automation.config.automation_config import AutomationConfig
from metaverse_sdk_automation.core.models import (
    FileMetadata,
    ReleaseMetadata,
    UploadMode,
    UploadTarget,
)
from metaverse_sdk_automation.exceptions import (
    ApiResponseError,
    ConstructionError,
    ServerError,
    TransportError,
)

logger = logging.getLogger(__name__)


def _require_entity_id(entity_id: UUID) -> None:
    if entity_id is None or entity_id.int == 0:
        raise ConstructionError("invalid job package id")


class ApiClient:
    """Thin wrapper over the Metaverse API endpoints used by the tasks."""

    def __init__(self, config: AutomationConfig) -> None:
        """Initialize the client.

        Args:
            config: Effective configuration holding base url, token and timeout.
        """
        self._config = config

    @property
    def api_url(self) -> str:
        """Base url of the API."""
        return self._config.api_url

    def get_headers(self) -> dict[str, str]:
        """Return the JSON and bearer authorization headers."""
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self._config.token}",
        }

    def _request(
        self,
        method: str,
        url: str,
        action: str,
        **kwargs: Any,
    ) -> requests.Response:
        """Send a request and reject error statuses.

        Raises:
            TransportError: If the request could not be sent.
            ServerError: If the status code is 400 or above.
        """
        logger.debug("%s %s", method, url)
        try:
            response = requests.request(
                method,
                url,
                headers=self.get_headers(),
                timeout=self._config.timeout,
                **kwargs,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(f"failed to send request: {e}") from e

        if response.status_code >= 400:
            logger.error(
                "%s %s failed with status %d: %s",
                method,
                url,
                response.status_code,
                extract_error_detail(response.text),
            )
            raise ServerError(response.status_code, response.text, action)
        return response

    @staticmethod
    def _decode(response: requests.Response, what: str) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as e:
            raise ApiResponseError(f"failed to parse {what} json: {e}") from e
        if not isinstance(payload, dict):
            raise ApiResponseError(f"failed to parse {what} json: not an object")
        return payload

    def metadata_upload_target(
        self,
        entity_id: UUID,
        file_type: str,
        mime: str,
        original_path: str = "",
    ) -> UploadTarget:
        """Build the target for a multipart upload through the API.

        Package uploads pass the descriptor file name, e.g.
        ``MyPlugin.uplugin``, as ``original_path``; an empty value is sent
        when there is none.

        Args:
            entity_id: Entity owning the file.
            file_type: File type label, e.g. ``uplugin``.
            mime: MIME type recorded by the server.
            original_path: Relative path recorded by the server.

        Returns:
            An authenticated metadata-mode target.
        """
        _require_entity_id(entity_id)
        query = urlencode(
            {"type": file_type, "mime": mime, "original-path": original_path}
        )
        return UploadTarget(
            url=f"{self.api_url}/entities/{entity_id}/files/upload?{query}",
            mode=UploadMode.METADATA,
            token=self._config.token,
        )

    def get_upload_url(
        self,
        entity_id: UUID,
        file_type: str,
        mime: str,
        size: int,
        original_path: str = "",
    ) -> FileMetadata:
        """Negotiate a presigned storage URL for a file.

        Returns:
            The file record; its ``url`` is the presigned upload URL.

        Raises:
            ApiResponseError: If the response is not a file record.
        """
        _require_entity_id(entity_id)
        response = self._request(
            "GET",
            f"{self.api_url}/files/upload",
            "get an upload url",
            params={
                "entityId": str(entity_id),
                "type": file_type,
                "mime": mime,
                "size": size,
                "original-path": original_path,
            },
        )
        payload = self._decode(response, "upload URL")
        try:
            metadata = FileMetadata.model_validate(payload.get("data") or {})
        except ValidationError as e:
            raise ApiResponseError(f"failed to parse upload URL json: {e}") from e
        if not metadata.url:
            raise ApiResponseError("API did not return an upload URL")
        return metadata

    def create_package_job(self, entity_id: UUID) -> None:
        """Ask the API to build packages for an entity."""
        _require_entity_id(entity_id)
        self._request(
            "POST",
            f"{self.api_url}/jobs/package",
            "create a package job",
            json={"entityId": str(entity_id)},
        )
        logger.info("package job created for entity %s", entity_id)

    def get_latest_release(self, app_id: UUID) -> ReleaseMetadata:
        """Fetch the latest release of an application.

        Raises:
            ApiResponseError: If the response is not a release record.
        """
        response = self._request(
            "GET",
            f"{self.api_url}/apps/{app_id}/releases/latest",
            "fetch the latest release",
        )
        payload = self._decode(response, "release")
        try:
            return ReleaseMetadata.model_validate(payload.get("data") or {})
        except ValidationError as e:
            raise ApiResponseError(f"failed to parse release json: {e}") from e
