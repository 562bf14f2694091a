"""Device cloud API client.

Only the Device OS version lookup is implemented: given a platform and
the internal (module) version an application depends on, return the
Device OS release that provides it.
"""

import logging
from typing import Any

import httpx

from devflash.config import Settings, get_settings

logger = logging.getLogger(__name__)

DEVICE_OS_VERSIONS_PATH = "/v1/device-os/versions"


class CloudApiError(Exception):
    """Raised when a cloud API request fails."""

    def __init__(self, message: str, error_code: str = "CLOUD_API_ERROR") -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code

    @property
    def is_connection_error(self) -> bool:
        """True if the API could not be reached at all."""
        return self.error_code in ("CLOUD_TIMEOUT", "CLOUD_NETWORK_ERROR")


class DeviceOsClient:
    """Client for the Device OS versions endpoint."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client or httpx.Client()

    def _headers(self) -> dict[str, str]:
        if self._settings.access_token:
            return {"Authorization": f"Bearer {self._settings.access_token}"}
        return {}

    def get_device_os_version(
        self, platform_id: int, internal_version: int
    ) -> dict[str, Any]:
        """Look up the Device OS release for an internal module version.

        Args:
            platform_id: Platform id.
            internal_version: Internal module version (e.g., 6101).

        Returns:
            Version record as returned by the API; includes 'version'.

        Raises:
            CloudApiError: If the request fails.
        """
        url = self._settings.api_url.rstrip("/") + DEVICE_OS_VERSIONS_PATH
        params = {"platform_id": platform_id, "internal_version": internal_version}
        logger.debug("Fetching Device OS version from %s %s", url, params)

        try:
            response = self._client.get(
                url,
                params=params,
                headers=self._headers(),
                timeout=self._settings.api_timeout,
            )
            response.raise_for_status()
            data: dict[str, Any] = response.json()
            return data

        except httpx.HTTPStatusError as e:
            raise CloudApiError(
                f"HTTP error fetching Device OS version: {e.response.status_code}",
                error_code="CLOUD_HTTP_ERROR",
            ) from e
        except httpx.TimeoutException as e:
            raise CloudApiError(
                f"Timeout fetching Device OS version from {url}",
                error_code="CLOUD_TIMEOUT",
            ) from e
        except httpx.RequestError as e:
            raise CloudApiError(
                f"Network error fetching Device OS version: {e}",
                error_code="CLOUD_NETWORK_ERROR",
            ) from e
        except ValueError as e:
            raise CloudApiError(
                f"Invalid response from {url}: {e}",
                error_code="CLOUD_BAD_RESPONSE",
            ) from e

    def close(self) -> None:
        self._client.close()


__all__ = ["DEVICE_OS_VERSIONS_PATH", "CloudApiError", "DeviceOsClient"]
