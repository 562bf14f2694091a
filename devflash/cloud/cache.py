"""Offline cache for cloud API lookups.

Successful responses are written to JSON files under the cache
directory. When the API cannot be reached, or offline mode is set,
lookups are answered from those files.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any

from devflash.cloud.client import CloudApiError, DeviceOsClient
from devflash.config import Settings, get_settings

logger = logging.getLogger(__name__)

CACHE_SUBDIR = "api"


class CloudUnavailableError(CloudApiError):
    """The API is unreachable and no cached value exists."""

    def __init__(self, key: str) -> None:
        super().__init__(
            f"No cached value for {key} and the cloud API is unavailable",
            error_code="CLOUD_UNAVAILABLE",
        )
        self.key = key


class JsonFileCache:
    """Key/value store with one JSON file per key."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def _path(self, key: str) -> Path:
        safe_key = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        return self.directory / f"{safe_key}.json"

    def get(self, key: str) -> Any | None:
        path = self._path(key)
        try:
            with path.open(encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable cache entry %s: %s", path, e)
            return None

    def set(self, key: str, value: Any) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(value, f)
        tmp_path.replace(path)


class ApiCache:
    """Cloud lookups with a file cache fallback."""

    def __init__(
        self,
        client: DeviceOsClient | None = None,
        settings: Settings | None = None,
        cache: JsonFileCache | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client or DeviceOsClient(self._settings)
        self._cache = cache or JsonFileCache(self._settings.cache_dir / CACHE_SUBDIR)

    def get_device_os_version(
        self, platform_id: int, internal_version: int
    ) -> dict[str, Any]:
        """Look up a Device OS release, falling back to the cache.

        Args:
            platform_id: Platform id.
            internal_version: Internal module version.

        Returns:
            Version record; includes 'version'.

        Raises:
            CloudUnavailableError: Offline or unreachable, and nothing cached.
            CloudApiError: The API answered with an error.
        """
        key = f"device_os_version-{platform_id}-{internal_version}"

        if self._settings.offline:
            logger.debug("Offline mode: answering %s from cache", key)
            return self._cached(key)

        try:
            value = self._client.get_device_os_version(platform_id, internal_version)
        except CloudApiError as e:
            if not e.is_connection_error:
                raise
            logger.warning("Cloud API unreachable, using cache: %s", e.message)
            return self._cached(key)

        self._cache.set(key, value)
        return value

    def _cached(self, key: str) -> dict[str, Any]:
        value = self._cache.get(key)
        if value is None:
            raise CloudUnavailableError(key)
        cached: dict[str, Any] = value
        return cached


__all__ = ["ApiCache", "CloudUnavailableError", "JsonFileCache"]
