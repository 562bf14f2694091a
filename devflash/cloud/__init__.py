"""Device cloud API access.

This module handles:
- Device OS version lookup over HTTP
- File cache fallback when the API cannot be reached
"""

from devflash.cloud.cache import ApiCache, CloudUnavailableError, JsonFileCache
from devflash.cloud.client import CloudApiError, DeviceOsClient

__all__ = [
    "ApiCache",
    "CloudApiError",
    "CloudUnavailableError",
    "DeviceOsClient",
    "JsonFileCache",
]
