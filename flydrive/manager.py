"""
Storage manager mapping named disks to driver instances.

A disk is a named configuration entry ({"driver": "s3", "bucket": ...}).
The manager builds the driver for a disk on first use and caches it.
"""
from functools import lru_cache
from importlib import import_module
from typing import Any, Callable

from flydrive.config import settings
from flydrive.logging_config import setup_logging
from flydrive.schemas.config import StorageManagerConfig
from flydrive.storage.base import StorageBackend
from flydrive.storage.exceptions import DriverNotSupportedError, InvalidConfigError

logger = setup_logging()

DriverFactory = Callable[[dict[str, Any]], StorageBackend]

# driver name -> (module, class); cloud SDKs are only imported when used
BUILTIN_DRIVERS: dict[str, tuple[str, str]] = {
    "local": ("flydrive.storage.local", "LocalStorageBackend"),
    "s3": ("flydrive.storage.s3", "S3StorageBackend"),
    "gcs": ("flydrive.storage.gcs", "GCSStorageBackend"),
    "azure": ("flydrive.storage.azure", "AzureBlobStorageBackend"),
}


class StorageManager:
    def __init__(self, config: StorageManagerConfig | dict[str, Any]):
        if isinstance(config, dict):
            config = StorageManagerConfig(**config)

        self.config = config
        self._disks: dict[str, StorageBackend] = {}
        self._drivers: dict[str, DriverFactory] = {}

    def disk(self, name: str | None = None, config: dict[str, Any] | None = None) -> StorageBackend:
        """
        Get the driver for a disk.

        Args:
            name: Disk name (defaults to the configured default disk)
            config: Options merged over the disk config; the resulting
                driver is a fresh instance and is not cached

        Returns:
            StorageBackend instance

        Raises:
            InvalidConfigError: If the disk name, its config or its driver is missing
            DriverNotSupportedError: If the driver is neither built in nor registered
        """
        name = name or self.config.default
        if not name:
            raise InvalidConfigError("Make sure to define a default disk name inside config file")

        if config is None and name in self._disks:
            return self._disks[name]

        disk_config = self.config.disks.get(name)
        if disk_config is None:
            raise InvalidConfigError(f"Make sure to define config for {name} disk")

        driver_name = disk_config.get("driver")
        if not driver_name:
            raise InvalidConfigError(f"Make sure to define driver for {name} disk")

        factory = self._resolve_driver(driver_name)

        if config is not None:
            return factory({**disk_config, **config})

        instance = factory(disk_config)
        self._disks[name] = instance
        logger.info(f"Disk {name} created with driver {driver_name}")
        return instance

    def extend(self, name: str, factory: DriverFactory) -> None:
        """
        Register a custom driver.

        Args:
            name: Driver name used in disk configs
            factory: Callable building the driver from a disk config
        """
        self._drivers[name] = factory

    def _resolve_driver(self, driver_name: str) -> DriverFactory:
        if driver_name in self._drivers:
            return self._drivers[driver_name]

        if driver_name not in BUILTIN_DRIVERS:
            raise DriverNotSupportedError(driver_name)

        module_name, class_name = BUILTIN_DRIVERS[driver_name]
        driver_class = getattr(import_module(module_name), class_name)
        return driver_class.from_config


@lru_cache()
def get_storage_manager() -> StorageManager:
    """Return the manager configured from application settings."""
    return StorageManager(settings.storage_config())


def get_storage(name: str | None = None) -> StorageBackend:
    """
    Return the storage backend for a disk based on configuration.

    This allows switching between local and cloud storage by changing the
    STORAGE_DEFAULT_DISK environment variable.
    """
    return get_storage_manager().disk(name)


def reset_storage_manager() -> None:
    """Reset the cached manager (useful for testing)."""
    get_storage_manager.cache_clear()
