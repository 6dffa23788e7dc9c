import logging
from typing import Dict, Iterator, Optional

from streamgate.configs import StorageConfig
from streamgate.storage.base import ObjectStoreClient, StorageError
from streamgate.storage.s3 import S3ObjectStore

logger = logging.getLogger(__name__)


class ObjectStoreRegistry:
    """Named object store backends, with one of them acting as the default."""

    def __init__(self, stores: Dict[str, ObjectStoreClient], default: str):
        self._stores = dict(stores)
        self.default = default

    @classmethod
    def from_config(cls, config: StorageConfig) -> "ObjectStoreRegistry":
        stores = {
            name: S3ObjectStore(name, backend, timeout=config.storage_timeout, page_size=config.storage_page_size)
            for name, backend in config.storage_backends.items()
        }
        if not stores:
            logger.warning("No storage backends configured")
        elif config.default_storage_backend not in stores:
            logger.warning(f"Default storage backend {config.default_storage_backend!r} is not configured")
        return cls(stores, config.default_storage_backend)

    def get(self, name: Optional[str] = None) -> ObjectStoreClient:
        """
        Return the backend called `name`, or the default backend when `name` is empty.

        Raises:
            StorageError: If neither the requested nor the default backend is configured.
        """
        if name and name in self._stores:
            return self._stores[name]
        if name:
            logger.warning(f"Unknown storage backend {name!r}, using {self.default!r}")
        store = self._stores.get(self.default)
        if store is None:
            raise StorageError("Storage backend not configured")
        return store

    def __iter__(self) -> Iterator[ObjectStoreClient]:
        return iter(self._stores.values())
