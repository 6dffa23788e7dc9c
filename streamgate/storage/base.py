from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


class StorageError(Exception):
    """Raised when an object store operation fails (network, auth, timeout, etc.)."""

    def __init__(self, message: str, status_code: int = 500):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


class ObjectNotFound(StorageError):
    def __init__(self, key: str):
        super().__init__(f"Object not found: {key}", status_code=404)
        self.key = key


@dataclass(frozen=True)
class StorageObject:
    key: str
    size: int = 0


class ObjectStoreClient(ABC):
    """Uniform access to one bucket of an S3-compatible object store."""

    def __init__(
        self,
        name: str,
        bucket: str,
        public_base_url: Optional[str] = None,
        edge_proxy_base_url: Optional[str] = None,
    ):
        self.name = name
        self.bucket = bucket
        self.public_base_url = public_base_url
        self.edge_proxy_base_url = edge_proxy_base_url

    @abstractmethod
    async def list(self, prefix: str) -> List[StorageObject]:
        """List every object under `prefix`, in the order the store returns them."""
        pass

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Fetch the bytes of a single object."""
        pass

    @abstractmethod
    async def presign(self, key: str, ttl: int) -> str:
        """Produce a GET URL for `key` that stays valid for `ttl` seconds."""
        pass

    @abstractmethod
    async def probe(self) -> int:
        """Check that the bucket is reachable and return the number of keys seen."""
        pass
