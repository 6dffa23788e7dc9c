import asyncio
import logging
from typing import Any, Dict, List

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from streamgate.configs import StorageBackendConfig
from streamgate.storage.base import ObjectNotFound, ObjectStoreClient, StorageError, StorageObject

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


def create_boto_client(config: StorageBackendConfig, timeout: float):
    """
    Create a boto3 S3 client for an S3-compatible endpoint.

    Retries are disabled so that a slow or failing backend surfaces within `timeout`
    instead of being hidden behind botocore's own retry loop.
    """
    boto_config = BotoConfig(
        signature_version="s3v4",
        connect_timeout=timeout,
        read_timeout=timeout,
        retries={"max_attempts": 1, "mode": "standard"},
        s3={"addressing_style": "path" if config.force_path_style else "auto"},
    )
    kwargs: Dict[str, Any] = {"region_name": config.region, "config": boto_config}
    if config.endpoint_url:
        kwargs["endpoint_url"] = config.endpoint_url
    if config.access_key_id and config.secret_access_key:
        kwargs["aws_access_key_id"] = config.access_key_id
        kwargs["aws_secret_access_key"] = config.secret_access_key
    return boto3.client("s3", **kwargs)


class S3ObjectStore(ObjectStoreClient):
    """Object store backed by one bucket on an S3-compatible service (Wasabi, Backblaze B2, AWS...)."""

    def __init__(
        self,
        name: str,
        config: StorageBackendConfig,
        timeout: float = 5.0,
        page_size: int = 1000,
        client=None,
    ):
        super().__init__(
            name,
            config.bucket,
            public_base_url=config.public_base_url,
            edge_proxy_base_url=config.edge_proxy_base_url,
        )
        self.config = config
        self.timeout = timeout
        self.page_size = page_size
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = create_boto_client(self.config, self.timeout)
        return self._client

    async def _run(self, operation: str, func, *args):
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Timeout during {operation} on storage backend {self.name}")
            raise StorageError(f"Timeout during {operation}") from e
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                raise ObjectNotFound(str(args[0]) if args else self.bucket) from e
            logger.error(f"Storage backend {self.name} rejected {operation}: {code}")
            raise StorageError(f"Storage error during {operation}") from e
        except BotoCoreError as e:
            logger.error(f"Storage backend {self.name} unreachable during {operation}: {type(e).__name__}")
            raise StorageError(f"Storage unavailable during {operation}") from e

    def _list_sync(self, prefix: str) -> List[StorageObject]:
        objects: List[StorageObject] = []
        continuation: Dict[str, Any] = {}
        while True:
            resp = self.client.list_objects_v2(
                Bucket=self.bucket, Prefix=prefix, MaxKeys=self.page_size, **continuation
            )
            for item in resp.get("Contents") or []:
                key = item.get("Key")
                if key:
                    objects.append(StorageObject(key=key, size=int(item.get("Size") or 0)))
            if resp.get("IsTruncated") and resp.get("NextContinuationToken"):
                continuation = {"ContinuationToken": resp["NextContinuationToken"]}
            else:
                break
        return objects

    def _get_sync(self, key: str) -> bytes:
        resp = self.client.get_object(Bucket=self.bucket, Key=key)
        return resp["Body"].read()

    def _presign_sync(self, key: str, ttl: int) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=ttl,
        )

    def _probe_sync(self) -> int:
        resp = self.client.list_objects_v2(Bucket=self.bucket, MaxKeys=1)
        return int(resp.get("KeyCount") or 0)

    async def list(self, prefix: str) -> List[StorageObject]:
        objects = await self._run("list", self._list_sync, prefix)
        logger.debug(f"Listed {len(objects)} objects under {prefix} on {self.name}")
        return objects

    async def get(self, key: str) -> bytes:
        return await self._run("get", self._get_sync, key)

    async def presign(self, key: str, ttl: int) -> str:
        return await self._run("presign", self._presign_sync, key, ttl)

    async def probe(self) -> int:
        return await self._run("probe", self._probe_sync)
