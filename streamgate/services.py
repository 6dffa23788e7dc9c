import logging
from dataclasses import dataclass
from typing import Optional

from streamgate.access import AccessResolver
from streamgate.catalog import ContentCatalog, JsonContentCatalog
from streamgate.configs import Settings, settings
from streamgate.locator import ContentLocator
from streamgate.schemas import AccessMode
from streamgate.storage.base import ObjectStoreClient
from streamgate.storage.registry import ObjectStoreRegistry
from streamgate.token_client import StreamTokenClient
from streamgate.utils.m3u8_processor import M3U8Processor

logger = logging.getLogger(__name__)


@dataclass
class GatewayServices:
    """Shared, read-mostly collaborators of the playback gateway."""

    catalog: ContentCatalog
    stores: ObjectStoreRegistry
    token_client: StreamTokenClient
    default_access_mode: AccessMode = AccessMode.PROTECTED_TOKEN
    manifest_url_ttl: int = 3600
    segment_url_ttl: int = 3600
    progressive_url_ttl: int = 300
    subtitle_url_ttl: int = 3600
    max_concurrent_resolutions: int = 32
    passthrough_cache_control: str = "public, max-age=300, stale-while-revalidate=60"
    signed_cache_control: str = "private, max-age=0, no-store"

    @classmethod
    def from_settings(cls, config: Settings) -> "GatewayServices":
        return cls(
            catalog=JsonContentCatalog.from_path(config.catalog_path),
            stores=ObjectStoreRegistry.from_config(config.storage_config),
            token_client=StreamTokenClient(
                config.token_worker_url,
                config.token_worker_secret,
                path=config.token_worker_path,
                timeout=config.token_timeout,
            ),
            default_access_mode=config.default_access_mode,
            manifest_url_ttl=config.manifest_url_ttl,
            segment_url_ttl=config.segment_url_ttl,
            progressive_url_ttl=config.progressive_url_ttl,
            subtitle_url_ttl=config.subtitle_url_ttl,
            max_concurrent_resolutions=config.max_concurrent_resolutions,
            passthrough_cache_control=config.passthrough_cache_control,
            signed_cache_control=config.signed_cache_control,
        )

    @property
    def locator(self) -> ContentLocator:
        return ContentLocator(self.catalog)

    def resolver_for(self, store: ObjectStoreClient) -> AccessResolver:
        return AccessResolver(store, self.token_client, default_mode=self.default_access_mode)

    def processor_for(self, store: ObjectStoreClient) -> M3U8Processor:
        return M3U8Processor(
            self.resolver_for(store),
            segment_ttl=self.segment_url_ttl,
            max_concurrency=self.max_concurrent_resolutions,
        )

    def cache_control_for(self, mode: AccessMode) -> str:
        return self.passthrough_cache_control if mode.is_passthrough else self.signed_cache_control

    async def close(self):
        await self.token_client.close()


_services: Optional[GatewayServices] = None


def get_services() -> GatewayServices:
    """FastAPI dependency returning the process-wide services, built on first use."""
    global _services
    if _services is None:
        _services = GatewayServices.from_settings(settings)
    return _services


async def close_services():
    global _services
    if _services is not None:
        await _services.close()
        _services = None
