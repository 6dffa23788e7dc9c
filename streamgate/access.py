import logging
import time
from typing import Callable, Dict, Optional

from streamgate.schemas import AccessDescriptor, AccessMode
from streamgate.storage.base import ObjectStoreClient
from streamgate.token_client import StreamTokenClient
from streamgate.utils.http_utils import join_object_url

logger = logging.getLogger(__name__)

# Where each mode goes when it cannot be used. signed-direct is the floor: its failures are errors.
FALLBACK_MODES: Dict[AccessMode, Optional[AccessMode]] = {
    AccessMode.PROTECTED_TOKEN: AccessMode.SIGNED_DIRECT,
    AccessMode.PUBLIC_CDN: AccessMode.SIGNED_DIRECT,
    AccessMode.EDGE_PROXY: AccessMode.SIGNED_DIRECT,
    AccessMode.SIGNED_DIRECT: None,
}


class AccessModeUnavailable(Exception):
    def __init__(self, mode: AccessMode, reason: str):
        self.mode = mode
        self.reason = reason
        super().__init__(f"{mode.value} unavailable: {reason}")


class AccessResolver:
    """
    Turns object keys into URLs a player can fetch, following the requested access mode
    and falling back to signed-direct when that mode cannot be used.
    """

    def __init__(
        self,
        store: ObjectStoreClient,
        token_client: StreamTokenClient,
        default_mode: AccessMode = AccessMode.PROTECTED_TOKEN,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.token_client = token_client
        self.default_mode = default_mode
        self.clock = clock

    def requested(self, mode: Optional[AccessMode]) -> AccessMode:
        return mode or self.default_mode

    @staticmethod
    def fallback_for(mode: AccessMode) -> Optional[AccessMode]:
        return FALLBACK_MODES[mode]

    def passthrough_base(self, mode: AccessMode) -> Optional[str]:
        if mode is AccessMode.PUBLIC_CDN:
            return self.store.public_base_url
        if mode is AccessMode.EDGE_PROXY:
            return self.store.edge_proxy_base_url
        return None

    def _fall_back(self, mode: AccessMode, reason: str) -> AccessMode:
        fallback = self.fallback_for(mode)
        logger.warning(f"Access mode {mode.value} unavailable ({reason}), falling back to {fallback.value}")
        return fallback

    async def settle(self, mode: Optional[AccessMode], probe_key: Optional[str] = None) -> AccessMode:
        """
        Decide, once per request, which mode will actually be used.

        Passthrough modes need a configured base URL. protected-token needs a configured
        worker and, when `probe_key` is given, a successful mint for that key.
        """
        mode = self.requested(mode)
        while True:
            if mode is AccessMode.PROTECTED_TOKEN:
                if not self.token_client.enabled:
                    mode = self._fall_back(mode, "token worker not configured")
                    continue
                if probe_key is not None and await self.token_client.mint(probe_key, self.store.name) is None:
                    mode = self._fall_back(mode, "token worker failed")
                    continue
                return mode
            if mode.is_passthrough and not self.passthrough_base(mode):
                mode = self._fall_back(mode, "base URL not configured")
                continue
            return mode

    async def resolve_as(self, key: str, mode: AccessMode, ttl: int) -> AccessDescriptor:
        """
        Resolve `key` with exactly `mode`.

        Raises:
            AccessModeUnavailable: If `mode` cannot serve this key.
            StorageError: If presigning fails.
        """
        if mode is AccessMode.PROTECTED_TOKEN:
            token = await self.token_client.mint(key, self.store.name)
            if token is None:
                raise AccessModeUnavailable(mode, "token worker failed")
            return AccessDescriptor(url=token.stream_url, expires_at=token.expires_at, protected=True, mode=mode)

        if mode.is_passthrough:
            base_url = self.passthrough_base(mode)
            if not base_url:
                raise AccessModeUnavailable(mode, "base URL not configured")
            return AccessDescriptor(url=join_object_url(base_url, key), expires_at=None, protected=False, mode=mode)

        url = await self.store.presign(key, ttl)
        return AccessDescriptor(url=url, expires_at=int(self.clock()) + ttl, protected=False, mode=mode)

    async def resolve(self, key: str, mode: Optional[AccessMode] = None, ttl: int = 3600) -> AccessDescriptor:
        """Resolve `key` with the requested mode, walking the fallback chain on unavailability."""
        mode = self.requested(mode)
        while True:
            try:
                return await self.resolve_as(key, mode, ttl)
            except AccessModeUnavailable as e:
                mode = self._fall_back(mode, e.reason)

    async def resolve_manifest_entry(
        self,
        key: str,
        mode: Optional[AccessMode],
        route_url: Callable[[AccessMode], str],
        ttl: int = 3600,
        content_path: Optional[str] = None,
    ) -> AccessDescriptor:
        """
        Resolve the entry URL of an HLS asset.

        protected-token hands out the worker's URL for the whole stream, minted for
        `content_path` (the content prefix without its trailing slash) when given. Any other
        mode points the player at the gateway's manifest route, which rewrites the manifest
        with that mode.
        """
        mode = self.requested(mode)
        if mode is AccessMode.PROTECTED_TOKEN:
            try:
                return await self.resolve_as(content_path or key, mode, ttl)
            except AccessModeUnavailable as e:
                mode = self._fall_back(mode, e.reason)

        mode = await self.settle(mode)
        expires_at = int(self.clock()) + ttl if mode is AccessMode.SIGNED_DIRECT else None
        return AccessDescriptor(url=route_url(mode), expires_at=expires_at, protected=False, mode=mode)
