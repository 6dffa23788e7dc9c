"""
Client for the external stream token signing worker.

The worker receives a storage path and a backend name, and answers with an opaque,
time-limited URL that its edge verifies on every request. The worker is optional:
every failure (missing configuration, network error, timeout, non-2xx answer,
malformed body) is logged and reported as ``None`` so that callers can fall back
to another access strategy. There are no retries.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from streamgate.utils.http_utils import create_httpx_client, is_absolute_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamToken:
    token: Optional[str]
    stream_url: str
    expires_at: Optional[int]


class StreamTokenClient:
    def __init__(
        self,
        base_url: Optional[str],
        secret: Optional[str],
        path: str = "/generate-token",
        timeout: float = 5.0,
        **client_kwargs,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.secret = secret
        self.path = "/" + path.lstrip("/")
        self.timeout = timeout
        self._client_kwargs = client_kwargs
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def enabled(self) -> bool:
        return bool(self.base_url and self.secret)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = create_httpx_client(timeout=self.timeout, **self._client_kwargs)
        return self._client

    async def mint(self, content_path: str, storage: str) -> Optional[StreamToken]:
        """
        Ask the worker for a protected stream URL.

        Args:
            content_path (str): Storage path of the object, without a leading slash.
            storage (str): Name of the storage backend holding the object.

        Returns:
            Optional[StreamToken]: The minted token, or None if the worker is unavailable.
        """
        if not self.enabled:
            logger.debug("Stream token worker is not configured")
            return None

        try:
            response = await self.client.post(
                f"{self.base_url}{self.path}",
                json={"contentId": content_path.strip("/"), "storage": storage},
                headers={"Authorization": f"Bearer {self.secret}"},
            )
        except httpx.TimeoutException:
            logger.warning(f"Timeout while minting stream token for {content_path}")
            return None
        except httpx.HTTPError as e:
            logger.warning(f"Error calling stream token worker: {type(e).__name__}")
            return None

        if not response.is_success:
            logger.warning(f"Stream token worker answered {response.status_code} for {content_path}")
            return None

        try:
            data = response.json()
            stream_url = data["streamUrl"]
        except (ValueError, KeyError, TypeError):
            logger.warning("Stream token worker returned an unexpected body")
            return None

        if not isinstance(stream_url, str) or not stream_url:
            logger.warning("Stream token worker returned an empty stream URL")
            return None

        if not is_absolute_url(stream_url):
            stream_url = f"{self.base_url}/{stream_url.lstrip('/')}"

        expires_at = data.get("expiresAt")
        return StreamToken(
            token=data.get("token"),
            stream_url=stream_url,
            expires_at=int(expires_at) if isinstance(expires_at, (int, float)) else None,
        )

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
