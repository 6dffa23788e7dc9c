from typing import Dict, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from streamgate.schemas import AccessMode


class StorageBackendConfig(BaseModel):
    """Configuration for a single S3-compatible bucket"""

    bucket: str
    endpoint_url: Optional[str] = None
    region: str = "us-east-1"
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    force_path_style: bool = True
    public_base_url: Optional[str] = None  # Public CDN base used by the public-cdn mode.
    edge_proxy_base_url: Optional[str] = None  # Edge proxy base used by the edge-proxy mode.


class StorageConfig(BaseSettings):
    """Object store configuration"""

    storage_backends: Dict[str, StorageBackendConfig] = Field(
        default_factory=dict,
        description='Named S3-compatible backends. Example: {"wasabi": {"bucket": "media", "endpoint_url": "..."}}',
    )
    default_storage_backend: str = Field("wasabi", description="Backend used when a content record names none.")
    storage_timeout: float = Field(5.0, description="Timeout in seconds for list, get and sign calls.")
    storage_page_size: int = Field(1000, description="Objects requested per listing page.")

    class Config:
        env_file = ".env"
        extra = "ignore"


class Settings(BaseSettings):
    api_password: str | None = None  # The password for protecting the API endpoints.
    log_level: str = "INFO"  # The logging level to use.
    storage_config: StorageConfig = Field(default_factory=StorageConfig)  # Configuration for the object stores.
    catalog_path: str = "catalog.json"  # JSON document holding title and episode records.
    disable_docs: bool = False  # Whether to disable the API documentation (Swagger UI).

    default_access_mode: AccessMode = AccessMode.PROTECTED_TOKEN  # Mode used when a request names none.
    token_worker_url: str | None = None  # Base URL of the stream token signing worker.
    token_worker_secret: str | None = None  # Shared secret sent as a bearer token to the worker.
    token_worker_path: str = "/generate-token"  # Token minting endpoint path on the worker.
    token_timeout: float = 5.0  # Timeout in seconds for a token minting call.

    manifest_url_ttl: int = 3600  # Lifetime in seconds of signed manifest entry URLs.
    segment_url_ttl: int = 3600  # Lifetime in seconds of signed segment URLs.
    progressive_url_ttl: int = 300  # Lifetime in seconds of signed progressive file URLs.
    subtitle_url_ttl: int = 3600  # Lifetime in seconds of signed subtitle URLs.
    max_concurrent_resolutions: int = 32  # Upper bound on parallel reference resolutions per manifest.

    passthrough_cache_control: str = "public, max-age=300, stale-while-revalidate=60"
    signed_cache_control: str = "private, max-age=0, no-store"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
