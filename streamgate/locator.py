import logging
from dataclasses import dataclass
from typing import Optional

from streamgate.catalog import ContentCatalog, ContentRecord
from streamgate.schemas import ContentKind

logger = logging.getLogger(__name__)


class ContentNotFound(Exception):
    def __init__(self, content_id: str, kind: ContentKind):
        self.content_id = content_id
        self.kind = kind
        super().__init__(f"{kind.value.lower()} {content_id} not found")


class NoPrefixConfigured(Exception):
    def __init__(self, content_id: str):
        self.content_id = content_id
        super().__init__(f"Content {content_id} has no storage location")


@dataclass
class LocatedContent:
    record: ContentRecord
    prefix: str
    storage_backend: Optional[str] = None

    @property
    def content_path(self) -> str:
        return self.prefix.rstrip("/")


def normalize_prefix(prefix: str) -> str:
    """Strip a leading slash and guarantee exactly one trailing slash."""
    prefix = prefix.strip().lstrip("/")
    return prefix.rstrip("/") + "/"


class ContentLocator:
    def __init__(self, catalog: ContentCatalog):
        self.catalog = catalog

    async def locate(self, content_id: str, kind: ContentKind) -> LocatedContent:
        """
        Resolve the storage prefix of a movie or episode.

        Raises:
            ContentNotFound: If the metadata store has no such record.
            NoPrefixConfigured: If the record was never assigned a storage location.
        """
        record = await self.catalog.find_content(content_id, kind)
        if record is None:
            raise ContentNotFound(content_id, kind)
        if not record.storage_prefix or not record.storage_prefix.strip(" /"):
            raise NoPrefixConfigured(content_id)
        return LocatedContent(
            record=record,
            prefix=normalize_prefix(record.storage_prefix),
            storage_backend=record.storage_backend,
        )
