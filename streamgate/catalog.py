import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from streamgate.schemas import ContentKind

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Raised when the metadata store cannot be read."""


class ContentRecord(BaseModel):
    """A title or episode row, as much of it as the gateway reads."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="ignore")

    id: str
    kind: ContentKind = ContentKind.MOVIE
    storage_prefix: Optional[str] = Field(None, validation_alias=AliasChoices("storagePrefix", "hlsPath"))
    storage_backend: Optional[str] = None
    name: Optional[str] = None
    original_name: Optional[str] = None
    overview: Optional[str] = None
    release_date: Optional[str] = None
    poster_url: Optional[str] = None
    backdrop_url: Optional[str] = None
    type: Optional[str] = None
    title_id: Optional[str] = None
    season_number: Optional[int] = None
    episode_number: Optional[int] = None


class ContentCatalog(ABC):
    """Read-only view of the metadata store."""

    @abstractmethod
    async def find_content(self, content_id: str, kind: ContentKind) -> Optional[ContentRecord]:
        pass

    @abstractmethod
    async def find_title(self, title_id: str) -> Optional[ContentRecord]:
        pass


class InMemoryContentCatalog(ContentCatalog):
    def __init__(self, titles: List[ContentRecord] = (), episodes: List[ContentRecord] = ()):
        self._titles: Dict[str, ContentRecord] = {t.id: t for t in titles}
        self._episodes: Dict[str, ContentRecord] = {e.id: e for e in episodes}

    async def find_content(self, content_id: str, kind: ContentKind) -> Optional[ContentRecord]:
        table = self._episodes if kind == ContentKind.EPISODE else self._titles
        return table.get(content_id)

    async def find_title(self, title_id: str) -> Optional[ContentRecord]:
        return self._titles.get(title_id)


class JsonContentCatalog(InMemoryContentCatalog):
    """
    Catalog loaded once from a JSON document of the form::

        {"titles": [{"id": ..., "hlsPath": ..., "name": ...}],
         "episodes": [{"id": ..., "titleId": ..., "hlsPath": ..., "seasonNumber": 1, "episodeNumber": 2}]}
    """

    @classmethod
    def from_path(cls, path: str) -> "JsonContentCatalog":
        catalog_file = Path(path)
        if not catalog_file.exists():
            logger.warning(f"Catalog file {path} not found, starting with an empty catalog")
            return cls()
        try:
            document = json.loads(catalog_file.read_text(encoding="utf-8"))
            titles = [ContentRecord(**{**row, "kind": ContentKind.MOVIE}) for row in document.get("titles", [])]
            episodes = [
                ContentRecord(**{**row, "kind": ContentKind.EPISODE}) for row in document.get("episodes", [])
            ]
        except (OSError, ValueError, ValidationError) as e:
            raise CatalogError(f"Unable to load catalog from {path}: {e}") from e
        logger.info(f"Loaded {len(titles)} titles and {len(episodes)} episodes from {path}")
        return cls(titles, episodes)
