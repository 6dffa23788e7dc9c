import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from streamgate.const import (
    MANIFEST_EXTENSIONS,
    MASTER_MANIFEST_NAME,
    PROGRESSIVE_VIDEO_EXTENSIONS,
    SUBTITLE_EXTENSIONS,
)
from streamgate.schemas import AssetKind
from streamgate.storage.base import ObjectStoreClient, StorageObject

logger = logging.getLogger(__name__)


class NoAssetError(Exception):
    def __init__(self, prefix: str, reason: str = "No playable asset found"):
        self.prefix = prefix
        super().__init__(f"{reason} under {prefix}")


@dataclass
class DiscoveredAsset:
    kind: AssetKind
    key: str
    objects: List[StorageObject] = field(default_factory=list)


def select_asset(objects: List[StorageObject]) -> Optional[DiscoveredAsset]:
    """
    Pick the object to play from a prefix listing.

    Precedence: a `master.m3u8`, then the first `.m3u8` in listing order, then the first
    file with a known video extension, then the largest object.
    """
    if not objects:
        return None

    lowered = [(obj, obj.key.lower()) for obj in objects]

    # Rendition folders may carry their own master; the shallowest one is the entry point
    masters = [obj for obj, key in lowered if key.endswith(MASTER_MANIFEST_NAME)]
    if masters:
        master = min(masters, key=lambda obj: obj.key.count("/"))
        return DiscoveredAsset(AssetKind.HLS, master.key, objects)

    manifest = next((obj for obj, key in lowered if key.endswith(MANIFEST_EXTENSIONS)), None)
    if manifest:
        return DiscoveredAsset(AssetKind.HLS, manifest.key, objects)

    video = next((obj for obj, key in lowered if key.endswith(PROGRESSIVE_VIDEO_EXTENSIONS)), None)
    if video:
        return DiscoveredAsset(AssetKind.MP4, video.key, objects)

    # Folder placeholders ("prefix/") are never playable
    files = [obj for obj in objects if not obj.key.endswith("/")]
    if not files:
        return None
    largest = max(files, key=lambda obj: obj.size)
    logger.info(f"No labelled video found, using largest object {largest.key} ({largest.size} bytes)")
    return DiscoveredAsset(AssetKind.MP4, largest.key, objects)


async def discover_asset(store: ObjectStoreClient, prefix: str) -> DiscoveredAsset:
    """
    List `prefix` and select the manifest or progressive file to play.

    Raises:
        NoAssetError: If the prefix holds nothing playable.
        StorageError: If the listing fails.
    """
    objects = await store.list(prefix)
    asset = select_asset(objects)
    if asset is None:
        raise NoAssetError(prefix)
    logger.debug(f"Discovered {asset.kind.value} asset {asset.key}")
    return asset


def select_subtitles(objects: List[StorageObject]) -> List[StorageObject]:
    return [obj for obj in objects if obj.key.lower().endswith(SUBTITLE_EXTENSIONS)]


def infer_subtitle_info(key: str) -> Tuple[str, Optional[str]]:
    """Guess a display label and language code from a subtitle file name."""
    lower = key.rsplit("/", 1)[-1].lower()

    if "pt-br" in lower or "ptbr" in lower or "pt_b" in lower:
        return "Português (Brasil)", "pt-BR"
    if "pt" in lower:
        return "Português", "pt"
    if "en" in lower:
        return "English", "en"
    if "es" in lower:
        return "Español", "es"
    return "Subtitle", None
