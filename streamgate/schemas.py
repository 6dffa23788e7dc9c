from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class AccessMode(str, Enum):
    PROTECTED_TOKEN = "protected-token"
    SIGNED_DIRECT = "signed-direct"
    PUBLIC_CDN = "public-cdn"
    EDGE_PROXY = "edge-proxy"

    @property
    def is_passthrough(self) -> bool:
        return self in (AccessMode.PUBLIC_CDN, AccessMode.EDGE_PROXY)


class ContentKind(str, Enum):
    MOVIE = "MOVIE"
    EPISODE = "EPISODE"


class AssetKind(str, Enum):
    HLS = "hls"
    MP4 = "mp4"


class GenericParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ContentParams(GenericParams):
    kind: ContentKind = Field(ContentKind.MOVIE, description="Whether the identifier names a movie or an episode.")
    mode: Optional[AccessMode] = Field(
        None, description="Access strategy for stream URLs. Defaults to the server's configured mode."
    )

    @field_validator("kind", mode="before")
    def normalize_kind(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value


class PlaybackSessionParams(ContentParams):
    content_id: str = Field(..., description="Identifier of the movie or episode.", alias="contentId")


class ManifestParams(ContentParams):
    variant: Optional[str] = Field(
        None, description="Path of a nested manifest relative to the content's storage prefix."
    )


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class AccessDescriptor(CamelModel):
    url: str
    expires_at: Optional[int] = None
    protected: bool = False
    mode: AccessMode


class SubtitleTrack(CamelModel):
    label: str
    language: Optional[str] = None
    url: str


class ContentSummary(CamelModel):
    id: str
    name: Optional[str] = None
    original_name: Optional[str] = None
    overview: Optional[str] = None
    release_date: Optional[str] = None
    poster_url: Optional[str] = None
    backdrop_url: Optional[str] = None
    type: Optional[str] = None
    season_number: Optional[int] = None
    episode_number: Optional[int] = None
    episode_name: Optional[str] = None


class PlaybackSession(CamelModel):
    playback_url: str
    kind: AssetKind
    expires_at: Optional[int] = None
    protected: bool = False
    subtitles: List[SubtitleTrack] = Field(default_factory=list)
    content_summary: ContentSummary
