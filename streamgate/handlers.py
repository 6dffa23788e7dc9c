import asyncio
import logging
from typing import List, Optional

from fastapi import HTTPException, Request, Response
from fastapi.responses import JSONResponse

from .access import AccessResolver
from .catalog import ContentCatalog, ContentRecord
from .const import HLS_CONTENT_TYPE, MANIFEST_EXTENSIONS
from .discovery import NoAssetError, discover_asset, infer_subtitle_info, select_subtitles
from .locator import ContentNotFound, NoPrefixConfigured
from .schemas import (
    AccessMode,
    AssetKind,
    ContentKind,
    ContentSummary,
    ManifestParams,
    PlaybackSession,
    PlaybackSessionParams,
    SubtitleTrack,
)
from .services import GatewayServices
from .storage.base import ObjectNotFound, StorageError, StorageObject
from .utils.http_utils import encode_gateway_url, get_original_scheme, is_absolute_url
from .utils.m3u8_processor import RewriteContext, reference_path, relative_to_prefix

logger = logging.getLogger(__name__)

# Query parameters carried from a playback session request onto the manifest URL it hands out.
FORWARDED_PARAMS = ("api_password",)


class InvalidVariant(ValueError):
    """Raised when a variant parameter does not name a manifest inside the content prefix."""


def handle_exceptions(exception: Exception) -> Response:
    """
    Handle exceptions and return appropriate HTTP responses.

    Args:
        exception (Exception): The exception that was raised.

    Returns:
        Response: An HTTP response corresponding to the exception type.
    """
    if isinstance(exception, ContentNotFound):
        return JSONResponse({"error": "Content not found"}, status_code=404)
    elif isinstance(exception, NoPrefixConfigured):
        return JSONResponse({"error": "Content has no storage location configured"}, status_code=400)
    elif isinstance(exception, NoAssetError):
        logger.warning(f"No playable asset: {exception}")
        return JSONResponse({"error": "Content not available"}, status_code=404)
    elif isinstance(exception, ObjectNotFound):
        return JSONResponse({"error": "Manifest not found"}, status_code=404)
    elif isinstance(exception, InvalidVariant):
        return JSONResponse({"error": str(exception)}, status_code=400)
    elif isinstance(exception, StorageError):
        logger.error(f"Storage error while handling request: {exception}")
        return JSONResponse({"error": "Storage temporarily unavailable"}, status_code=500)
    elif isinstance(exception, HTTPException):
        return JSONResponse({"error": exception.detail}, status_code=exception.status_code)
    else:
        logger.exception(f"Internal server error while handling request: {exception}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


def manifest_route_url(request: Request, content_id: str) -> str:
    """Absolute URL of the manifest route for `content_id`, honouring the original scheme."""
    return str(
        request.url_for("content_manifest", content_id=content_id).replace(scheme=get_original_scheme(request))
    )


def manifest_entry_url(request: Request, content_id: str, kind: ContentKind, mode: AccessMode) -> str:
    query_params = {k: v for k, v in request.query_params.items() if k in FORWARDED_PARAMS}
    query_params["kind"] = kind.value
    query_params["mode"] = mode.value
    return encode_gateway_url(manifest_route_url(request, content_id), query_params=query_params)


def validate_variant(variant: str) -> str:
    """
    Normalize a variant parameter to a manifest path relative to the content prefix.

    Raises:
        InvalidVariant: If the variant is a URL, leaves the prefix or is not a manifest.
    """
    relative = None
    if not is_absolute_url(variant):
        relative = relative_to_prefix("", reference_path(variant))
    if relative is None or not relative.lower().endswith(MANIFEST_EXTENSIONS):
        raise InvalidVariant("Invalid variant")
    return relative


async def list_subtitle_tracks(
    resolver: AccessResolver, objects: List[StorageObject], mode: AccessMode, ttl: int
) -> List[SubtitleTrack]:
    """
    Build subtitle tracks for the `.vtt` objects of a listing.

    Subtitles follow passthrough modes and are presigned otherwise. Any failure yields an
    empty list, since subtitles never block playback.
    """
    subtitle_mode = mode if mode.is_passthrough else AccessMode.SIGNED_DIRECT
    subtitle_objects = select_subtitles(objects)
    try:
        descriptors = await asyncio.gather(
            *(resolver.resolve(obj.key, subtitle_mode, ttl=ttl) for obj in subtitle_objects)
        )
    except Exception as e:
        logger.warning(f"Unable to resolve subtitles: {type(e).__name__}: {e}")
        return []

    tracks = []
    for obj, descriptor in zip(subtitle_objects, descriptors):
        label, language = infer_subtitle_info(obj.key)
        tracks.append(SubtitleTrack(label=label, language=language, url=descriptor.url))
    return tracks


async def build_content_summary(catalog: ContentCatalog, record: ContentRecord) -> ContentSummary:
    """Display fields for the player; episodes borrow artwork and names from their title."""
    summary = ContentSummary(
        id=record.id,
        name=record.name,
        original_name=record.original_name,
        overview=record.overview,
        release_date=record.release_date,
        poster_url=record.poster_url,
        backdrop_url=record.backdrop_url,
        type=record.type,
    )
    if record.kind is not ContentKind.EPISODE:
        return summary

    summary.season_number = record.season_number
    summary.episode_number = record.episode_number
    summary.episode_name = record.name

    title: Optional[ContentRecord] = None
    if record.title_id:
        try:
            title = await catalog.find_title(record.title_id)
        except Exception as e:
            logger.warning(f"Unable to load title {record.title_id} for episode {record.id}: {e}")
    if title:
        summary.name = title.name
        summary.original_name = title.original_name
        summary.overview = record.overview or title.overview
        summary.release_date = record.release_date or title.release_date
        summary.poster_url = title.poster_url
        summary.backdrop_url = title.backdrop_url
        summary.type = title.type
    return summary


async def handle_playback_session(
    request: Request, params: PlaybackSessionParams, services: GatewayServices
) -> PlaybackSession | Response:
    """
    Answer "how do I play this content" with an entry URL, expiry, protection flag and subtitles.

    Args:
        request (Request): The incoming HTTP request.
        params (PlaybackSessionParams): Content identifier, kind and requested mode.
        services (GatewayServices): Shared gateway collaborators.

    Returns:
        Union[PlaybackSession, Response]: The session, or an error response.
    """
    try:
        located = await services.locator.locate(params.content_id, params.kind)
        store = services.stores.get(located.storage_backend)
        asset = await discover_asset(store, located.prefix)
        resolver = services.resolver_for(store)

        if asset.kind is AssetKind.HLS:
            access = await resolver.resolve_manifest_entry(
                asset.key,
                params.mode,
                route_url=lambda mode: manifest_entry_url(request, params.content_id, params.kind, mode),
                ttl=services.manifest_url_ttl,
                content_path=located.content_path,
            )
        else:
            access = await resolver.resolve(asset.key, params.mode, ttl=services.progressive_url_ttl)

        subtitles = await list_subtitle_tracks(resolver, asset.objects, access.mode, services.subtitle_url_ttl)
        summary = await build_content_summary(services.catalog, located.record)
    except Exception as e:
        return handle_exceptions(e)

    logger.info(f"Playback session for {params.kind.value} {params.content_id}: {asset.kind.value} via {access.mode.value}")
    return PlaybackSession(
        playback_url=access.url,
        kind=asset.kind,
        expires_at=access.expires_at,
        protected=access.protected,
        subtitles=subtitles,
        content_summary=summary,
    )


async def handle_manifest(
    request: Request, content_id: str, params: ManifestParams, services: GatewayServices
) -> Response:
    """
    Fetch a manifest from the object store and rewrite its references.

    Without a variant the content's top-level manifest is discovered; with one, the nested
    manifest at that path below the content prefix is served.

    Args:
        request (Request): The incoming HTTP request.
        content_id (str): Identifier of the movie or episode.
        params (ManifestParams): Kind, variant and requested mode.
        services (GatewayServices): Shared gateway collaborators.

    Returns:
        Response: The rewritten manifest, or an error response.
    """
    try:
        located = await services.locator.locate(content_id, params.kind)
        store = services.stores.get(located.storage_backend)

        if params.variant:
            manifest_key = located.prefix + validate_variant(params.variant)
        else:
            asset = await discover_asset(store, located.prefix)
            if asset.kind is not AssetKind.HLS:
                raise NoAssetError(located.prefix, "No HLS manifest")
            manifest_key = asset.key

        raw = await store.get(manifest_key)
        # Manifests are line-splittable text; undecodable bytes must not fail the response.
        content = raw.decode("utf-8", errors="replace")

        context = RewriteContext(
            prefix=located.prefix,
            manifest_key=manifest_key,
            mode=params.mode,
            manifest_url=manifest_route_url(request, content_id),
            query_params=dict(request.query_params),
        )
        result = await services.processor_for(store).process_m3u8(content, context)
    except Exception as e:
        return handle_exceptions(e)

    response_headers = {
        "content-disposition": "inline",
        "cache-control": services.cache_control_for(result.mode),
    }
    return Response(content=result.content, media_type=HLS_CONTENT_TYPE, headers=response_headers)
