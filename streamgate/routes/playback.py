from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from streamgate.handlers import handle_manifest, handle_playback_session
from streamgate.schemas import ManifestParams, PlaybackSession, PlaybackSessionParams
from streamgate.services import GatewayServices, get_services

playback_router = APIRouter()


@playback_router.get("/playback-session", response_model=PlaybackSession, response_model_by_alias=True)
async def playback_session(
    request: Request,
    params: Annotated[PlaybackSessionParams, Query()],
    services: Annotated[GatewayServices, Depends(get_services)],
):
    """
    Resolve how a movie or episode should be played.

    Args:
        request (Request): The incoming HTTP request.
        params (PlaybackSessionParams): Content identifier, kind and requested access mode.
        services (GatewayServices): Shared gateway collaborators.

    Returns:
        PlaybackSession: The entry URL, its expiry and protection flag, subtitles and display metadata.
    """
    return await handle_playback_session(request, params, services)


@playback_router.head("/manifest/{content_id}", name="content_manifest")
@playback_router.get("/manifest/{content_id}", name="content_manifest")
async def content_manifest(
    request: Request,
    content_id: str,
    params: Annotated[ManifestParams, Query()],
    services: Annotated[GatewayServices, Depends(get_services)],
):
    """
    Serve an HLS manifest of the content with every reference rewritten for the player.

    Args:
        request (Request): The incoming HTTP request.
        content_id (str): Identifier of the movie or episode.
        params (ManifestParams): Kind, nested variant path and requested access mode.
        services (GatewayServices): Shared gateway collaborators.

    Returns:
        Response: The rewritten manifest.
    """
    return await handle_manifest(request, content_id, params, services)
