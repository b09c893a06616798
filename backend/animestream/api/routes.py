"""API routes for the anime catalog and episode playback"""

from fastapi import APIRouter, File, Form, Header, HTTPException, Query, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field
import logging
from typing import Dict, List, Optional

from animestream.core.config import settings
from animestream.core.streaming import (
    MalformedRange,
    RangeNotSatisfiable,
    ResourceNotFound,
    serve_video_source,
)
from animestream.services.catalog_service import (
    AnimeNotFound,
    CatalogError,
    DuplicateEpisode,
    EpisodeNotFound,
    InvalidCatalogData,
    NotFoundReason,
    UploadTooLarge,
    get_catalog_service,
)
from animestream.services.document_store import DocumentStoreError
from animestream.services.episode_importer import get_episode_importer
from animestream.services.schedule_service import (
    InvalidScheduleEntry,
    ScheduleEntryNotFound,
    get_schedule_service,
)
from animestream.services.trending_service import TrendingConfigError, get_trending_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["catalog"])

SOURCE_NOT_FOUND_DETAIL = {
    NotFoundReason.ANIME: "Anime not found",
    NotFoundReason.EPISODE: "Episode not found",
    NotFoundReason.SERVER: "Video source not found",
}


class AnimePayload(BaseModel):
    """Request body for creating or replacing an anime"""
    model_config = ConfigDict(extra="allow")

    title: str
    synopsis: Optional[str] = None
    genres: Optional[List[str]] = None
    type: Optional[str] = None
    status: Optional[str] = None
    image: Optional[str] = None
    episodes: Optional[int] = None
    views: Optional[int] = None
    trending: Optional[bool] = None


class EpisodePayload(BaseModel):
    """Request body for adding an episode"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    episode_number: int = Field(..., alias="episodeNumber", ge=0)
    title: Optional[str] = None
    description: Optional[str] = None
    sources: Optional[Dict[str, str]] = None


class EpisodeUpdate(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    description: Optional[str] = None
    sources: Optional[Dict[str, str]] = None


class ImportRequest(BaseModel):
    """Paste of an HTML episode picker"""
    html: str
    server: int = Field(1, ge=1)
    overwrite: bool = False


class TrendingConfigUpdate(BaseModel):
    pinned: Optional[List[int]] = None
    limit: Optional[int] = None


class TrendingFlag(BaseModel):
    trending: bool


class ScheduleEntryPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    anime_id: int = Field(..., alias="animeId")
    day: str
    time: str
    episode_number: Optional[int] = Field(None, alias="episodeNumber")
    note: Optional[str] = None


class ScheduleEntryUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    anime_id: Optional[int] = Field(None, alias="animeId")
    day: Optional[str] = None
    time: Optional[str] = None
    episode_number: Optional[int] = Field(None, alias="episodeNumber")
    note: Optional[str] = None


def _http_error(e: Exception) -> HTTPException:
    """Translate a service exception into an HTTPException"""
    if isinstance(e, (AnimeNotFound, EpisodeNotFound, ScheduleEntryNotFound)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, (DuplicateEpisode, InvalidCatalogData, InvalidScheduleEntry, TrendingConfigError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, UploadTooLarge):
        return HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(e))
    logger.error(f"Catalog operation failed: {e}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


SERVICE_ERRORS = (CatalogError, DocumentStoreError, ScheduleEntryNotFound, InvalidScheduleEntry, TrendingConfigError)


# ----------------------------------------------------------------------
# Animes
# ----------------------------------------------------------------------

@router.get("/animes")
async def list_animes(genre: Optional[str] = None, type: Optional[str] = None):
    """List animes, optionally filtered by genre or type"""
    catalog = get_catalog_service()
    return [a.to_record() for a in catalog.list_animes(genre=genre, anime_type=type)]


@router.post("/animes", status_code=status.HTTP_201_CREATED)
async def create_anime(payload: AnimePayload):
    try:
        anime = get_catalog_service().create_anime(payload.model_dump(exclude_unset=True))
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return anime.to_record()


@router.get("/animes/search")
async def search_animes(q: str = Query("", description="Text matched against title, synopsis and genres")):
    try:
        results = get_catalog_service().search_animes(q)
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return [a.to_record() for a in results]


@router.get("/animes/{anime_id}")
async def get_anime(anime_id: int):
    try:
        return get_catalog_service().get_anime(anime_id).to_record()
    except SERVICE_ERRORS as e:
        raise _http_error(e)


@router.put("/animes/{anime_id}")
async def update_anime(anime_id: int, payload: AnimePayload):
    try:
        anime = get_catalog_service().update_anime(anime_id, payload.model_dump(exclude_unset=True))
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return anime.to_record()


@router.delete("/animes/{anime_id}")
async def delete_anime(anime_id: int):
    """Delete an anime, its episode list and its schedule entries"""
    try:
        return get_catalog_service().delete_anime(anime_id).to_record()
    except SERVICE_ERRORS as e:
        raise _http_error(e)


@router.post("/animes/{anime_id}/view")
async def record_view(anime_id: int):
    try:
        anime = get_catalog_service().record_view(anime_id)
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return {"id": anime.id, "views": anime.views}


@router.get("/animes/{anime_id}/related")
async def related_animes(anime_id: int):
    """Animes sharing the most genres with this one"""
    try:
        related = get_catalog_service().related_animes(anime_id)
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return [a.to_record() for a in related]


@router.put("/animes/{anime_id}/trending")
async def set_trending_flag(anime_id: int, payload: TrendingFlag):
    try:
        anime = get_trending_service().set_trending_flag(anime_id, payload.trending)
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return anime.to_record()


# ----------------------------------------------------------------------
# Episodes
# ----------------------------------------------------------------------

@router.get("/animes/{anime_id}/episodes")
async def list_episodes(anime_id: int):
    try:
        episodes = get_catalog_service().list_episodes(anime_id)
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return [e.to_record() for e in episodes]


@router.post("/animes/{anime_id}/episodes", status_code=status.HTTP_201_CREATED)
async def add_episode(anime_id: int, payload: EpisodePayload):
    try:
        episode = get_catalog_service().add_episode(
            anime_id, payload.model_dump(by_alias=True, exclude_unset=True)
        )
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return episode.to_record()


@router.post("/animes/{anime_id}/episodes/upload", status_code=status.HTTP_201_CREATED)
async def upload_episode_video(
    anime_id: int,
    video: Optional[UploadFile] = File(None),
    episode_number: int = Form(..., alias="episodeNumber", ge=0),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
):
    """
    Upload a video file for an episode.

    The file is stored under the upload directory and registered as the
    episode's server1 source. The episode is created if it does not exist.
    """
    catalog = get_catalog_service()
    try:
        catalog.get_anime(anime_id)

        if video is None or not video.filename:
            raise HTTPException(status_code=400, detail="No video file uploaded")
        if not (video.content_type or "").startswith("video/"):
            raise HTTPException(status_code=400, detail="Only video files are allowed!")

        video_path = await run_in_threadpool(
            catalog.store_upload, anime_id, episode_number, video.filename, video.file
        )
        created = catalog.register_episode_video(
            anime_id, episode_number, video_path, title=title, description=description
        )
    except HTTPException:
        raise
    except SERVICE_ERRORS as e:
        raise _http_error(e)

    logger.info(f"Uploaded video for anime {anime_id} episode {episode_number}: {video_path}")
    return {
        "success": True,
        "message": "Episode video uploaded",
        "episodeNumber": episode_number,
        "created": created,
        "path": video_path,
    }


@router.post("/animes/{anime_id}/episodes/import")
async def import_episodes(anime_id: int, request: ImportRequest):
    """Create or update episodes from an HTML <option> list"""
    try:
        report = get_episode_importer().import_episodes(
            anime_id, request.html, server_index=request.server, overwrite=request.overwrite
        )
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return report.to_dict()


@router.get("/animes/{anime_id}/episodes/{episode_number}")
async def get_episode(anime_id: int, episode_number: int):
    try:
        return get_catalog_service().get_episode(anime_id, episode_number).to_record()
    except SERVICE_ERRORS as e:
        raise _http_error(e)


@router.put("/animes/{anime_id}/episodes/{episode_number}")
async def update_episode(anime_id: int, episode_number: int, payload: EpisodeUpdate):
    try:
        episode = get_catalog_service().update_episode(
            anime_id, episode_number, payload.model_dump(exclude_unset=True)
        )
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return episode.to_record()


@router.delete("/animes/{anime_id}/episodes/{episode_number}")
async def delete_episode(anime_id: int, episode_number: int):
    try:
        return get_catalog_service().delete_episode(anime_id, episode_number).to_record()
    except SERVICE_ERRORS as e:
        raise _http_error(e)


@router.get("/animes/{anime_id}/episodes/{episode_number}/server/{server_index}")
async def stream_episode(
    anime_id: int,
    episode_number: int,
    server_index: int,
    range: Optional[str] = Header(None),
):
    """
    Play an episode from one of its server slots.

    Remote sources are redirected; local files are streamed with Range
    support (required for seeking).
    """
    catalog = get_catalog_service()
    result = catalog.resolve_video_source(anime_id, episode_number, server_index)

    if not result.found:
        logger.info(
            f"No video source for anime {anime_id} episode {episode_number} "
            f"server {server_index}: {result.reason.value} missing"
        )
        raise HTTPException(status_code=404, detail=SOURCE_NOT_FOUND_DETAIL[result.reason])

    try:
        return serve_video_source(result.source, range, catalog.content_root, settings.stream_chunk_size)
    except ResourceNotFound as e:
        logger.warning(str(e))
        return Response(status_code=status.HTTP_404_NOT_FOUND)
    except MalformedRange as e:
        logger.info(f"Malformed range {range!r}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except RangeNotSatisfiable as e:
        logger.info(str(e))
        raise HTTPException(
            status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
            detail=str(e),
            headers={"Content-Range": f"bytes */{e.file_size}"},
        )
    except Exception as e:
        logger.error(f"Streaming error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# ----------------------------------------------------------------------
# Trending
# ----------------------------------------------------------------------

@router.get("/trending")
async def get_trending():
    return [a.to_record() for a in get_trending_service().get_trending()]


@router.get("/trending/config")
async def get_trending_config():
    return get_trending_service().get_config().model_dump()


@router.put("/trending/config")
async def update_trending_config(payload: TrendingConfigUpdate):
    try:
        config = get_trending_service().update_config(pinned=payload.pinned, limit=payload.limit)
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return config.model_dump()


# ----------------------------------------------------------------------
# Schedule
# ----------------------------------------------------------------------

@router.get("/schedule")
async def get_schedule():
    """Weekly schedule grouped by day"""
    return get_schedule_service().list_schedule()


@router.post("/schedule", status_code=status.HTTP_201_CREATED)
async def add_schedule_entry(payload: ScheduleEntryPayload):
    try:
        entry = get_schedule_service().add_entry(payload.model_dump(by_alias=True, exclude_none=True))
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return entry.to_record()


@router.put("/schedule/{entry_id}")
async def update_schedule_entry(entry_id: int, payload: ScheduleEntryUpdate):
    try:
        entry = get_schedule_service().update_entry(
            entry_id, payload.model_dump(by_alias=True, exclude_unset=True)
        )
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return entry.to_record()


@router.delete("/schedule/{entry_id}")
async def delete_schedule_entry(entry_id: int):
    try:
        return get_schedule_service().delete_entry(entry_id).to_record()
    except SERVICE_ERRORS as e:
        raise _http_error(e)
