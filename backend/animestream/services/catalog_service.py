"""
Catalog service for anime and episode records.

Anime records live in the ``animes`` collection; each anime's episodes live
in their own ``episodes/<id>`` collection. Records are validated into
pydantic models when loaded, so defaults (views, type, trending flag,
episode titles) are applied once at construction.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from animestream.core.config import settings
from animestream.services.document_store import (
    ANIMES,
    TRENDING,
    DocumentStore,
    episodes_collection,
    get_document_store,
)

logger = logging.getLogger(__name__)

UPLOAD_COPY_CHUNK = 1024 * 1024


def _now() -> str:
    return datetime.now().isoformat()


class Anime(BaseModel):
    """Anime record as stored in animes.json"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: int
    title: str
    synopsis: str = ""
    genres: List[str] = Field(default_factory=list)
    type: str = "TV"
    status: str = "ongoing"
    image: Optional[str] = None
    episodes: int = 0
    views: int = 0
    trending: bool = False
    date_added: str = Field(default_factory=_now, alias="dateAdded")

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class Episode(BaseModel):
    """Episode record as stored in episodes/<animeId>.json"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    episode_number: int = Field(alias="episodeNumber")
    title: str = ""
    description: str = ""
    sources: Dict[str, str] = Field(default_factory=dict)
    date_added: str = Field(default_factory=_now, alias="dateAdded")

    @model_validator(mode="after")
    def _default_title(self) -> "Episode":
        if not self.title:
            self.title = f"Episode {self.episode_number}"
        return self

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class CatalogError(Exception):
    """Base exception for catalog operations"""
    pass


class AnimeNotFound(CatalogError):
    def __init__(self, anime_id: int):
        super().__init__(f"Anime not found: {anime_id}")
        self.anime_id = anime_id


class EpisodeNotFound(CatalogError):
    def __init__(self, anime_id: int, episode_number: int):
        super().__init__(f"Episode {episode_number} not found for anime {anime_id}")
        self.anime_id = anime_id
        self.episode_number = episode_number


class DuplicateEpisode(CatalogError):
    """Episode number already exists for the anime"""
    pass


class InvalidCatalogData(CatalogError):
    """Client-supplied record failed validation"""
    pass


class UploadTooLarge(CatalogError):
    """Uploaded video exceeds max_upload_size"""
    pass


class NotFoundReason(str, Enum):
    """Why a video source could not be resolved"""
    ANIME = "anime"
    EPISODE = "episode"
    SERVER = "server"


@dataclass(frozen=True)
class VideoSourceResult:
    """Either a resolved source string or the reason it is missing"""
    source: Optional[str] = None
    reason: Optional[NotFoundReason] = None

    @property
    def found(self) -> bool:
        return self.source is not None

    @classmethod
    def resolved(cls, source: str) -> "VideoSourceResult":
        return cls(source=source)

    @classmethod
    def missing(cls, reason: NotFoundReason) -> "VideoSourceResult":
        return cls(reason=reason)


def server_key(server_index: int) -> str:
    return f"server{server_index}"


def _validation_message(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
    return "; ".join(parts)


class CatalogService:
    """CRUD and search over anime and episode records"""

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        upload_dir: Optional[Path] = None,
        content_root: Optional[Path] = None,
        max_upload_size: Optional[int] = None,
    ):
        self.store = store or get_document_store()
        self.upload_dir = Path(upload_dir) if upload_dir is not None else settings.get_upload_path()
        self.content_root = Path(content_root) if content_root is not None else settings.get_content_root()
        self.max_upload_size = max_upload_size if max_upload_size is not None else settings.max_upload_size

    # ------------------------------------------------------------------
    # Loading helpers
    # ------------------------------------------------------------------

    def _parse_animes(self, records: List[Dict]) -> List[Anime]:
        animes = []
        for record in records:
            try:
                animes.append(Anime.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Skipping invalid anime record {record.get('id')}: {_validation_message(e)}")
        return animes

    def _parse_episodes(self, anime_id: int, records: List[Dict]) -> List[Episode]:
        episodes = []
        for record in records:
            try:
                episodes.append(Episode.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Skipping invalid episode record for anime {anime_id}: {_validation_message(e)}")
        return episodes

    def _load_animes(self) -> List[Anime]:
        return self._parse_animes(self.store.load(ANIMES))

    def _load_episodes(self, anime_id: int) -> List[Episode]:
        return self._parse_episodes(anime_id, self.store.load(episodes_collection(anime_id)))

    def _require_anime(self, anime_id: int) -> Anime:
        anime = next((a for a in self._load_animes() if a.id == anime_id), None)
        if anime is None:
            raise AnimeNotFound(anime_id)
        return anime

    def _bump_episode_count(self, anime_id: int, episode_total: int) -> None:
        with self.store.transaction(ANIMES) as records:
            for record in records:
                if record.get("id") == anime_id:
                    record["episodes"] = max(episode_total, record.get("episodes") or 0)
                    break

    # ------------------------------------------------------------------
    # Animes
    # ------------------------------------------------------------------

    def list_animes(self, genre: Optional[str] = None, anime_type: Optional[str] = None) -> List[Anime]:
        animes = self._load_animes()
        if genre:
            wanted = genre.lower()
            animes = [a for a in animes if any(g.lower() == wanted for g in a.genres)]
        if anime_type:
            animes = [a for a in animes if a.type.lower() == anime_type.lower()]
        return animes

    def get_anime(self, anime_id: int) -> Anime:
        return self._require_anime(anime_id)

    def create_anime(self, data: Dict[str, Any]) -> Anime:
        """
        Create an anime record.

        The id is one more than the highest existing id (1 for an empty
        catalog) and dateAdded is set to now; client values for either are
        ignored.
        """
        with self.store.transaction(ANIMES) as records:
            new_id = max((r.get("id", 0) for r in records), default=0) + 1
            payload = {k: v for k, v in data.items() if k not in ("id", "dateAdded", "date_added")}
            try:
                anime = Anime.model_validate({**payload, "id": new_id, "dateAdded": _now()})
            except ValidationError as e:
                raise InvalidCatalogData(_validation_message(e)) from e
            records.append(anime.to_record())

        logger.info(f"Created anime {anime.id}: {anime.title}")
        return anime

    def update_anime(self, anime_id: int, data: Dict[str, Any]) -> Anime:
        """
        Replace an anime record.

        id and dateAdded are kept. The views counter and episode count are
        kept unless the payload supplies them.
        """
        with self.store.transaction(ANIMES) as records:
            index = next((i for i, r in enumerate(records) if r.get("id") == anime_id), None)
            if index is None:
                raise AnimeNotFound(anime_id)

            current = records[index]
            payload = {k: v for k, v in data.items() if k not in ("id", "dateAdded", "date_added")}
            payload.setdefault("views", current.get("views", 0))
            payload.setdefault("episodes", current.get("episodes", 0))
            payload["id"] = anime_id
            payload["dateAdded"] = current.get("dateAdded") or _now()
            try:
                anime = Anime.model_validate(payload)
            except ValidationError as e:
                raise InvalidCatalogData(_validation_message(e)) from e
            records[index] = anime.to_record()

        logger.info(f"Updated anime {anime_id}")
        return anime

    def delete_anime(self, anime_id: int) -> Anime:
        """Delete an anime together with its episodes, schedule entries and trending pin"""
        with self.store.transaction(ANIMES) as records:
            index = next((i for i, r in enumerate(records) if r.get("id") == anime_id), None)
            if index is None:
                raise AnimeNotFound(anime_id)
            deleted = Anime.model_validate(records.pop(index))

        self.store.delete(episodes_collection(anime_id))

        # schedule_service imports this module
        from animestream.services.schedule_service import ScheduleService
        ScheduleService(catalog=self).remove_anime(anime_id)

        if self.store.exists(TRENDING):
            with self.store.transaction(TRENDING, default={}) as config:
                pinned = config.get("pinned") or []
                if anime_id in pinned:
                    config["pinned"] = [p for p in pinned if p != anime_id]

        logger.info(f"Deleted anime {anime_id} and its episodes")
        return deleted

    def search_animes(self, query: str) -> List[Anime]:
        """Case-insensitive substring search over title, synopsis and genres"""
        term = (query or "").strip().lower()
        if not term:
            raise InvalidCatalogData("Search query must not be empty")

        return [
            a for a in self._load_animes()
            if term in a.title.lower()
            or (a.synopsis and term in a.synopsis.lower())
            or any(term in g.lower() for g in a.genres)
        ]

    def related_animes(self, anime_id: int, limit: Optional[int] = None) -> List[Anime]:
        """Other animes sharing genres, most shared genres first"""
        limit = limit if limit is not None else settings.related_limit
        animes = self._load_animes()
        current = next((a for a in animes if a.id == anime_id), None)
        if current is None:
            raise AnimeNotFound(anime_id)
        if not current.genres:
            return []

        wanted = set(current.genres)
        scored = [
            (sum(1 for g in a.genres if g in wanted), a)
            for a in animes
            if a.id != anime_id
        ]
        scored = [(matches, a) for matches, a in scored if matches > 0]
        scored.sort(key=lambda item: item[0], reverse=True)
        return [a for _, a in scored[:limit]]

    def record_view(self, anime_id: int) -> Anime:
        with self.store.transaction(ANIMES) as records:
            record = next((r for r in records if r.get("id") == anime_id), None)
            if record is None:
                raise AnimeNotFound(anime_id)
            record["views"] = int(record.get("views") or 0) + 1
            anime = Anime.model_validate(record)
        return anime

    # ------------------------------------------------------------------
    # Episodes
    # ------------------------------------------------------------------

    def list_episodes(self, anime_id: int) -> List[Episode]:
        self._require_anime(anime_id)
        return sorted(self._load_episodes(anime_id), key=lambda e: e.episode_number)

    def get_episode(self, anime_id: int, episode_number: int) -> Episode:
        episode = next(
            (e for e in self._load_episodes(anime_id) if e.episode_number == episode_number),
            None,
        )
        if episode is None:
            raise EpisodeNotFound(anime_id, episode_number)
        return episode

    def add_episode(self, anime_id: int, data: Dict[str, Any]) -> Episode:
        self._require_anime(anime_id)
        payload = {k: v for k, v in data.items() if k not in ("dateAdded", "date_added")}
        payload["dateAdded"] = _now()
        try:
            episode = Episode.model_validate(payload)
        except ValidationError as e:
            raise InvalidCatalogData(_validation_message(e)) from e

        with self.store.transaction(episodes_collection(anime_id)) as records:
            if any(r.get("episodeNumber") == episode.episode_number for r in records):
                raise DuplicateEpisode(f"Episode number already exists: {episode.episode_number}")
            records.append(episode.to_record())
            total = len(records)

        self._bump_episode_count(anime_id, total)
        logger.info(f"Added episode {episode.episode_number} to anime {anime_id}")
        return episode

    def update_episode(self, anime_id: int, episode_number: int, data: Dict[str, Any]) -> Episode:
        """Merge changes into an episode; the episode number cannot change"""
        with self.store.transaction(episodes_collection(anime_id)) as records:
            index = next(
                (i for i, r in enumerate(records) if r.get("episodeNumber") == episode_number),
                None,
            )
            if index is None:
                raise EpisodeNotFound(anime_id, episode_number)

            merged = {**records[index], **data}
            merged["episodeNumber"] = episode_number
            merged["dateAdded"] = records[index].get("dateAdded") or _now()
            merged.pop("episode_number", None)
            merged.pop("date_added", None)
            try:
                episode = Episode.model_validate(merged)
            except ValidationError as e:
                raise InvalidCatalogData(_validation_message(e)) from e
            records[index] = episode.to_record()

        return episode

    def delete_episode(self, anime_id: int, episode_number: int) -> Episode:
        with self.store.transaction(episodes_collection(anime_id)) as records:
            index = next(
                (i for i, r in enumerate(records) if r.get("episodeNumber") == episode_number),
                None,
            )
            if index is None:
                raise EpisodeNotFound(anime_id, episode_number)
            deleted = Episode.model_validate(records.pop(index))

        logger.info(f"Deleted episode {episode_number} of anime {anime_id}")
        return deleted

    def set_episode_source(
        self,
        anime_id: int,
        episode_number: int,
        source: str,
        server_index: int = 1,
        title: Optional[str] = None,
        description: Optional[str] = None,
        overwrite: bool = True,
    ) -> Optional[bool]:
        """
        Create or update an episode so that server<k> points at source.

        Returns True if the episode was created, False if an existing one
        was updated, None if an existing slot was kept because overwrite
        is off.
        """
        key = server_key(server_index)
        with self.store.transaction(episodes_collection(anime_id)) as records:
            record = next((r for r in records if r.get("episodeNumber") == episode_number), None)
            if record is None:
                episode = Episode(
                    episode_number=episode_number,
                    title=title or "",
                    description=description or "",
                    sources={key: source},
                )
                records.append(episode.to_record())
                created: Optional[bool] = True
            elif record.get("sources", {}).get(key) and not overwrite:
                created = None
            else:
                record["sources"] = {**(record.get("sources") or {}), key: source}
                created = False
            total = len(records)

        self._bump_episode_count(anime_id, total)
        return created

    def store_upload(self, anime_id: int, episode_number: int, filename: str, file_obj: BinaryIO) -> str:
        """
        Copy an uploaded video to <upload_dir>/<animeId>/episode_<n><ext>.

        Returns:
            The stored path relative to the content root

        Raises:
            InvalidCatalogData: Negative episode number
            UploadTooLarge: More than max_upload_size bytes were sent
            CatalogError: The upload directory is outside the content root
        """
        if episode_number < 0:
            raise InvalidCatalogData(f"Episode number must not be negative: {episode_number}")
        self._require_anime(anime_id)

        target_dir = self.upload_dir / str(anime_id)
        target = target_dir / f"episode_{episode_number}{Path(filename or '').suffix.lower()}"
        try:
            relative = target.resolve().relative_to(self.content_root.resolve()).as_posix()
        except ValueError as e:
            raise CatalogError(f"Upload directory {self.upload_dir} is outside content root {self.content_root}") from e

        target_dir.mkdir(parents=True, exist_ok=True)
        written = 0
        try:
            with open(target, "wb") as buffer:
                while True:
                    chunk = file_obj.read(UPLOAD_COPY_CHUNK)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self.max_upload_size:
                        raise UploadTooLarge(
                            f"Upload exceeds {self.max_upload_size // (1024 * 1024)}MB limit"
                        )
                    buffer.write(chunk)
        except Exception:
            # never leave a partial video behind
            target.unlink(missing_ok=True)
            raise

        logger.info(f"Saved upload for anime {anime_id} episode {episode_number}: {target} ({written} bytes)")
        return relative

    def register_episode_video(
        self,
        anime_id: int,
        episode_number: int,
        video_path: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> bool:
        """Point server1 of an episode at an uploaded file. Returns True if the episode was created."""
        self._require_anime(anime_id)
        return bool(self.set_episode_source(
            anime_id, episode_number, video_path,
            server_index=1, title=title, description=description,
        ))

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    def resolve_video_source(self, anime_id: int, episode_number: int, server_index: int) -> VideoSourceResult:
        """Look up the source string for (anime, episode, server slot)"""
        if not any(a.id == anime_id for a in self._load_animes()):
            return VideoSourceResult.missing(NotFoundReason.ANIME)

        episode = next(
            (e for e in self._load_episodes(anime_id) if e.episode_number == episode_number),
            None,
        )
        if episode is None:
            return VideoSourceResult.missing(NotFoundReason.EPISODE)

        source = episode.sources.get(server_key(server_index))
        if not source:
            return VideoSourceResult.missing(NotFoundReason.SERVER)

        return VideoSourceResult.resolved(source)


# Singleton lazy initialization
_catalog_service = None

def get_catalog_service() -> CatalogService:
    global _catalog_service
    if _catalog_service is None:
        _catalog_service = CatalogService()
    return _catalog_service
