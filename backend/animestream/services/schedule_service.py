"""Weekly airing schedule stored in schedule.json"""

import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from animestream.services.catalog_service import (
    AnimeNotFound,
    CatalogService,
    get_catalog_service,
)
from animestream.services.document_store import SCHEDULE

logger = logging.getLogger(__name__)

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_TIME_PATTERN = re.compile(r"([01]\d|2[0-3]):([0-5]\d)")


class ScheduleEntry(BaseModel):
    """One weekly airing slot"""
    model_config = ConfigDict(populate_by_name=True)

    id: int
    anime_id: int = Field(alias="animeId")
    day: str
    time: str
    episode_number: Optional[int] = Field(default=None, alias="episodeNumber")
    note: str = ""

    @field_validator("day")
    @classmethod
    def _check_day(cls, value: str) -> str:
        day = value.strip().lower()
        if day not in WEEKDAYS:
            raise ValueError(f"day must be one of {', '.join(WEEKDAYS)}")
        return day

    @field_validator("time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        value = value.strip()
        if not _TIME_PATTERN.fullmatch(value):
            raise ValueError("time must be HH:MM (24-hour)")
        return value

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class ScheduleEntryNotFound(Exception):
    def __init__(self, entry_id: int):
        super().__init__(f"Schedule entry not found: {entry_id}")
        self.entry_id = entry_id


class InvalidScheduleEntry(Exception):
    """Day or time failed validation"""
    pass


def _build_entry(payload: Dict[str, Any]) -> ScheduleEntry:
    try:
        return ScheduleEntry.model_validate(payload)
    except ValidationError as e:
        messages = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise InvalidScheduleEntry("; ".join(messages)) from e


class ScheduleService:
    """CRUD over weekly schedule entries"""

    def __init__(self, catalog: Optional[CatalogService] = None):
        self.catalog = catalog or get_catalog_service()
        self.store = self.catalog.store

    def _load_entries(self) -> List[ScheduleEntry]:
        entries = []
        for record in self.store.load(SCHEDULE):
            try:
                entries.append(ScheduleEntry.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Skipping invalid schedule entry {record.get('id')}: {e}")
        return entries

    def list_schedule(self) -> Dict[str, List[Dict[str, Any]]]:
        """
        Group entries by weekday, sorted by time.

        Every weekday key is present. Each entry carries the anime title
        (None if the anime has since disappeared).
        """
        titles = {a.id: a.title for a in self.catalog.list_animes()}
        schedule: Dict[str, List[Dict[str, Any]]] = {day: [] for day in WEEKDAYS}

        for entry in sorted(self._load_entries(), key=lambda e: (e.time, e.id)):
            item = entry.to_record()
            item["animeTitle"] = titles.get(entry.anime_id)
            schedule[entry.day].append(item)

        return schedule

    def entries_for_anime(self, anime_id: int) -> List[ScheduleEntry]:
        return [e for e in self._load_entries() if e.anime_id == anime_id]

    def get_entry(self, entry_id: int) -> ScheduleEntry:
        entry = next((e for e in self._load_entries() if e.id == entry_id), None)
        if entry is None:
            raise ScheduleEntryNotFound(entry_id)
        return entry

    def add_entry(self, data: Dict[str, Any]) -> ScheduleEntry:
        with self.store.transaction(SCHEDULE) as records:
            new_id = max((r.get("id", 0) for r in records), default=0) + 1
            entry = _build_entry({**data, "id": new_id})
            # Validate the anime only after the entry itself is well-formed
            self.catalog.get_anime(entry.anime_id)
            records.append(entry.to_record())

        logger.info(f"Scheduled anime {entry.anime_id} on {entry.day} at {entry.time}")
        return entry

    def update_entry(self, entry_id: int, data: Dict[str, Any]) -> ScheduleEntry:
        with self.store.transaction(SCHEDULE) as records:
            index = next((i for i, r in enumerate(records) if r.get("id") == entry_id), None)
            if index is None:
                raise ScheduleEntryNotFound(entry_id)

            entry = _build_entry({**records[index], **data, "id": entry_id})
            if entry.anime_id != records[index].get("animeId"):
                self.catalog.get_anime(entry.anime_id)
            records[index] = entry.to_record()

        return entry

    def delete_entry(self, entry_id: int) -> ScheduleEntry:
        with self.store.transaction(SCHEDULE) as records:
            index = next((i for i, r in enumerate(records) if r.get("id") == entry_id), None)
            if index is None:
                raise ScheduleEntryNotFound(entry_id)
            deleted = ScheduleEntry.model_validate(records.pop(index))

        logger.info(f"Deleted schedule entry {entry_id}")
        return deleted

    def remove_anime(self, anime_id: int) -> int:
        """Drop every entry for an anime. Returns the number removed."""
        with self.store.transaction(SCHEDULE) as records:
            before = len(records)
            records[:] = [r for r in records if r.get("animeId") != anime_id]
            removed = before - len(records)

        if removed:
            logger.info(f"Removed {removed} schedule entries for anime {anime_id}")
        return removed


# Singleton lazy initialization
_schedule_service = None

def get_schedule_service() -> ScheduleService:
    global _schedule_service
    if _schedule_service is None:
        _schedule_service = ScheduleService()
    return _schedule_service
