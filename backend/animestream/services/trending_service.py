"""Trending rankings: pinned animes first, then the most viewed"""

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from animestream.core.config import settings
from animestream.services.catalog_service import (
    Anime,
    AnimeNotFound,
    CatalogService,
    get_catalog_service,
)
from animestream.services.document_store import ANIMES, TRENDING

logger = logging.getLogger(__name__)

MAX_TRENDING_LIMIT = 100


class TrendingConfig(BaseModel):
    """Contents of trending.json"""
    pinned: List[int] = Field(default_factory=list)
    limit: int = Field(default_factory=lambda: settings.trending_limit, ge=1, le=MAX_TRENDING_LIMIT)


class TrendingConfigError(Exception):
    """Invalid trending configuration update"""
    pass


class TrendingService:
    """Compute and configure the trending list"""

    def __init__(self, catalog: Optional[CatalogService] = None, bonus: Optional[int] = None):
        self.catalog = catalog or get_catalog_service()
        self.store = self.catalog.store
        self.bonus = bonus if bonus is not None else settings.trending_bonus

    def get_config(self) -> TrendingConfig:
        data = self.store.load(TRENDING, default={})
        try:
            return TrendingConfig.model_validate(data)
        except ValueError as e:
            logger.warning(f"Ignoring invalid trending config: {e}")
            return TrendingConfig()

    def update_config(self, pinned: Optional[List[int]] = None, limit: Optional[int] = None) -> TrendingConfig:
        config = self.get_config()

        if limit is not None:
            if not 1 <= limit <= MAX_TRENDING_LIMIT:
                raise TrendingConfigError(f"limit must be between 1 and {MAX_TRENDING_LIMIT}")
            config.limit = limit

        if pinned is not None:
            known = {a.id for a in self.catalog.list_animes()}
            unknown = [anime_id for anime_id in pinned if anime_id not in known]
            if unknown:
                raise TrendingConfigError(f"Unknown anime ids: {', '.join(str(i) for i in unknown)}")
            # dict.fromkeys keeps first occurrence order
            config.pinned = list(dict.fromkeys(pinned))

        self.store.save(TRENDING, config.model_dump())
        logger.info(f"Trending config updated: pinned={config.pinned} limit={config.limit}")
        return config

    def score(self, anime: Anime) -> int:
        return anime.views + (self.bonus if anime.trending else 0)

    def get_trending(self) -> List[Anime]:
        """Pinned animes in pinned order, then the rest by score (newest first on ties)"""
        config = self.get_config()
        animes = self.catalog.list_animes()
        by_id: Dict[int, Anime] = {a.id: a for a in animes}

        ranked = [by_id[anime_id] for anime_id in config.pinned if anime_id in by_id]
        pinned_ids = {a.id for a in ranked}

        rest = [a for a in animes if a.id not in pinned_ids]
        rest.sort(key=lambda a: (self.score(a), a.date_added), reverse=True)

        return (ranked + rest)[:config.limit]

    def set_trending_flag(self, anime_id: int, flag: bool) -> Anime:
        with self.store.transaction(ANIMES) as records:
            record = next((r for r in records if r.get("id") == anime_id), None)
            if record is None:
                raise AnimeNotFound(anime_id)
            record["trending"] = bool(flag)
            anime = Anime.model_validate(record)

        logger.info(f"Anime {anime_id} trending flag set to {flag}")
        return anime


# Singleton lazy initialization
_trending_service = None

def get_trending_service() -> TrendingService:
    global _trending_service
    if _trending_service is None:
        _trending_service = TrendingService()
    return _trending_service
