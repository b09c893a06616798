"""
Batch episode ingestion from HTML ``<option>`` lists.

Video hosts commonly expose their episode picker as a ``<select>`` whose
options carry the video URL as value and "Episode N" as label. Pasting
that markup here creates or updates one episode per option.
"""

import html
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from animestream.services.catalog_service import CatalogService, get_catalog_service

logger = logging.getLogger(__name__)

_OPTION_PATTERN = re.compile(
    r"<option\b([^>]*)>(.*?)(?:</option\s*>|(?=<option\b)|(?=</select\b)|$)",
    re.IGNORECASE | re.DOTALL,
)
_VALUE_PATTERN = re.compile(
    r"""\bvalue\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))""",
    re.IGNORECASE,
)
_TAG_PATTERN = re.compile(r"<[^>]+>")
_NUMBER_PATTERN = re.compile(r"\d+")


@dataclass
class EpisodeOption:
    """One parsed option: episode number, video URL and display label"""
    episode_number: int
    url: str
    label: str


@dataclass
class ImportReport:
    created: List[int] = field(default_factory=list)
    updated: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.created) + len(self.updated) + len(self.skipped)

    def to_dict(self) -> dict:
        return {
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "total": self.total,
        }


def _option_value(attributes: str) -> Optional[str]:
    match = _VALUE_PATTERN.search(attributes)
    if not match:
        return None
    raw = next(group for group in match.groups() if group is not None)
    return html.unescape(raw).strip()


def parse_options(markup: str) -> List[EpisodeOption]:
    """
    Extract episode options from HTML.

    The episode number is the first integer in the label. Options whose
    label has no number continue counting from the previous option.
    Options without a value (placeholders like "Select episode") are
    ignored.
    """
    options = []
    last_number = 0

    for attributes, body in _OPTION_PATTERN.findall(markup or ""):
        url = _option_value(attributes)
        if not url:
            continue

        label = html.unescape(_TAG_PATTERN.sub("", body)).strip()
        number_match = _NUMBER_PATTERN.search(label)
        if number_match:
            number = int(number_match.group())
        else:
            number = last_number + 1
        last_number = number

        options.append(EpisodeOption(episode_number=number, url=url, label=label))

    return options


class EpisodeImporter:
    """Create or update episodes from parsed options"""

    def __init__(self, catalog: Optional[CatalogService] = None):
        self.catalog = catalog or get_catalog_service()

    def import_episodes(
        self,
        anime_id: int,
        markup: str,
        server_index: int = 1,
        overwrite: bool = False,
    ) -> ImportReport:
        """
        Set server<server_index> of each listed episode.

        Episodes that do not exist are created. Existing slots are left
        alone unless overwrite is set. Repeated episode numbers after the
        first are skipped.

        Raises:
            AnimeNotFound: If the anime does not exist
        """
        self.catalog.get_anime(anime_id)
        report = ImportReport()
        seen = set()

        for option in parse_options(markup):
            if option.episode_number in seen:
                report.skipped.append(option.episode_number)
                continue
            seen.add(option.episode_number)

            created = self.catalog.set_episode_source(
                anime_id,
                option.episode_number,
                option.url,
                server_index=server_index,
                title=None if option.label.isdigit() else option.label,
                overwrite=overwrite,
            )
            if created is None:
                report.skipped.append(option.episode_number)
            elif created:
                report.created.append(option.episode_number)
            else:
                report.updated.append(option.episode_number)

        logger.info(
            f"Imported episodes for anime {anime_id} on server{server_index}: "
            f"{len(report.created)} created, {len(report.updated)} updated, {len(report.skipped)} skipped"
        )
        return report


# Singleton lazy initialization
_importer = None

def get_episode_importer() -> EpisodeImporter:
    global _importer
    if _importer is None:
        _importer = EpisodeImporter()
    return _importer
