import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from animestream.core.config import settings

logger = logging.getLogger(__name__)

ANIMES = "animes"
TRENDING = "trending"
SCHEDULE = "schedule"


def episodes_collection(anime_id: int) -> str:
    """Collection holding the episode list of one anime"""
    return f"episodes/{anime_id}"


class DocumentStoreError(Exception):
    """Raised when a collection cannot be safely read for writing or written to disk"""
    pass


class DocumentStore:
    """
    Whole-file JSON persistence for catalog collections.

    Each collection is one JSON file under the data directory
    (``animes`` -> ``animes.json``, ``episodes/3`` -> ``episodes/3.json``).
    Every operation reads or writes the whole file. Writers of the same
    collection are serialized with a per-collection lock, and saves replace
    the file atomically.
    """

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = Path(data_dir) if data_dir is not None else settings.get_data_path()
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _path(self, collection: str) -> Path:
        return self.data_dir / f"{collection}.json"

    def _lock(self, collection: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(collection)
            if lock is None:
                lock = self._locks[collection] = threading.RLock()
            return lock

    def exists(self, collection: str) -> bool:
        return self._path(collection).exists()

    def _read(self, collection: str, default: Any) -> Any:
        """
        Read a collection for writing.

        Only a missing file falls back to default; an unreadable or corrupt
        file raises so the caller never overwrites it with a fresh document.
        """
        path = self._path(collection)
        if default is None:
            default = []
        if not path.exists():
            return default
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read collection {collection}: {e}")
            raise DocumentStoreError(f"Collection {collection} is unreadable") from e

    def load(self, collection: str, default: Any = None) -> Any:
        """Load a collection from its JSON file, returning default if missing or unreadable"""
        try:
            return self._read(collection, default)
        except DocumentStoreError:
            return [] if default is None else default

    def save(self, collection: str, data: Any) -> None:
        """Save a collection, replacing the previous file atomically"""
        path = self._path(collection)
        with self._lock(collection):
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
                try:
                    with os.fdopen(fd, 'w', encoding='utf-8') as f:
                        json.dump(data, f, indent=2, ensure_ascii=False)
                    os.replace(tmp_name, path)
                except BaseException:
                    if os.path.exists(tmp_name):
                        os.unlink(tmp_name)
                    raise
            except OSError as e:
                logger.error(f"Failed to save collection {collection}: {e}")
                raise DocumentStoreError(f"Failed to save {collection}") from e

    def delete(self, collection: str) -> bool:
        """Remove a collection file. Returns False if it did not exist."""
        path = self._path(collection)
        with self._lock(collection):
            if not path.exists():
                return False
            path.unlink()
            logger.info(f"Deleted collection {collection}")
            return True

    @contextmanager
    def transaction(self, collection: str, default: Any = None) -> Iterator[Any]:
        """
        Read-modify-write a collection under its lock.

        The loaded document is yielded; it is saved when the block exits
        without an exception.

        Raises:
            DocumentStoreError: The existing file cannot be read or parsed
        """
        with self._lock(collection):
            data = self._read(collection, default)
            yield data
            self.save(collection, data)

    def find(self, collection: str, predicate: Callable[[Dict], bool]) -> Optional[Dict]:
        """Return the first record in a list collection matching predicate"""
        return next((item for item in self.load(collection) if predicate(item)), None)

    def filter(self, collection: str, predicate: Callable[[Dict], bool]) -> List[Dict]:
        return [item for item in self.load(collection) if predicate(item)]


# Singleton lazy initialization
_document_store = None

def get_document_store() -> DocumentStore:
    global _document_store
    if _document_store is None:
        _document_store = DocumentStore()
    return _document_store
