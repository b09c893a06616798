"""Pytest configuration for Anime Stream tests"""

import sys
from pathlib import Path
import pytest

# Add backend to path for imports
backend_path = Path(__file__).parent.parent
sys.path.insert(0, str(backend_path))


@pytest.fixture
def content_root(tmp_path):
    """Directory local video sources are resolved against"""
    root = tmp_path / "content"
    root.mkdir()
    return root


@pytest.fixture
def store(tmp_path):
    from animestream.services.document_store import DocumentStore
    return DocumentStore(data_dir=str(tmp_path / "data"))


@pytest.fixture
def catalog(store, content_root):
    from animestream.services.catalog_service import CatalogService
    return CatalogService(
        store=store,
        upload_dir=content_root / "uploads",
        content_root=content_root,
        max_upload_size=1024 * 1024,
    )


@pytest.fixture
def sample_video(content_root):
    """A 1000-byte file at videos/sample.mp4 whose byte i is i % 256"""
    video_dir = content_root / "videos"
    video_dir.mkdir()
    path = video_dir / "sample.mp4"
    path.write_bytes(bytes(i % 256 for i in range(1000)))
    return path


@pytest.fixture
def client(catalog, monkeypatch):
    """FastAPI test client whose services all use the temporary catalog"""
    import animestream.services.document_store as store_mod
    import animestream.services.catalog_service as catalog_mod
    import animestream.services.trending_service as trending_mod
    import animestream.services.schedule_service as schedule_mod
    import animestream.services.episode_importer as importer_mod
    from animestream.core.config import settings
    from animestream.main import app
    from fastapi.testclient import TestClient

    monkeypatch.setattr(store_mod, "_document_store", catalog.store)
    monkeypatch.setattr(catalog_mod, "_catalog_service", catalog)
    monkeypatch.setattr(trending_mod, "_trending_service", trending_mod.TrendingService(catalog=catalog, bonus=1000))
    monkeypatch.setattr(schedule_mod, "_schedule_service", schedule_mod.ScheduleService(catalog=catalog))
    monkeypatch.setattr(importer_mod, "_importer", importer_mod.EpisodeImporter(catalog=catalog))
    # Small chunks so range responses span several reads
    monkeypatch.setattr(settings, "stream_chunk_size", 64)

    return TestClient(app)


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset singleton instances between tests"""
    yield

    for module_name, attr in [
        ("animestream.services.document_store", "_document_store"),
        ("animestream.services.catalog_service", "_catalog_service"),
        ("animestream.services.trending_service", "_trending_service"),
        ("animestream.services.schedule_service", "_schedule_service"),
        ("animestream.services.episode_importer", "_importer"),
    ]:
        module = sys.modules.get(module_name)
        if module is not None:
            setattr(module, attr, None)
