"""Integration tests for API routes using TestClient"""
import pytest


@pytest.fixture
def seeded_client(client):
    """Client with two animes and one episode"""
    client.post("/api/animes", json={"title": "Made in Abyss", "genres": ["Adventure", "Fantasy"]})
    client.post("/api/animes", json={"title": "Witch Hat Atelier", "genres": ["Fantasy"]})
    client.post("/api/animes/1/episodes", json={"episodeNumber": 1, "title": "The City of the Great Pit"})
    return client


class TestHealthEndpoints:
    """Test health check endpoints"""

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Anime Stream"
        assert "version" in data

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestAnimeEndpoints:
    """Test anime CRUD endpoints"""

    def test_create_anime(self, client):
        response = client.post("/api/animes", json={"title": "Mob Psycho 100", "studio": "Bones"})

        assert response.status_code == 201
        data = response.json()
        assert data["id"] == 1
        assert data["views"] == 0
        assert data["type"] == "TV"
        assert data["trending"] is False
        assert data["studio"] == "Bones"
        assert "dateAdded" in data

    def test_create_requires_title(self, client):
        response = client.post("/api/animes", json={"synopsis": "untitled"})
        assert response.status_code == 422

    def test_list_and_filter(self, seeded_client):
        assert len(seeded_client.get("/api/animes").json()) == 2
        adventure = seeded_client.get("/api/animes", params={"genre": "adventure"}).json()
        assert [a["title"] for a in adventure] == ["Made in Abyss"]

    def test_get_anime(self, seeded_client):
        response = seeded_client.get("/api/animes/2")
        assert response.status_code == 200
        assert response.json()["title"] == "Witch Hat Atelier"

    def test_get_missing_anime(self, client):
        response = client.get("/api/animes/404")
        assert response.status_code == 404
        assert response.json()["detail"] == "Anime not found: 404"

    def test_search_is_not_shadowed_by_id_route(self, seeded_client):
        response = seeded_client.get("/api/animes/search", params={"q": "abyss"})
        assert response.status_code == 200
        assert [a["id"] for a in response.json()] == [1]

    def test_search_without_query(self, client):
        assert client.get("/api/animes/search").status_code == 400

    def test_update_anime(self, seeded_client):
        response = seeded_client.put("/api/animes/2", json={"title": "Witch Hat Atelier", "status": "finished"})
        assert response.status_code == 200
        assert response.json()["status"] == "finished"
        assert response.json()["id"] == 2

    def test_update_missing(self, client):
        assert client.put("/api/animes/5", json={"title": "x"}).status_code == 404

    def test_delete_anime(self, seeded_client):
        response = seeded_client.delete("/api/animes/1")

        assert response.status_code == 200
        assert response.json()["title"] == "Made in Abyss"
        assert seeded_client.get("/api/animes/1").status_code == 404
        assert seeded_client.get("/api/animes/1/episodes").status_code == 404

    def test_record_view(self, seeded_client):
        seeded_client.post("/api/animes/1/view")
        response = seeded_client.post("/api/animes/1/view")
        assert response.json() == {"id": 1, "views": 2}

    def test_related(self, seeded_client):
        response = seeded_client.get("/api/animes/1/related")
        assert response.status_code == 200
        assert [a["id"] for a in response.json()] == [2]


class TestEpisodeEndpoints:
    """Test episode endpoints"""

    def test_list_episodes(self, seeded_client):
        response = seeded_client.get("/api/animes/1/episodes")
        assert response.status_code == 200
        assert [e["episodeNumber"] for e in response.json()] == [1]

    def test_add_duplicate_episode(self, seeded_client):
        response = seeded_client.post("/api/animes/1/episodes", json={"episodeNumber": 1})
        assert response.status_code == 400

    def test_add_episode_to_missing_anime(self, client):
        assert client.post("/api/animes/3/episodes", json={"episodeNumber": 1}).status_code == 404

    def test_episode_count_synced(self, seeded_client):
        seeded_client.post("/api/animes/1/episodes", json={"episodeNumber": 2})
        assert seeded_client.get("/api/animes/1").json()["episodes"] == 2

    def test_get_update_delete_episode(self, seeded_client):
        assert seeded_client.get("/api/animes/1/episodes/1").json()["title"] == "The City of the Great Pit"

        updated = seeded_client.put("/api/animes/1/episodes/1", json={"sources": {"server1": "videos/ep1.mp4"}})
        assert updated.json()["sources"] == {"server1": "videos/ep1.mp4"}

        assert seeded_client.delete("/api/animes/1/episodes/1").status_code == 200
        assert seeded_client.get("/api/animes/1/episodes/1").status_code == 404

    def test_upload_video(self, seeded_client, content_root):
        response = seeded_client.post(
            "/api/animes/1/episodes/upload",
            data={"episodeNumber": "2", "title": "Resurrection Festival"},
            files={"video": ("ep2.mp4", b"\x00\x01fake-mp4", "video/mp4")},
        )

        assert response.status_code == 201
        assert response.json()["success"] is True
        assert response.json()["path"] == "uploads/1/episode_2.mp4"
        assert (content_root / "uploads" / "1" / "episode_2.mp4").read_bytes() == b"\x00\x01fake-mp4"

        episode = seeded_client.get("/api/animes/1/episodes/2").json()
        assert episode["sources"]["server1"] == "uploads/1/episode_2.mp4"
        assert episode["title"] == "Resurrection Festival"

    def test_upload_rejects_non_video(self, seeded_client):
        response = seeded_client.post(
            "/api/animes/1/episodes/upload",
            data={"episodeNumber": "2"},
            files={"video": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 400

    def test_upload_without_file(self, seeded_client):
        response = seeded_client.post("/api/animes/1/episodes/upload", data={"episodeNumber": "2"})
        assert response.status_code == 400

    def test_upload_rejects_negative_episode_number(self, seeded_client, content_root):
        response = seeded_client.post(
            "/api/animes/1/episodes/upload",
            data={"episodeNumber": "-3"},
            files={"video": ("ep.mp4", b"x", "video/mp4")},
        )
        assert response.status_code == 422
        assert not (content_root / "uploads" / "1" / "episode_-3.mp4").exists()

    def test_upload_to_missing_anime(self, client):
        response = client.post(
            "/api/animes/9/episodes/upload",
            data={"episodeNumber": "1"},
            files={"video": ("ep1.mp4", b"x", "video/mp4")},
        )
        assert response.status_code == 404

    def test_import_episodes(self, seeded_client):
        html = (
            '<option value="https://cdn.example.com/1.mp4">Episode 1</option>'
            '<option value="https://cdn.example.com/2.mp4">Episode 2</option>'
        )
        response = seeded_client.post("/api/animes/1/episodes/import", json={"html": html, "server": 2})

        assert response.status_code == 200
        assert response.json() == {"created": [2], "updated": [1], "skipped": [], "total": 2}
        sources = seeded_client.get("/api/animes/1/episodes/1").json()["sources"]
        assert sources == {"server2": "https://cdn.example.com/1.mp4"}


class TestTrendingEndpoints:

    def test_trending_order(self, seeded_client):
        seeded_client.post("/api/animes/2/view")

        titles = [a["title"] for a in seeded_client.get("/api/trending").json()]

        assert titles == ["Witch Hat Atelier", "Made in Abyss"]

    def test_trending_flag(self, seeded_client):
        seeded_client.post("/api/animes/2/view")
        response = seeded_client.put("/api/animes/1/trending", json={"trending": True})

        assert response.json()["trending"] is True
        assert seeded_client.get("/api/trending").json()[0]["id"] == 1

    def test_trending_config(self, seeded_client):
        response = seeded_client.put("/api/trending/config", json={"pinned": [2], "limit": 1})

        assert response.status_code == 200
        assert seeded_client.get("/api/trending/config").json() == {"pinned": [2], "limit": 1}
        assert [a["id"] for a in seeded_client.get("/api/trending").json()] == [2]

    def test_trending_config_unknown_anime(self, seeded_client):
        response = seeded_client.put("/api/trending/config", json={"pinned": [9]})
        assert response.status_code == 400


class TestScheduleEndpoints:

    def test_schedule_crud(self, seeded_client):
        created = seeded_client.post("/api/schedule", json={"animeId": 1, "day": "sunday", "time": "00:30"})
        assert created.status_code == 201
        entry_id = created.json()["id"]

        schedule = seeded_client.get("/api/schedule").json()
        assert schedule["sunday"][0]["animeTitle"] == "Made in Abyss"

        updated = seeded_client.put(f"/api/schedule/{entry_id}", json={"day": "saturday"})
        assert updated.json()["day"] == "saturday"

        assert seeded_client.delete(f"/api/schedule/{entry_id}").status_code == 200
        assert seeded_client.delete(f"/api/schedule/{entry_id}").status_code == 404

    def test_schedule_invalid_day(self, seeded_client):
        response = seeded_client.post("/api/schedule", json={"animeId": 1, "day": "someday", "time": "10:00"})
        assert response.status_code == 400

    def test_schedule_unknown_anime(self, client):
        response = client.post("/api/schedule", json={"animeId": 1, "day": "monday", "time": "10:00"})
        assert response.status_code == 404
