"""Integration tests for the episode playback endpoint"""
from concurrent.futures import ThreadPoolExecutor

import pytest

STREAM_URL = "/api/animes/1/episodes/1/server/{server}"


@pytest.fixture
def stream_client(client, catalog, sample_video):
    """Anime 1, episode 1 with a local source on server1 and a remote one on server2"""
    catalog.create_anime({"title": "Sonny Boy"})
    catalog.add_episode(1, {
        "episodeNumber": 1,
        "sources": {
            "server1": "videos/sample.mp4",
            "server2": "https://example.com/video.mp4",
            "server3": "videos/deleted.mp4",
        },
    })
    return client


class TestFullContent:

    def test_no_range_returns_whole_file(self, stream_client, sample_video):
        response = stream_client.get(STREAM_URL.format(server=1))

        assert response.status_code == 200
        assert response.headers["content-length"] == "1000"
        assert response.headers["content-type"] == "video/mp4"
        assert response.content == sample_video.read_bytes()


class TestPartialContent:

    def test_closed_range(self, stream_client, sample_video):
        response = stream_client.get(STREAM_URL.format(server=1), headers={"Range": "bytes=200-499"})

        assert response.status_code == 206
        assert response.headers["content-range"] == "bytes 200-499/1000"
        assert response.headers["content-length"] == "300"
        assert response.headers["accept-ranges"] == "bytes"
        assert response.headers["content-type"] == "video/mp4"
        assert response.content == sample_video.read_bytes()[200:500]

    def test_open_ended_range(self, stream_client, sample_video):
        response = stream_client.get(STREAM_URL.format(server=1), headers={"Range": "bytes=900-"})

        assert response.status_code == 206
        assert response.headers["content-range"] == "bytes 900-999/1000"
        assert response.headers["content-length"] == "100"
        assert response.content == sample_video.read_bytes()[900:]

    def test_range_from_zero(self, stream_client, sample_video):
        response = stream_client.get(STREAM_URL.format(server=1), headers={"Range": "bytes=0-"})

        assert response.status_code == 206
        assert response.headers["content-range"] == "bytes 0-999/1000"
        assert response.content == sample_video.read_bytes()

    @pytest.mark.parametrize("start,end", [(0, 0), (63, 64), (1, 998), (500, 999)])
    def test_byte_exact_windows(self, stream_client, sample_video, start, end):
        response = stream_client.get(STREAM_URL.format(server=1), headers={"Range": f"bytes={start}-{end}"})

        assert int(response.headers["content-length"]) == end - start + 1
        assert response.content == sample_video.read_bytes()[start:end + 1]

    def test_repeated_requests_are_identical(self, stream_client):
        headers = {"Range": "bytes=123-456"}
        first = stream_client.get(STREAM_URL.format(server=1), headers=headers)
        second = stream_client.get(STREAM_URL.format(server=1), headers=headers)

        assert first.content == second.content
        assert first.headers["content-range"] == second.headers["content-range"]

    def test_concurrent_overlapping_ranges(self, stream_client, sample_video):
        data = sample_video.read_bytes()
        windows = [(0, 499), (100, 899), (250, 999), (400, 400), (0, 999), (640, 703)] * 3

        def fetch(window):
            start, end = window
            return stream_client.get(
                STREAM_URL.format(server=1), headers={"Range": f"bytes={start}-{end}"}
            )

        with ThreadPoolExecutor(max_workers=6) as pool:
            responses = list(pool.map(fetch, windows))

        for (start, end), response in zip(windows, responses):
            assert response.status_code == 206
            assert response.headers["content-range"] == f"bytes {start}-{end}/1000"
            assert response.content == data[start:end + 1]

    def test_streaming_does_not_touch_catalog(self, stream_client, catalog):
        before = catalog.store.load("animes")
        stream_client.get(STREAM_URL.format(server=1), headers={"Range": "bytes=0-10"})
        assert catalog.store.load("animes") == before


class TestRangeErrors:

    def test_malformed_range(self, stream_client):
        response = stream_client.get(STREAM_URL.format(server=1), headers={"Range": "bytes=abc-"})
        assert response.status_code == 400

    def test_start_past_end(self, stream_client):
        response = stream_client.get(STREAM_URL.format(server=1), headers={"Range": "bytes=1000-1200"})

        assert response.status_code == 416
        assert response.headers["content-range"] == "bytes */1000"

    def test_start_after_end(self, stream_client):
        response = stream_client.get(STREAM_URL.format(server=1), headers={"Range": "bytes=600-100"})
        assert response.status_code == 416


class TestRedirectsAndMissing:

    def test_remote_source_redirects(self, stream_client):
        response = stream_client.get(STREAM_URL.format(server=2), follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "https://example.com/video.mp4"

    def test_missing_local_file(self, stream_client):
        response = stream_client.get(STREAM_URL.format(server=3))

        assert response.status_code == 404
        assert response.content == b""

    def test_missing_server_slot(self, stream_client):
        response = stream_client.get(STREAM_URL.format(server=4))
        assert response.status_code == 404
        assert response.json()["detail"] == "Video source not found"

    def test_missing_episode(self, stream_client):
        response = stream_client.get("/api/animes/1/episodes/2/server/1")
        assert response.status_code == 404
        assert response.json()["detail"] == "Episode not found"

    def test_missing_anime(self, client):
        response = client.get("/api/animes/8/episodes/1/server/1")
        assert response.status_code == 404
        assert response.json()["detail"] == "Anime not found"
