"""Integration tests for the media library API endpoints."""

import os
from datetime import datetime

import pytest


@pytest.fixture
def library_tree(media_root, jpeg_bytes):
    photo = media_root / "2024" / "March" / "IMG_20240315_101500.jpg"
    photo.parent.mkdir(parents=True)
    photo.write_bytes(jpeg_bytes(make="Canon", model="EOS R6"))

    video = media_root / "2023" / "December" / "clip.mp4"
    video.parent.mkdir(parents=True)
    video.write_bytes(b"video")
    timestamp = datetime(2023, 12, 25).timestamp()
    os.utime(video, (timestamp, timestamp))
    return media_root


class TestBrowse:
    """Tests for GET /api/media/browse."""

    def test_structure_without_year(self, client, library_tree):
        response = client.get("/api/media/browse")
        assert response.status_code == 200
        assert response.json()["data"]["structure"] == {
            "2023": {"December": 1},
            "2024": {"March": 1},
        }

    def test_files_for_year(self, client, library_tree):
        data = client.get("/api/media/browse?year=2024").json()["data"]
        assert data["count"] == 1
        assert data["files"][0]["relative_path"] == "2024/March/IMG_20240315_101500.jpg"
        assert data["files"][0]["url"] == "/media/2024/March/IMG_20240315_101500.jpg"

    def test_invalid_pagination_falls_back(self, client, library_tree):
        data = client.get("/api/media/browse?year=2024&limit=abc&offset=-3").json()["data"]
        assert data["limit"] == 50
        assert data["offset"] == 0

    def test_offset_past_end(self, client, library_tree):
        data = client.get("/api/media/browse?year=2024&offset=10").json()["data"]
        assert data["files"] == []


class TestSearch:
    """Tests for GET /api/media/files."""

    def test_all_files_newest_first(self, client, library_tree):
        data = client.get("/api/media/files").json()["data"]
        assert data["total"] == 2
        assert [f["filename"] for f in data["files"]] == [
            "IMG_20240315_101500.jpg",
            "clip.mp4",
        ]

    def test_query_and_type(self, client, library_tree):
        data = client.get("/api/media/files?q=canon&type=image").json()["data"]
        assert data["total"] == 1
        data = client.get("/api/media/files?q=canon&type=video").json()["data"]
        assert data["total"] == 0

    def test_limit(self, client, library_tree):
        data = client.get("/api/media/files?limit=1").json()["data"]
        assert len(data["files"]) == 1
        assert data["total"] == 2


class TestMetadata:
    """Tests for POST /api/media/metadata."""

    def post(self, client, file_path):
        return client.post(
            "/api/media/metadata",
            data={"file_path": file_path},
            content_type="application/json",
        )

    def test_extracts_metadata(self, client, library_tree):
        response = self.post(client, "2024/March/IMG_20240315_101500.jpg")
        data = response.json()["data"]
        assert response.status_code == 200
        assert data["camera"]["make"] == "Canon"
        assert data["date_source"] == "filename"
        assert data["width"] == 64

    def test_path_escape_rejected(self, client, library_tree):
        response = self.post(client, "../../etc/passwd")
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_path"

    def test_missing_file(self, client, library_tree):
        assert self.post(client, "2024/March/none.jpg").status_code == 400

    def test_file_path_required(self, client, library_tree):
        assert self.post(client, "").status_code == 400


class TestUserDate:
    """Tests for POST /api/media/user-date."""

    def post(self, client, **payload):
        return client.post("/api/media/user-date", data=payload, content_type="application/json")

    def test_date_only(self, client, media_root):
        session = client.post(
            "/api/upload/start",
            data={"filename": "clip.mp4", "file_size": 10},
            content_type="application/json",
        ).json()["data"]
        response = self.post(client, session_id=session["id"], date_taken="2019-08-01")
        assert response.status_code == 204

    def test_invalid_date(self, client, media_root):
        response = self.post(client, session_id="upload_x", date_taken="yesterday")
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_date"

    def test_unknown_session(self, client, media_root):
        response = self.post(client, session_id="upload_x", date_taken="2019-08-01T20:00:00")
        assert response.status_code == 404


class TestServeMedia:
    """Tests for GET /media/<path>."""

    def test_serves_organized_file(self, client, library_tree):
        response = client.get("/media/2023/December/clip.mp4")
        assert response.status_code == 200
        assert b"".join(response.streaming_content) == b"video"

    def test_temp_dir_hidden(self, client, media_root):
        (media_root / "temp").mkdir()
        (media_root / "temp" / "upload_1.tmp").write_bytes(b"x")
        assert client.get("/media/temp/upload_1.tmp").status_code == 404

    def test_temp_dir_hidden_behind_dot_segments(self, client, media_root):
        (media_root / "2024").mkdir()
        (media_root / "temp").mkdir()
        (media_root / "temp" / "upload_1.tmp").write_bytes(b"SECRET")
        for url in (
            "/media/2024/../temp/upload_1.tmp",
            "/media/./temp/upload_1.tmp",
            "/media/2024//../temp/upload_1.tmp",
        ):
            assert client.get(url).status_code == 404, url

    def test_dot_segments_normalized_for_organized_files(self, client, library_tree):
        response = client.get("/media/2023/./December/../December/clip.mp4")
        assert response.status_code == 200
