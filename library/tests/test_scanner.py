"""Unit tests for the media scanner."""

import os
from datetime import datetime

import pytest
from django.core.exceptions import ValidationError

from library.services.scanner import MediaScanner, file_id


def place(root, relative_path, content=b"x", mtime=datetime(2023, 12, 25, 12, 0, 0)):
    path = root / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    timestamp = mtime.timestamp()
    os.utime(path, (timestamp, timestamp))
    return path


@pytest.fixture
def scanner(media_root):
    return MediaScanner(media_root=media_root)


@pytest.fixture
def library_tree(media_root, jpeg_bytes):
    """A small organized tree spanning two years."""
    place(media_root, "2024/March/IMG_20240315_101500.jpg", jpeg_bytes())
    place(media_root, "2024/March/VID_20240301_080000.mp4", b"video-a")
    place(media_root, "2023/December/clip.mp4", b"video-b", mtime=datetime(2023, 12, 25))
    place(
        media_root,
        "2023/July/beach.jpg",
        jpeg_bytes(date_taken=datetime(2023, 7, 4, 9, 0), make="Canon", model="EOS R6"),
    )
    place(media_root, "2023/July/notes.txt", b"not media")
    place(media_root, "temp/upload_1_1.tmp", b"in flight")
    place(media_root, "temp/stray.jpg", jpeg_bytes())
    return media_root


class TestScanFiles:
    """Tests for MediaScanner.scan_files."""

    def test_sorted_newest_first(self, scanner, library_tree):
        names = [f.filename for f in scanner.scan_files()]
        assert names == [
            "IMG_20240315_101500.jpg",
            "VID_20240301_080000.mp4",
            "clip.mp4",
            "beach.jpg",
        ]

    def test_temp_and_non_media_excluded(self, scanner, library_tree):
        paths = {f.relative_path for f in scanner.scan_files()}
        assert not any(p.startswith("temp/") for p in paths)
        assert "2023/July/notes.txt" not in paths

    def test_descriptor_fields(self, scanner, library_tree):
        beach = next(f for f in scanner.scan_files() if f.filename == "beach.jpg")
        assert beach.relative_path == "2023/July/beach.jpg"
        assert beach.url == "/media/2023/July/beach.jpg"
        assert beach.id == file_id("2023/July/beach.jpg")
        assert len(beach.id) == 16
        assert beach.media_type == "image"
        assert beach.date_taken == datetime(2023, 7, 4, 9, 0)
        assert beach.camera == "Canon EOS R6"
        assert (beach.width, beach.height) == (64, 48)

    def test_video_kind(self, scanner, library_tree):
        clip = next(f for f in scanner.scan_files() if f.filename == "clip.mp4")
        assert clip.media_type == "video"
        assert clip.size == len(b"video-b")

    def test_year_scope(self, scanner, library_tree):
        files = scanner.scan_files(year="2023")
        assert {f.filename for f in files} == {"clip.mp4", "beach.jpg"}

    def test_month_scope(self, scanner, library_tree):
        files = scanner.scan_files(year="2024", month="March")
        assert len(files) == 2

    def test_missing_year_is_empty(self, scanner, library_tree):
        assert scanner.scan_files(year="1999") == []

    def test_pagination(self, scanner, library_tree):
        assert [f.filename for f in scanner.scan_files(limit=2, offset=1)] == [
            "VID_20240301_080000.mp4",
            "clip.mp4",
        ]
        assert scanner.scan_files(limit=10, offset=4) == []
        assert scanner.scan_files(limit=10, offset=99) == []

    def test_path_escape_rejected(self, scanner, library_tree):
        with pytest.raises(ValidationError):
            scanner.scan_files(year="..", month="..")

    def test_empty_library(self, scanner):
        assert scanner.scan_files() == []


class TestSearchFiles:
    """Tests for MediaScanner.search_files."""

    def test_query_matches_filename(self, scanner, library_tree):
        files, total = scanner.search_files(query="BEACH")
        assert total == 1
        assert files[0].filename == "beach.jpg"

    def test_query_matches_camera(self, scanner, library_tree):
        files, total = scanner.search_files(query="canon")
        assert total == 1

    def test_type_filter(self, scanner, library_tree):
        _files, total = scanner.search_files(media_type="video")
        assert total == 2
        _files, total = scanner.search_files(media_type="all")
        assert total == 4

    def test_total_counts_before_pagination(self, scanner, library_tree):
        files, total = scanner.search_files(limit=1, offset=0)
        assert total == 4
        assert len(files) == 1


class TestDirectoryStructure:
    """Tests for MediaScanner.directory_structure."""

    def test_counts_per_month(self, scanner, library_tree):
        assert scanner.directory_structure() == {
            "2023": {"July": 2, "December": 1},
            "2024": {"March": 2},
        }

    def test_empty(self, scanner):
        assert scanner.directory_structure() == {}


class TestResolveMediaPath:
    """Tests for MediaScanner.resolve_media_path."""

    def test_valid(self, scanner, library_tree):
        path = scanner.resolve_media_path("2023/July/beach.jpg")
        assert path == (library_tree / "2023" / "July" / "beach.jpg").resolve()

    @pytest.mark.parametrize("relative_path", ["../outside.jpg", "/etc/passwd", "."])
    def test_escape_rejected(self, scanner, library_tree, relative_path):
        with pytest.raises(ValidationError) as exc_info:
            scanner.resolve_media_path(relative_path)
        assert exc_info.value.code == "invalid_path"

    def test_missing_file(self, scanner, library_tree):
        with pytest.raises(ValidationError) as exc_info:
            scanner.resolve_media_path("2023/July/missing.jpg")
        assert exc_info.value.code == "file_not_found"
