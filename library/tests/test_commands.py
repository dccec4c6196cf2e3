"""Tests for the organize_media and scan_media management commands."""

import json
from datetime import datetime
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError


def run(*args):
    out = StringIO()
    call_command(*args, stdout=out)
    return out.getvalue()


class TestOrganizeMedia:
    """Tests for the organize_media command."""

    def test_moves_files(self, media_root, plain_file):
        source = plain_file("VID_20210704_101010.mp4", content=b"video")
        output = run("organize_media", str(source))
        assert "Organized: " in output
        assert (media_root / "2021" / "July" / "VID_20210704_101010.mp4").exists()
        assert not source.exists()

    def test_keep_source(self, media_root, plain_file):
        source = plain_file("clip.mp4", content=b"video", mtime=datetime(2023, 12, 25))
        run("organize_media", str(source), "--keep-source")
        assert source.exists()
        organized = media_root / "2023" / "December" / "clip.mp4"
        assert organized.read_bytes() == b"video"
        assert list((media_root / "temp").iterdir()) == []

    def test_dry_run_json(self, media_root, plain_file):
        source = plain_file("VID_20210704_101010.mp4", content=b"video")
        payload = json.loads(run("organize_media", str(source), "--dry-run", "--json"))
        assert payload["dry_run"] is True
        assert payload["results"][0]["target"] == "2021/July/VID_20210704_101010.mp4"
        assert payload["results"][0]["date_source"] == "filename"
        assert source.exists()
        assert not (media_root / "2021").exists()

    def test_duplicate_reported(self, media_root, plain_file):
        first = plain_file("one.mp4", content=b"same")
        second = plain_file("two.mp4", content=b"same")
        output = run("organize_media", str(first), str(second))
        assert "Duplicate: " in output

    def test_all_missing_fails(self, media_root, tmp_path):
        with pytest.raises(CommandError):
            run("organize_media", str(tmp_path / "missing.jpg"))


class TestScanMedia:
    """Tests for the scan_media command."""

    def test_lists_files(self, media_root, plain_file):
        run("organize_media", str(plain_file("clip.mp4", content=b"video")))
        output = run("scan_media")
        assert "2023/December/clip.mp4" in output
        assert "Listed 1 file(s)" in output

    def test_json_scoped(self, media_root, plain_file):
        run("organize_media", str(plain_file("clip.mp4", content=b"video")))
        run(
            "organize_media",
            str(plain_file("VID_20210704_101010.mp4", content=b"other")),
        )
        files = json.loads(run("scan_media", "--year", "2021", "--json"))
        assert [f["filename"] for f in files] == ["VID_20210704_101010.mp4"]


class TestMediaRootOption:
    """Tests for --media-root, shared by the library commands."""

    def test_organize_into_other_root(self, media_root, plain_file, tmp_path):
        other = tmp_path / "elsewhere"
        source = plain_file("clip.mp4", content=b"video", mtime=datetime(2023, 12, 25))
        run("organize_media", str(source), "--keep-source", "--media-root", str(other))

        assert (other / "2023" / "December" / "clip.mp4").read_bytes() == b"video"
        assert list((other / "temp").iterdir()) == []
        assert not (media_root / "2023").exists()

    def test_scan_other_root(self, media_root, plain_file, tmp_path):
        other = tmp_path / "elsewhere"
        source = plain_file("clip.mp4", content=b"video")
        run("organize_media", str(source), "--media-root", str(other))

        assert "Listed 0 file(s)" in run("scan_media")
        files = json.loads(run("scan_media", "--json", "--media-root", str(other)))
        assert [f["relative_path"] for f in files] == ["2023/December/clip.mp4"]

    def test_json_report_is_timed(self, media_root, plain_file):
        source = plain_file("clip.mp4", content=b"video")
        payload = json.loads(run("organize_media", str(source), "--json"))
        assert payload["errors"] == 0
        assert payload["elapsed"] >= 0
        assert payload["results"][0]["target"] == "2023/December/clip.mp4"
