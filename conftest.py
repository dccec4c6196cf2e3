"""Shared pytest fixtures for Sortify."""

import io
import os
from datetime import datetime

import pytest
from PIL import Image


def _clear_service_caches():
    from library.services.organizer import get_organizer
    from library.services.scanner import get_scanner
    from uploads.services.sessions import get_session_manager

    get_session_manager.cache_clear()
    get_organizer.cache_clear()
    get_scanner.cache_clear()


@pytest.fixture
def media_root(settings, tmp_path):
    """Point MEDIA_ROOT at a fresh directory and rebuild the service singletons."""
    root = tmp_path / "media"
    root.mkdir()
    settings.MEDIA_ROOT = str(root)
    _clear_service_caches()
    yield root
    _clear_service_caches()


@pytest.fixture
def manager(tmp_path):
    """An UploadSessionManager with small limits and 4-byte chunks."""
    from uploads.services.sessions import UploadSessionManager

    return UploadSessionManager(
        temp_dir=tmp_path / "temp", max_sessions=3, default_chunk_size=4
    )


def make_jpeg_bytes(size=(64, 48), date_taken=None, make="", model="", color="red"):
    """Encode a small JPEG, optionally with EXIF date and camera tags."""
    image = Image.new("RGB", size, color=color)
    exif = Image.Exif()
    if date_taken is not None:
        exif[0x0132] = date_taken.strftime("%Y:%m:%d %H:%M:%S")  # DateTime
    if make:
        exif[0x010F] = make
    if model:
        exif[0x0110] = model
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", exif=exif.tobytes())
    return buffer.getvalue()


def set_mtime(path, when):
    """Set a file's access and modification time to a naive local datetime."""
    timestamp = when.timestamp()
    os.utime(path, (timestamp, timestamp))


@pytest.fixture
def jpeg_file(tmp_path):
    """Factory writing JPEG files under tmp_path/incoming."""
    incoming = tmp_path / "incoming"
    incoming.mkdir(exist_ok=True)

    def _make(name="photo.jpg", mtime=None, **kwargs):
        path = incoming / name
        path.write_bytes(make_jpeg_bytes(**kwargs))
        if mtime is not None:
            set_mtime(path, mtime)
        return path

    return _make


@pytest.fixture
def plain_file(tmp_path):
    """Factory writing arbitrary bytes under tmp_path/incoming."""
    incoming = tmp_path / "incoming"
    incoming.mkdir(exist_ok=True)

    def _make(name, content=b"data", mtime=datetime(2023, 12, 25, 12, 0, 0)):
        path = incoming / name
        path.write_bytes(content)
        if mtime is not None:
            set_mtime(path, mtime)
        return path

    return _make


@pytest.fixture
def jpeg_bytes():
    """The JPEG encoder used by ``jpeg_file``, for in-memory payloads."""
    return make_jpeg_bytes
