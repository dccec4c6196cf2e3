"""Read-only queries over the organized media tree.

The directory tree is the only index: every call walks the filesystem.
"""

import hashlib
import logging
import os
from datetime import datetime
from functools import lru_cache
from pathlib import Path

from django.conf import settings
from django.core.exceptions import ValidationError

from library.exceptions import LibraryError
from library.services.extractor import MetadataExtractor
from library.services.paths import MONTH_NAMES, naive_local, relative_to_root
from library.types import MediaFileInfo

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff"})
VIDEO_EXTENSIONS = frozenset(
    {".mp4", ".mov", ".avi", ".mkv", ".webm", ".m4v", ".3gp", ".wmv", ".flv"}
)
MEDIA_EXTENSIONS = IMAGE_EXTENSIONS | VIDEO_EXTENSIONS


def is_media_file(path):
    return Path(path).suffix.lower() in MEDIA_EXTENSIONS


def media_kind(path):
    """``"image"`` or ``"video"``, by extension."""
    return "image" if Path(path).suffix.lower() in IMAGE_EXTENSIONS else "video"


def file_id(relative_path):
    """Stable id: first 8 bytes of the SHA-256 of the relative path, hex."""
    return hashlib.sha256(relative_path.encode("utf-8")).digest()[:8].hex()


def paginate(items, limit, offset):
    """Return ``items[offset:offset + limit]``; out-of-range offsets give []."""
    if offset >= len(items):
        return []
    return items[offset : offset + limit]


class MediaScanner:
    """Answers browse/search queries by walking ``media_root``."""

    def __init__(self, media_root, extractor=None, temp_dir_name="temp"):
        self.media_root = Path(media_root)
        self.extractor = extractor or MetadataExtractor()
        self.temp_dir_name = temp_dir_name

    def _walk_media_files(self, start):
        for dirpath, dirnames, filenames in os.walk(start):
            if Path(dirpath) == self.media_root:
                dirnames[:] = [d for d in dirnames if d != self.temp_dir_name]
            for name in filenames:
                if is_media_file(name):
                    yield Path(dirpath) / name

    def describe(self, path):
        """Build the MediaFileInfo for one organized file.

        Metadata extraction is best-effort: on failure the descriptor only
        carries filesystem facts.
        """
        stat = path.stat()
        relative_path = relative_to_root(path, self.media_root)
        descriptor = MediaFileInfo(
            id=file_id(relative_path),
            filename=path.name,
            relative_path=relative_path,
            size=stat.st_size,
            mod_time=datetime.fromtimestamp(stat.st_mtime),
            media_type=media_kind(path),
            url=f"/media/{relative_path}",
        )

        try:
            info = self.extractor.extract_metadata(path)
        except LibraryError as exc:
            logger.warning("Failed to extract metadata: file=%s error=%s", path, exc)
            return descriptor

        descriptor.date_taken = naive_local(info.date_taken)
        if info.camera is not None:
            descriptor.camera = info.camera.display_name()
        if info.location is not None:
            descriptor.location = info.location.display()
        descriptor.width = info.width
        descriptor.height = info.height
        descriptor.duration = info.duration
        return descriptor

    def _scan_all(self, year=None, month=None):
        start = self.media_root
        if year:
            start = start / str(year)
            if month:
                start = start / str(month)
        if not start.resolve().is_relative_to(self.media_root.resolve()):
            raise ValidationError("Invalid year or month.", code="invalid_path")
        if not start.is_dir():
            logger.debug("Scan target does not exist: %s", start)
            return []

        files = []
        for path in self._walk_media_files(start):
            try:
                files.append(self.describe(path))
            except OSError as exc:
                logger.warning("Skipping unreadable file: file=%s error=%s", path, exc)

        files.sort(key=lambda f: f.effective_date, reverse=True)
        return files

    def scan_files(self, year=None, month=None, limit=50, offset=0):
        """List organized files, newest first.

        Args:
            year: Optional year directory to scope the scan to.
            month: Optional month directory (needs ``year``).
            limit: Page size.
            offset: Number of results to skip.

        Returns:
            A list of MediaFileInfo sorted by capture date (falling back to
            modification time), descending, then paginated.
        """
        return paginate(self._scan_all(year, month), limit, offset)

    def search_files(self, query="", media_type="", limit=50, offset=0):
        """Filter the whole library by text and media type.

        Returns:
            A (page, total) tuple; ``total`` counts matches before pagination.
        """
        needle = query.strip().lower()
        matches = []
        for descriptor in self._scan_all():
            if needle and not any(
                needle in value.lower()
                for value in (descriptor.filename, descriptor.camera, descriptor.location)
            ):
                continue
            if media_type and media_type != "all" and descriptor.media_type != media_type:
                continue
            matches.append(descriptor)
        return paginate(matches, limit, offset), len(matches)

    def directory_structure(self):
        """Return ``{year: {month_name: file_count}}`` for the library."""
        structure = {}
        if not self.media_root.is_dir():
            return structure

        for year_dir in sorted(self.media_root.iterdir()):
            if not (year_dir.is_dir() and len(year_dir.name) == 4 and year_dir.name.isdigit()):
                continue
            months = {}
            for month_name in MONTH_NAMES:
                month_dir = year_dir / month_name
                if month_dir.is_dir():
                    months[month_name] = sum(
                        len(filenames) for _, _, filenames in os.walk(month_dir)
                    )
            structure[year_dir.name] = months
        return structure

    def resolve_media_path(self, relative_path):
        """Map a client-supplied relative path to a file inside the library.

        Raises:
            ValidationError: If the path escapes the media root or is missing.
        """
        root = self.media_root.resolve()
        candidate = (root / relative_path).resolve()
        if not candidate.is_relative_to(root) or candidate == root:
            raise ValidationError("File path is outside the media library.", code="invalid_path")
        if not candidate.is_file():
            raise ValidationError("File not found.", code="file_not_found")
        return candidate


@lru_cache(maxsize=None)
def get_scanner():
    """Return the process-wide MediaScanner built from settings."""
    return MediaScanner(
        media_root=settings.MEDIA_ROOT,
        temp_dir_name=settings.UPLOAD_TEMP_DIR_NAME,
    )
