"""Metadata extraction for uploaded and organized media files.

The capture date is resolved by an ordered chain of date strategies; the
first one that yields a date wins. The organizer only consumes the resolved
date and its source, never the individual strategies.
"""

import logging
import mimetypes
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import exifread
from PIL import Image, UnidentifiedImageError

from library.exceptions import MetadataExtractionError
from library.types import CameraInfo, DateSource, LocationInfo, MediaInfo, MediaType

logger = logging.getLogger(__name__)

EXIF_DATE_TAGS = (
    "EXIF DateTimeOriginal",
    "EXIF DateTimeDigitized",
    "Image DateTime",
)
EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"

# (year, month, day[, hour, minute, second]) capture groups
FILENAME_DATE_PATTERNS = (
    r"IMG_(\d{4})(\d{2})(\d{2})_(\d{2})(\d{2})(\d{2})",
    r"VID_(\d{4})(\d{2})(\d{2})_(\d{2})(\d{2})(\d{2})",
    r"(\d{4})(\d{2})(\d{2})_(\d{2})(\d{2})(\d{2})",
    r"(\d{4})-(\d{2})-(\d{2})_(\d{2})-(\d{2})-(\d{2})",
    r"Screenshot_(\d{4})-(\d{2})-(\d{2})-(\d{2})-(\d{2})-(\d{2})",
    r"WhatsApp.+?(\d{4})-(\d{2})-(\d{2}).+?(\d{2})\.(\d{2})\.(\d{2})",
    r"(\d{4})-(\d{2})-(\d{2})",
    r"(\d{4})(\d{2})(\d{2})",
)

CAMERA_TAGS = {
    "make": "Image Make",
    "model": "Image Model",
    "software": "Image Software",
    "lens_model": "EXIF LensModel",
    "focal_length": "EXIF FocalLength",
    "aperture": "EXIF FNumber",
    "shutter_speed": "EXIF ExposureTime",
    "iso": "EXIF ISOSpeedRatings",
    "flash": "EXIF Flash",
}


@dataclass
class ExtractionContext:
    """Everything a date strategy may look at for one file."""

    path: Path
    filename: str
    stat: os.stat_result
    media_type: str
    exif_tags: dict = field(default_factory=dict)


def parse_exif_datetime(value):
    """Parse an EXIF ``YYYY:MM:DD HH:MM:SS`` string; None when unusable."""
    try:
        return datetime.strptime(str(value).strip(), EXIF_DATE_FORMAT)
    except ValueError:
        return None


class ExifDateStrategy:
    """Capture date from the EXIF date tags of a photo."""

    source = DateSource.EXIF

    def __call__(self, context):
        for tag in EXIF_DATE_TAGS:
            if tag in context.exif_tags:
                date = parse_exif_datetime(context.exif_tags[tag])
                if date:
                    return date, self.source
        return None


class FilenameDateStrategy:
    """Capture date encoded in common camera/phone/messenger file names."""

    source = DateSource.FILENAME

    def __init__(self, patterns=FILENAME_DATE_PATTERNS):
        self.patterns = [re.compile(pattern) for pattern in patterns]

    def parse(self, filename):
        """Return the first valid date found in ``filename``, or None."""
        for pattern in self.patterns:
            match = pattern.search(filename)
            if not match:
                continue
            parts = [int(group) for group in match.groups()]
            try:
                return datetime(*parts)
            except ValueError:
                # e.g. 8 digits that are not a calendar date
                continue
        return None

    def __call__(self, context):
        date = self.parse(context.filename)
        if date:
            return date, self.source
        return None


class FileTimeDateStrategy:
    """Fallback: the file's modification time."""

    source = DateSource.FILE_TIME

    def __call__(self, context):
        return datetime.fromtimestamp(context.stat.st_mtime), self.source


def default_date_strategies():
    return [ExifDateStrategy(), FilenameDateStrategy(), FileTimeDateStrategy()]


def _ratio_to_float(value):
    num = getattr(value, "num", None)
    if num is None:
        return float(value)
    return float(num) / float(value.den) if value.den else 0.0


def _gps_coordinate(tags, key, ref_key):
    tag = tags.get(key)
    if tag is None or len(tag.values) < 3:
        return None
    degrees, minutes, seconds = (_ratio_to_float(v) for v in tag.values[:3])
    coordinate = degrees + minutes / 60 + seconds / 3600
    ref = str(tags.get(ref_key, "")).strip().upper()
    if ref in ("S", "W"):
        coordinate = -coordinate
    return coordinate


def location_from_exif(tags):
    """Build a LocationInfo from EXIF GPS tags, or None.

    Malformed GPS values are logged and treated as no location.
    """
    try:
        latitude = _gps_coordinate(tags, "GPS GPSLatitude", "GPS GPSLatitudeRef")
        longitude = _gps_coordinate(tags, "GPS GPSLongitude", "GPS GPSLongitudeRef")
        if latitude is None or longitude is None:
            return None

        altitude = None
        altitude_tag = tags.get("GPS GPSAltitude")
        if altitude_tag is not None and altitude_tag.values:
            altitude = _ratio_to_float(altitude_tag.values[0])
            ref_tag = tags.get("GPS GPSAltitudeRef")
            if ref_tag is not None and ref_tag.values and ref_tag.values[0] == 1:
                altitude = -altitude
    except (ValueError, TypeError, ZeroDivisionError) as exc:
        logger.debug("Ignoring malformed GPS tags: %s", exc)
        return None
    return LocationInfo(latitude=latitude, longitude=longitude, altitude=altitude)


def camera_from_exif(tags):
    """Build a CameraInfo from EXIF tags, or None when no field is present."""
    camera = CameraInfo(
        **{
            attr: str(tags[tag]).strip()
            for attr, tag in CAMERA_TAGS.items()
            if tag in tags
        }
    )
    return None if camera.is_empty() else camera


def media_type_for(mime_type):
    if mime_type.startswith("image/"):
        return MediaType.PHOTO
    if mime_type.startswith("video/"):
        return MediaType.VIDEO
    return MediaType.OTHER


class MetadataExtractor:
    """Extracts capture date, camera, location and size info from a file."""

    def __init__(self, date_strategies=None):
        self.date_strategies = date_strategies or default_date_strategies()

    def extract_metadata(self, path, filename=None):
        """Extract metadata from a file.

        Args:
            path: File on disk.
            filename: User-facing name used for MIME detection and the
                filename date strategy. Defaults to the basename of ``path``
                (uploads sit in temp files named by session id).

        Returns:
            A MediaInfo.

        Raises:
            MetadataExtractionError: If the file cannot be stat'ed.
        """
        path = Path(path)
        filename = filename or path.name
        try:
            stat = path.stat()
        except OSError as exc:
            raise MetadataExtractionError(
                f"Failed to get file info for {path}: {exc}"
            ) from exc

        mime_type = mimetypes.guess_type(filename)[0] or ""
        info = MediaInfo(
            filename=filename,
            file_size=stat.st_size,
            mime_type=mime_type,
            media_type=media_type_for(mime_type),
        )

        exif_tags = {}
        if info.media_type == MediaType.PHOTO:
            exif_tags = self.read_exif(path)

        context = ExtractionContext(
            path=path,
            filename=filename,
            stat=stat,
            media_type=info.media_type,
            exif_tags=exif_tags,
        )
        for strategy in self.date_strategies:
            result = strategy(context)
            if result:
                info.date_taken, info.date_source = result
                break

        if info.media_type == MediaType.PHOTO:
            self._extract_photo_metadata(path, exif_tags, info)

        logger.info(
            "Metadata extracted: file=%s media_type=%s date_source=%s date_taken=%s",
            info.filename,
            info.media_type,
            info.date_source,
            info.date_taken,
        )
        return info

    def read_exif(self, path):
        """Return EXIF tags of an image, or {} when none can be read."""
        try:
            with open(path, "rb") as fh:
                return exifread.process_file(fh, details=False)
        except Exception as exc:
            logger.debug("Failed to read EXIF data: file=%s error=%s", path, exc)
            return {}

    def _extract_photo_metadata(self, path, exif_tags, info):
        info.camera = camera_from_exif(exif_tags)
        info.location = location_from_exif(exif_tags)
        try:
            with Image.open(path) as image:
                info.width, info.height = image.size
        except (UnidentifiedImageError, OSError) as exc:
            logger.debug("Failed to read image size: file=%s error=%s", path, exc)

    def extract_date_from_filename(self, filename):
        """Run only the filename strategy; returns a datetime or None."""
        for strategy in self.date_strategies:
            if isinstance(strategy, FilenameDateStrategy):
                return strategy.parse(filename)
        return None

    @staticmethod
    def needs_user_input(info):
        """True when no embedded or filename date was found."""
        return info.date_source in (DateSource.FILE_TIME, DateSource.UNKNOWN)
