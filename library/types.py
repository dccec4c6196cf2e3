"""Value types describing media files and their extracted metadata."""

from dataclasses import asdict, dataclass, field
from datetime import datetime

from django.db import models


class MediaType(models.TextChoices):
    PHOTO = "photo", "Photo"
    VIDEO = "video", "Video"
    OTHER = "other", "Other"


class DateSource(models.TextChoices):
    """Provenance of a capture date."""

    EXIF = "exif", "EXIF"
    FILENAME = "filename", "Filename"
    FILE_TIME = "file_time", "File time"
    USER_INPUT = "user_input", "User input"
    UNKNOWN = "unknown", "Unknown"


@dataclass
class CameraInfo:
    make: str = ""
    model: str = ""
    software: str = ""
    lens_model: str = ""
    focal_length: str = ""
    aperture: str = ""
    shutter_speed: str = ""
    iso: str = ""
    flash: str = ""

    def is_empty(self):
        return not any(asdict(self).values())

    def display_name(self):
        """``"Make Model"``, or whichever half is known."""
        return " ".join(part for part in (self.make, self.model) if part)


@dataclass
class LocationInfo:
    latitude: float
    longitude: float
    altitude: float | None = None

    def display(self):
        return f"{self.latitude:f},{self.longitude:f}"


@dataclass
class MediaInfo:
    """Metadata extracted from one media file.

    ``date_taken`` is a naive datetime in the camera's wall-clock time.
    ``relative_path`` and ``is_duplicate`` are filled in by the organizer.
    """

    filename: str
    file_size: int = 0
    mime_type: str = ""
    media_type: str = MediaType.OTHER
    date_taken: datetime | None = None
    date_source: str = DateSource.UNKNOWN
    width: int | None = None
    height: int | None = None
    duration: float | None = None
    camera: CameraInfo | None = None
    location: LocationInfo | None = None
    extra_metadata: dict = field(default_factory=dict)
    relative_path: str = ""
    is_duplicate: bool = False

    def to_dict(self):
        data = asdict(self)
        data["media_type"] = str(self.media_type)
        data["date_source"] = str(self.date_source)
        return data


@dataclass
class MediaFileInfo:
    """Descriptor of one organized file, as returned by the scanner."""

    id: str
    filename: str
    relative_path: str
    size: int
    mod_time: datetime
    media_type: str
    url: str
    date_taken: datetime | None = None
    camera: str = ""
    location: str = ""
    width: int | None = None
    height: int | None = None
    duration: float | None = None

    @property
    def effective_date(self):
        """Capture date when known, else modification time."""
        return self.date_taken or self.mod_time

    def to_dict(self):
        return asdict(self)
