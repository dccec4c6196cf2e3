"""Path helpers for the dated media tree: naming, placement and moves."""

import contextlib
import logging
import os
import shutil
import time
import unicodedata
from datetime import datetime, timedelta
from pathlib import Path

from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)

UNSAFE_FILENAME_CHARS = '/\\:*?"<>|'
PLACEHOLDER_FILENAME = "untitled"
# In UTF-8 bytes; leaves room for a "(NNN)" suffix within 255-byte name limits.
MAX_FILENAME_LENGTH = 200
MAX_CONFLICT_ATTEMPTS = 1000
MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

_UNSAFE_TRANSLATION = str.maketrans({ch: "_" for ch in UNSAFE_FILENAME_CHARS})


def split_extension(filename):
    """Split ``name.ext`` into ``("name", ".ext")``; dotfiles keep their name."""
    stem, ext = os.path.splitext(filename)
    return stem, ext


def _utf8_length(text):
    return len(text.encode("utf-8"))


def truncate_utf8(text, max_bytes):
    """Cut ``text`` to at most ``max_bytes`` UTF-8 bytes on a character boundary."""
    return text.encode("utf-8")[:max_bytes].decode("utf-8", errors="ignore")


def sanitize_filename(filename):
    """Make a user-supplied file name safe to store on disk.

    Replaces path-unsafe characters with ``_``, drops control characters,
    trims surrounding whitespace and dots, and truncates names longer than
    ``MAX_FILENAME_LENGTH`` UTF-8 bytes while keeping the extension.

    Args:
        filename: The original file name.

    Returns:
        A non-empty, filesystem-safe file name.
    """
    if not filename:
        return PLACEHOLDER_FILENAME

    result = filename.translate(_UNSAFE_TRANSLATION)
    result = "".join(ch for ch in result if unicodedata.category(ch) != "Cc")
    result = result.strip(" .")

    if not result:
        return PLACEHOLDER_FILENAME

    if _utf8_length(result) > MAX_FILENAME_LENGTH:
        stem, ext = split_extension(result)
        if _utf8_length(ext) >= MAX_FILENAME_LENGTH:
            ext = ""
        result = truncate_utf8(stem, MAX_FILENAME_LENGTH - _utf8_length(ext)) + ext

    return result


def naive_local(value):
    """Drop tzinfo from an aware datetime after converting to local time."""
    if value is not None and timezone.is_aware(value):
        return timezone.make_naive(value)
    return value


def validate_capture_date(date_taken, now=None):
    """Clamp a capture date into the plausible range.

    Dates before ``MEDIA_MIN_CAPTURE_DATE`` (1990-01-01) or more than one
    year after ``now`` are replaced by ``now``, as is a missing date.

    Args:
        date_taken: A datetime or None.
        now: Reference time; defaults to the current local time.

    Returns:
        A naive datetime.
    """
    now = now or datetime.now()
    if date_taken is None:
        return now

    date_taken = naive_local(date_taken)
    min_date = settings.MEDIA_MIN_CAPTURE_DATE
    max_date = now + timedelta(days=365)
    if date_taken < min_date or date_taken > max_date:
        logger.warning(
            "Date outside reasonable range, using current time: "
            "date=%s min=%s max=%s",
            date_taken,
            min_date,
            max_date,
        )
        return now
    return date_taken


def target_directory(media_root, date_taken):
    """Return ``media_root/<YYYY>/<MonthName>`` for an already validated date."""
    return Path(media_root) / f"{date_taken.year:04d}" / MONTH_NAMES[date_taken.month - 1]


def next_available_path(path):
    """Resolve a name conflict by appending ``(1)``, ``(2)``, … before the extension.

    After ``MAX_CONFLICT_ATTEMPTS`` candidates a unix-timestamp suffix is
    used instead.

    Args:
        path: Desired destination path.

    Returns:
        A Path that does not exist yet.
    """
    path = Path(path)
    if not path.exists():
        return path

    stem, ext = split_extension(path.name)
    for counter in range(1, MAX_CONFLICT_ATTEMPTS):
        candidate = path.with_name(f"{stem}({counter}){ext}")
        if not candidate.exists():
            return candidate

    candidate = path.with_name(f"{stem}_{int(time.time())}{ext}")
    logger.warning("Name conflicts exhausted, using timestamp suffix: %s", candidate)
    return candidate


def move_file(src, dst):
    """Move ``src`` to ``dst``, falling back to copy+fsync+delete.

    ``os.rename`` is atomic within one filesystem. Across filesystems the
    file is copied (keeping its modification time), flushed to disk, and
    only then is the source removed. A partial destination is deleted if
    the copy fails.

    Raises:
        OSError: If neither strategy succeeds.
    """
    try:
        os.rename(src, dst)
        return
    except OSError as exc:
        logger.debug("Rename failed, copying instead: src=%s dst=%s error=%s", src, dst, exc)

    copy_file(src, dst)
    os.remove(src)


def copy_file(src, dst):
    """Copy ``src`` to ``dst`` durably, removing a partial copy on failure."""
    src_stat = os.stat(src)
    try:
        with open(src, "rb") as in_fh, open(dst, "wb") as out_fh:
            shutil.copyfileobj(in_fh, out_fh)
            out_fh.flush()
            os.fsync(out_fh.fileno())
        os.utime(dst, ns=(src_stat.st_atime_ns, src_stat.st_mtime_ns))
    except OSError:
        with contextlib.suppress(FileNotFoundError):
            os.remove(dst)
        raise


def relative_to_root(path, media_root):
    """POSIX-style path of ``path`` relative to the media root."""
    return Path(path).relative_to(media_root).as_posix()
