"""Organizes completed uploads into the ``<Year>/<MonthName>/`` media tree."""

import contextlib
import logging
import os
import threading
from functools import lru_cache
from pathlib import Path

from django.conf import settings

from common.checksums import compute_file_sha256
from library.exceptions import OrganizeError
from library.services.extractor import MetadataExtractor
from library.services.paths import (
    move_file,
    naive_local,
    next_available_path,
    relative_to_root,
    sanitize_filename,
    target_directory,
    validate_capture_date,
)
from library.types import DateSource

logger = logging.getLogger(__name__)


class FileOrganizer:
    """Moves files into their dated directory, deduplicating by content.

    Duplicate detection, conflict resolution and the move for one target
    directory run under a lock keyed by that directory, so two concurrent
    uploads of the same name cannot both claim it.
    """

    def __init__(self, media_root, extractor=None):
        self.media_root = Path(media_root)
        self.extractor = extractor or MetadataExtractor()
        self._directory_locks = {}
        self._registry_lock = threading.Lock()

    def _directory_lock(self, directory):
        key = str(directory)
        with self._registry_lock:
            lock = self._directory_locks.get(key)
            if lock is None:
                lock = self._directory_locks[key] = threading.Lock()
            return lock

    def organize_file(self, temp_path, original_filename, user_date=None):
        """Place an uploaded file at its canonical location.

        Args:
            temp_path: Completed upload on disk. It is moved (or deleted when
                it duplicates an existing file).
            original_filename: User-facing file name.
            user_date: Optional capture date supplied by the user; overrides
                the extracted date.

        Returns:
            A MediaInfo whose ``filename`` and ``relative_path`` reflect the
            final name; ``is_duplicate`` is True when nothing was moved.

        Raises:
            MetadataExtractionError: If metadata extraction fails.
            OrganizeError: If the directory cannot be created or the move fails.
        """
        info = self.extractor.extract_metadata(temp_path, filename=original_filename)
        info.filename = original_filename

        if user_date is not None:
            info.date_taken = naive_local(user_date)
            info.date_source = DateSource.USER_INPUT

        placement_date = validate_capture_date(info.date_taken)
        target_dir = target_directory(self.media_root, placement_date)
        final_name = sanitize_filename(original_filename)

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OrganizeError(
                f"Failed to create target directory {target_dir}: {exc}"
            ) from exc

        with self._directory_lock(target_dir):
            duplicate = self.find_duplicate(temp_path, target_dir)
            if duplicate is not None:
                logger.info(
                    "Duplicate file detected, skipping: file=%s existing=%s",
                    original_filename,
                    duplicate,
                )
                with contextlib.suppress(FileNotFoundError):
                    os.remove(temp_path)
                info.is_duplicate = True
                info.relative_path = relative_to_root(duplicate, self.media_root)
                return info

            try:
                final_path = next_available_path(target_dir / final_name)
                move_file(temp_path, final_path)
            except OSError as exc:
                raise OrganizeError(f"Failed to move file: {exc}") from exc

        info.filename = final_path.name
        info.relative_path = relative_to_root(final_path, self.media_root)
        logger.info(
            "File organized: original=%s final=%s date_taken=%s date_source=%s",
            original_filename,
            info.relative_path,
            info.date_taken,
            info.date_source,
        )
        return info

    def find_duplicate(self, file_path, directory):
        """Return the path of a byte-identical file in ``directory``, or None.

        Only the target month directory is scanned. Hash failures (for the
        candidate files or the incoming file) are logged and treated as
        "no duplicate" rather than aborting the organize call.
        """
        directory = Path(directory)
        if not directory.is_dir():
            return None

        try:
            incoming_hash = compute_file_sha256(file_path)
            incoming_size = os.path.getsize(file_path)
        except OSError as exc:
            logger.error(
                "Failed to hash incoming file for duplicate check: file=%s error=%s",
                file_path,
                exc,
            )
            return None

        for dirpath, _dirnames, filenames in os.walk(directory):
            for name in filenames:
                candidate = Path(dirpath) / name
                try:
                    if candidate.stat().st_size != incoming_size:
                        continue
                    if os.path.samefile(candidate, file_path):
                        continue
                    if compute_file_sha256(candidate) == incoming_hash:
                        return candidate
                except OSError as exc:
                    logger.debug(
                        "Skipping unreadable duplicate candidate: file=%s error=%s",
                        candidate,
                        exc,
                    )
        return None

    def plan(self, file_path, original_filename=None):
        """Describe where a file would go without touching it.

        Returns:
            A (MediaInfo, target Path) tuple.
        """
        original_filename = original_filename or Path(file_path).name
        info = self.extractor.extract_metadata(file_path, filename=original_filename)
        placement_date = validate_capture_date(info.date_taken)
        target_dir = target_directory(self.media_root, placement_date)
        return info, next_available_path(target_dir / sanitize_filename(original_filename))


@lru_cache(maxsize=None)
def get_organizer():
    """Return the process-wide FileOrganizer built from settings."""
    return FileOrganizer(media_root=settings.MEDIA_ROOT)
