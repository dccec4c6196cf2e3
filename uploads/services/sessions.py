"""Upload session services for chunked upload lifecycle management.

Sessions are held in process memory by a single ``UploadSessionManager``.
A restart loses every in-flight session; clients must start over.
"""

import contextlib
import copy
import itertools
import logging
import math
import os
import threading
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from functools import lru_cache
from pathlib import Path

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from common.checksums import checksums_match, compute_file_sha256, compute_sha256
from uploads.exceptions import (
    CapacityExceeded,
    ChecksumMismatch,
    InvalidSessionState,
    SessionNotCompleted,
    SessionNotFound,
    SizeMismatch,
)
from uploads.services.reaper import start_reaper

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1_048_576  # 1 MiB


class UploadStatus(models.TextChoices):
    """Lifecycle of an upload session.

    initialized → uploading ⇄ paused → completed → organizing
    uploading → failed (whole-file checksum mismatch) → uploading (re-sent chunks)
    any → cancelled (session discarded)
    """

    INITIALIZED = "initialized", "Initialized"
    UPLOADING = "uploading", "Uploading"
    PAUSED = "paused", "Paused"
    COMPLETED = "completed", "Completed"
    ORGANIZING = "organizing", "Organizing"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"


@dataclass
class UploadSession:
    """Server-side record of one in-progress chunked upload."""

    id: str
    filename: str
    file_size: int
    chunk_size: int
    total_chunks: int
    temp_path: str
    checksum: str = ""
    metadata: dict = field(default_factory=dict)
    uploaded_size: int = 0
    # chunk number -> bytes written for that chunk
    received_chunks: dict = field(default_factory=dict)
    status: str = UploadStatus.INITIALIZED
    user_date: datetime | None = None
    error_message: str = ""
    created_at: datetime = field(default_factory=timezone.now)
    updated_at: datetime = field(default_factory=timezone.now)

    def touch(self):
        self.updated_at = timezone.now()

    def to_dict(self):
        return {
            "id": self.id,
            "filename": self.filename,
            "file_size": self.file_size,
            "chunk_size": self.chunk_size,
            "total_chunks": self.total_chunks,
            "uploaded_size": self.uploaded_size,
            "checksum": self.checksum,
            "metadata": dict(self.metadata),
            "status": str(self.status),
            "user_date": self.user_date,
            "error_message": self.error_message,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class UploadProgress:
    session_id: str
    filename: str
    uploaded_bytes: int
    total_bytes: int
    uploaded_chunks: int
    total_chunks: int
    percent_complete: float
    status: str
    received_chunk_numbers: tuple = ()

    def to_dict(self):
        data = asdict(self)
        data["received_chunk_numbers"] = list(self.received_chunk_numbers)
        return data


def _discard_temp_file(path):
    """Remove a temp file, logging (never raising) on failure."""
    try:
        with contextlib.suppress(FileNotFoundError):
            os.remove(path)
    except OSError as exc:
        logger.warning("Failed to remove temp file %s: %s", path, exc)


class UploadSessionManager:
    """Owns the lifecycle of every in-flight chunked upload.

    A short-held registry lock guards the session map. Each session also
    carries its own lock, held for the whole of any operation on it
    (including file I/O), so two chunks for the same session never
    interleave their bookkeeping while different sessions run in parallel.

    Lock order is always session lock, then registry lock.
    """

    def __init__(self, temp_dir, max_sessions=10, default_chunk_size=DEFAULT_CHUNK_SIZE):
        self.temp_dir = Path(temp_dir)
        self.max_sessions = max_sessions
        self.default_chunk_size = default_chunk_size
        self._sessions = {}
        self._locks = {}
        self._registry_lock = threading.Lock()
        self._counter = itertools.count(1)
        self.temp_dir.mkdir(parents=True, exist_ok=True)

    # -- internal helpers -------------------------------------------------

    def _generate_session_id(self):
        return f"upload_{time.time_ns()}_{next(self._counter)}"

    @contextlib.contextmanager
    def _locked(self, session_id):
        """Yield the live session with its lock held.

        Raises:
            SessionNotFound: If the id is unknown, or the session was removed
                while this caller waited for its lock.
        """
        with self._registry_lock:
            session = self._sessions.get(session_id)
            lock = self._locks.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        with lock:
            with self._registry_lock:
                if self._sessions.get(session_id) is not session:
                    raise SessionNotFound(session_id)
            yield session

    def _remove(self, session):
        with self._registry_lock:
            self._sessions.pop(session.id, None)
            self._locks.pop(session.id, None)
        _discard_temp_file(session.temp_path)

    @staticmethod
    def _progress(session):
        percent = 0.0
        if session.file_size > 0:
            percent = session.uploaded_size / session.file_size * 100
        return UploadProgress(
            session_id=session.id,
            filename=session.filename,
            uploaded_bytes=session.uploaded_size,
            total_bytes=session.file_size,
            uploaded_chunks=math.ceil(session.uploaded_size / session.chunk_size),
            total_chunks=session.total_chunks,
            percent_complete=percent,
            status=str(session.status),
            received_chunk_numbers=tuple(sorted(session.received_chunks)),
        )

    # -- public API ---------------------------------------------------------

    def create_session(
        self, filename, file_size, chunk_size=None, checksum="", metadata=None
    ):
        """Create an upload session and pre-allocate its temp file.

        Args:
            filename: Original (user-facing) file name.
            file_size: Total expected file size in bytes.
            chunk_size: Target chunk size in bytes. Values of None or <= 0
                fall back to the default (1 MiB).
            checksum: Optional SHA-256 of the whole file.
            metadata: Optional caller-supplied key/value pairs.

        Returns:
            A snapshot of the new UploadSession.

        Raises:
            ValidationError: If the filename is empty or file_size <= 0.
            CapacityExceeded: If the concurrent-session limit is reached.
            OSError: If the temp file cannot be created.
        """
        if not filename or not str(filename).strip():
            raise ValidationError("Filename is required.", code="filename_required")
        if file_size is None or file_size <= 0:
            raise ValidationError(
                "File size must be greater than 0.", code="invalid_file_size"
            )
        if chunk_size is None or chunk_size <= 0:
            chunk_size = self.default_chunk_size

        with self._registry_lock:
            if len(self._sessions) >= self.max_sessions:
                raise CapacityExceeded(
                    f"Maximum concurrent uploads reached ({self.max_sessions})."
                )

            session_id = self._generate_session_id()
            while session_id in self._sessions:
                session_id = self._generate_session_id()

            temp_path = self.temp_dir / f"{session_id}.tmp"
            try:
                with open(temp_path, "wb") as fh:
                    fh.truncate(file_size)
            except OSError:
                _discard_temp_file(temp_path)
                raise

            session = UploadSession(
                id=session_id,
                filename=filename,
                file_size=file_size,
                chunk_size=chunk_size,
                total_chunks=math.ceil(file_size / chunk_size),
                temp_path=str(temp_path),
                checksum=checksum or "",
                metadata={str(k): str(v) for k, v in (metadata or {}).items()},
            )
            self._sessions[session_id] = session
            self._locks[session_id] = threading.Lock()

        logger.info(
            "Upload session created: id=%s file=%s size=%d parts=%d",
            session_id,
            filename,
            file_size,
            session.total_chunks,
        )
        return copy.deepcopy(session)

    def get_session(self, session_id):
        """Return a snapshot of a session.

        Raises:
            SessionNotFound: If the session does not exist.
        """
        with self._locked(session_id) as session:
            return copy.deepcopy(session)

    def list_sessions(self):
        """Return snapshots of every live session."""
        with self._registry_lock:
            session_ids = list(self._sessions)
        snapshots = []
        for session_id in session_ids:
            with contextlib.suppress(SessionNotFound):
                snapshots.append(self.get_session(session_id))
        return snapshots

    def session_count(self):
        with self._registry_lock:
            return len(self._sessions)

    def upload_chunk(self, session_id, chunk_number, data, checksum=""):
        """Write one chunk at its offset in the session's temp file.

        Re-sending a chunk number overwrites the same byte range and replaces
        its byte count, so retries never inflate ``uploaded_size``.

        Args:
            session_id: The session id.
            chunk_number: 0-indexed chunk ordinal.
            data: Chunk bytes. An empty chunk is a no-op apart from moving
                the session to uploading.
            checksum: Optional SHA-256 of ``data``.

        Returns:
            The UploadProgress after the write.

        Raises:
            SessionNotFound: If the session does not exist.
            InvalidSessionState: If the session is completed, organizing or paused.
            ChecksumMismatch: If ``checksum`` disagrees with ``data``.
            ValidationError: If the chunk lies outside the declared file.
            OSError: If the temp file cannot be written.
        """
        with self._locked(session_id) as session:
            if session.status in (UploadStatus.COMPLETED, UploadStatus.ORGANIZING):
                raise InvalidSessionState(
                    f"Upload session {session_id} is already completed."
                )
            if session.status == UploadStatus.PAUSED:
                raise InvalidSessionState(
                    f"Upload session {session_id} is paused; resume it first."
                )

            if checksum:
                actual = compute_sha256(data)
                if not checksums_match(checksum, actual):
                    logger.warning(
                        "Chunk checksum mismatch: session=%s chunk=%d",
                        session_id,
                        chunk_number,
                    )
                    raise ChecksumMismatch(
                        f"Checksum mismatch for chunk {chunk_number}."
                    )

            if chunk_number < 0 or chunk_number >= session.total_chunks:
                raise ValidationError(
                    f"Invalid chunk number {chunk_number}. Must be between 0 "
                    f"and {session.total_chunks - 1}.",
                    code="invalid_chunk_number",
                )
            offset = chunk_number * session.chunk_size
            if len(data) > session.chunk_size or offset + len(data) > session.file_size:
                raise ValidationError(
                    f"Chunk {chunk_number} ({len(data)} bytes) does not fit "
                    f"the declared file size.",
                    code="chunk_out_of_range",
                )

            # An empty chunk writes nothing and leaves the byte count alone.
            if data:
                with open(session.temp_path, "r+b") as fh:
                    fh.seek(offset)
                    fh.write(data)
                session.received_chunks[chunk_number] = len(data)
                session.uploaded_size = sum(session.received_chunks.values())
            session.status = UploadStatus.UPLOADING
            session.touch()

            logger.debug(
                "Upload chunk written: session=%s chunk=%d size=%d total=%d/%d",
                session_id,
                chunk_number,
                len(data),
                session.uploaded_size,
                session.file_size,
            )
            return self._progress(session)

    def complete_upload(self, session_id, checksum=""):
        """Validate a session's size and checksum, then mark it completed.

        A checksum passed here takes precedence over the one supplied when
        the session was created.

        Raises:
            SessionNotFound: If the session does not exist.
            SizeMismatch: If fewer (or more) bytes than declared were received.
            ChecksumMismatch: If the assembled file's SHA-256 disagrees. The
                session is marked failed; re-sending chunks reopens it.
        """
        with self._locked(session_id) as session:
            if session.status == UploadStatus.ORGANIZING:
                raise InvalidSessionState(
                    f"Upload session {session_id} is already being organized."
                )
            if session.uploaded_size != session.file_size:
                raise SizeMismatch(
                    f"Uploaded size mismatch: expected {session.file_size}, "
                    f"got {session.uploaded_size}."
                )

            expected = checksum or session.checksum
            if expected:
                actual = compute_file_sha256(session.temp_path)
                if not checksums_match(expected, actual):
                    session.status = UploadStatus.FAILED
                    session.error_message = "File checksum mismatch."
                    session.touch()
                    logger.warning(
                        "Upload checksum mismatch: session=%s expected=%s actual=%s",
                        session_id,
                        expected[:16],
                        actual[:16],
                    )
                    raise ChecksumMismatch("File checksum mismatch.")

            session.status = UploadStatus.COMPLETED
            session.error_message = ""
            session.touch()

        logger.info("Upload session completed: id=%s", session_id)

    def get_progress(self, session_id):
        """Return the UploadProgress of a session.

        Raises:
            SessionNotFound: If the session does not exist.
        """
        with self._locked(session_id) as session:
            return self._progress(session)

    def pause_upload(self, session_id):
        with self._locked(session_id) as session:
            session.status = UploadStatus.PAUSED
            session.touch()
        logger.info("Upload paused: id=%s", session_id)

    def resume_upload(self, session_id):
        """Move a paused session back to uploading.

        Chunks already written stay written; clients re-read progress and
        send only the missing chunk numbers.

        Raises:
            SessionNotFound: If the session does not exist.
            InvalidSessionState: If the session is not paused.
        """
        with self._locked(session_id) as session:
            if session.status != UploadStatus.PAUSED:
                raise InvalidSessionState(
                    f"Upload session {session_id} is not paused "
                    f"(status: {session.status})."
                )
            session.status = UploadStatus.UPLOADING
            session.touch()
        logger.info("Upload resumed: id=%s", session_id)

    def cancel_upload(self, session_id):
        """Discard a session and delete its temp file."""
        with self._locked(session_id) as session:
            session.status = UploadStatus.CANCELLED
            self._remove(session)
        logger.info("Upload cancelled: id=%s", session_id)

    def get_temp_file_path(self, session_id):
        """Return the temp file path of a completed session.

        Raises:
            SessionNotFound: If the session does not exist.
            SessionNotCompleted: If the session is not completed.
        """
        with self._locked(session_id) as session:
            if session.status != UploadStatus.COMPLETED:
                raise SessionNotCompleted(
                    f"Upload session {session_id} is not completed."
                )
            return session.temp_path

    def claim_for_organizing(self, session_id):
        """Hand a completed session to exactly one organizer.

        The session moves to ``organizing``; a concurrent or retried caller
        gets SessionNotCompleted instead of a second copy of the temp file.

        Returns:
            A snapshot of the claimed session.

        Raises:
            SessionNotFound: If the session does not exist.
            SessionNotCompleted: If the session is not completed, or another
                caller already claimed it.
        """
        with self._locked(session_id) as session:
            if session.status != UploadStatus.COMPLETED:
                raise SessionNotCompleted(
                    f"Upload session {session_id} is not completed "
                    f"(status: {session.status})."
                )
            session.status = UploadStatus.ORGANIZING
            session.touch()
            return copy.deepcopy(session)

    def cleanup_session(self, session_id):
        """Forget a session after its file was handed to the organizer."""
        with self._locked(session_id) as session:
            self._remove(session)
        logger.info("Upload session cleaned up: id=%s", session_id)

    def set_user_date(self, session_id, date_taken):
        """Record a user-supplied capture date for the session's file."""
        with self._locked(session_id) as session:
            session.user_date = date_taken
            session.touch()
        logger.info("User date recorded: id=%s date=%s", session_id, date_taken)

    def mark_failed(self, session_id, reason=""):
        with self._locked(session_id) as session:
            session.status = UploadStatus.FAILED
            session.error_message = reason
            session.touch()
        logger.warning("Upload session failed: id=%s error=%s", session_id, reason)

    def reap_idle_sessions(self, ttl_seconds, now=None):
        """Cancel sessions whose last activity is older than ``ttl_seconds``.

        Args:
            ttl_seconds: Idle time after which a session is abandoned.
            now: Reference time (defaults to ``timezone.now()``).

        Returns:
            List of reaped session ids.
        """
        now = now or timezone.now()
        cutoff = now - timedelta(seconds=ttl_seconds)
        with self._registry_lock:
            session_ids = list(self._sessions)

        reaped = []
        for session_id in session_ids:
            with contextlib.suppress(SessionNotFound):
                with self._locked(session_id) as session:
                    if session.updated_at < cutoff:
                        session.status = UploadStatus.CANCELLED
                        self._remove(session)
                        reaped.append(session_id)

        if reaped:
            logger.info(
                "Reaped %d idle upload session(s): %s", len(reaped), ", ".join(reaped)
            )
        return reaped


def upload_temp_dir():
    """Directory holding in-flight temp files, inside MEDIA_ROOT."""
    return Path(settings.MEDIA_ROOT) / settings.UPLOAD_TEMP_DIR_NAME


@lru_cache(maxsize=None)
def get_session_manager():
    """Return the process-wide UploadSessionManager built from settings.

    The first call also starts the idle-session reaper when
    ``UPLOAD_REAPER_ENABLED`` is set.
    """
    manager = UploadSessionManager(
        temp_dir=upload_temp_dir(),
        max_sessions=settings.UPLOAD_MAX_SESSIONS,
        default_chunk_size=settings.UPLOAD_DEFAULT_CHUNK_SIZE,
    )
    if settings.UPLOAD_REAPER_ENABLED:
        start_reaper(
            manager,
            ttl_seconds=settings.UPLOAD_SESSION_TTL_SECONDS,
            interval_seconds=settings.UPLOAD_REAPER_INTERVAL_SECONDS,
        )
    return manager
