"""Errors raised by the upload session manager."""

from common.exceptions import ServiceError


class UploadError(ServiceError):
    """Base class for upload session failures."""

    code = "upload_error"


class SessionNotFound(UploadError):
    code = "session_not_found"
    status_code = 404

    def __init__(self, session_id):
        super().__init__(f"Upload session {session_id} not found.")
        self.session_id = session_id


class CapacityExceeded(UploadError):
    code = "capacity_exceeded"
    status_code = 503


class ChecksumMismatch(UploadError):
    code = "checksum_mismatch"
    status_code = 422


class SizeMismatch(UploadError):
    code = "size_mismatch"
    status_code = 409


class InvalidSessionState(UploadError):
    code = "invalid_state"
    status_code = 409


class SessionNotCompleted(InvalidSessionState):
    code = "not_completed"
