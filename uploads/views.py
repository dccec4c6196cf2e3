"""JSON endpoints for the chunked upload lifecycle."""

import logging

from django.core.exceptions import ValidationError
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from common import responses
from common.exceptions import ServiceError
from common.utils import parse_json_body, safe_dispatch
from library.exceptions import LibraryError
from library.services.extractor import MetadataExtractor
from library.services.organizer import get_organizer
from uploads.services.sessions import get_session_manager

logger = logging.getLogger(__name__)


def _session_id_from_query(request):
    session_id = request.GET.get("session_id", "").strip()
    if not session_id:
        raise ValidationError("session_id is required.", code="session_id_required")
    return session_id


def _optional_int(value, field_name):
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"{field_name} must be an integer.", code=f"invalid_{field_name}"
        ) from exc


@csrf_exempt
@require_http_methods(["POST"])
def start_upload(request):
    """Create an upload session from a JSON body."""
    try:
        payload = parse_json_body(request)
        file_size = _optional_int(payload.get("file_size"), "file_size")
        metadata = payload.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValidationError("metadata must be an object.", code="invalid_metadata")
        session = get_session_manager().create_session(
            filename=str(payload.get("filename") or ""),
            file_size=file_size,
            chunk_size=_optional_int(payload.get("chunk_size"), "chunk_size"),
            checksum=str(payload.get("checksum") or ""),
            metadata=metadata,
        )
    except (ValidationError, ServiceError) as exc:
        return responses.from_exception(exc)

    return responses.success(session.to_dict(), message="Upload session created")


@csrf_exempt
@require_http_methods(["POST"])
def upload_chunk(request):
    """Write one chunk sent as multipart form data.

    Any manager failure other than a malformed request is reported as a 500.
    """
    session_id = request.POST.get("session_id", "").strip()
    if not session_id:
        return responses.error("session_id is required.", code="session_id_required")

    try:
        chunk_number = int(request.POST.get("chunk_number", ""))
    except ValueError:
        return responses.error(
            "chunk_number must be an integer.", code="invalid_chunk_number"
        )

    chunk = request.FILES.get("chunk")
    if chunk is None:
        return responses.error("chunk file is required.", code="chunk_required")

    try:
        progress = get_session_manager().upload_chunk(
            session_id,
            chunk_number,
            chunk.read(),
            checksum=request.POST.get("checksum", ""),
        )
    except ValidationError as exc:
        return responses.from_exception(exc)
    except (ServiceError, OSError) as exc:
        logger.error(
            "Chunk upload failed: session=%s chunk=%d error=%s",
            session_id,
            chunk_number,
            exc,
        )
        return responses.from_exception(exc, status=500)

    return responses.success(progress.to_dict(), message="Chunk uploaded")


@csrf_exempt
@require_http_methods(["POST"])
def complete_upload(request):
    """Finish a session and file the upload into the media library."""
    manager = get_session_manager()
    try:
        payload = parse_json_body(request)
        session_id = str(payload.get("session_id") or "").strip()
        if not session_id:
            raise ValidationError("session_id is required.", code="session_id_required")
        manager.complete_upload(session_id, checksum=str(payload.get("checksum") or ""))
        session = manager.claim_for_organizing(session_id)
    except (ValidationError, ServiceError) as exc:
        return responses.from_exception(exc)

    try:
        info = get_organizer().organize_file(
            session.temp_path, session.filename, user_date=session.user_date
        )
    except LibraryError as exc:
        logger.error("Failed to organize upload: session=%s error=%s", session_id, exc)
        with safe_dispatch("mark upload session failed", logger):
            manager.mark_failed(session_id, str(exc))
        return responses.from_exception(exc)

    manager.cleanup_session(session_id)

    return responses.success(
        {
            "session_id": session_id,
            "filename": info.filename,
            "media_info": info.to_dict(),
            "organized": not info.is_duplicate,
            "duplicate": info.is_duplicate,
            "needs_user_input": MetadataExtractor.needs_user_input(info),
        },
        message="Upload completed",
    )


@require_http_methods(["GET"])
def upload_progress(request):
    try:
        progress = get_session_manager().get_progress(_session_id_from_query(request))
    except (ValidationError, ServiceError) as exc:
        return responses.from_exception(exc)
    return responses.success(progress.to_dict())


@csrf_exempt
@require_http_methods(["POST"])
def pause_upload(request):
    try:
        get_session_manager().pause_upload(_session_id_from_query(request))
    except (ValidationError, ServiceError) as exc:
        return responses.from_exception(exc)
    return responses.success(message="Upload paused")


@csrf_exempt
@require_http_methods(["POST"])
def resume_upload(request):
    try:
        get_session_manager().resume_upload(_session_id_from_query(request))
    except (ValidationError, ServiceError) as exc:
        return responses.from_exception(exc)
    return responses.success(message="Upload resumed")


@csrf_exempt
@require_http_methods(["DELETE"])
def cancel_upload(request):
    try:
        get_session_manager().cancel_upload(_session_id_from_query(request))
    except (ValidationError, ServiceError) as exc:
        return responses.from_exception(exc)
    return responses.success(message="Upload cancelled")
