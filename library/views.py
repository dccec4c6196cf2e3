"""JSON endpoints for browsing and inspecting the media library."""

import logging
import posixpath
from datetime import datetime, time

from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import Http404, HttpResponse
from django.utils.dateparse import parse_date, parse_datetime
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods
from django.views.static import serve

from common import responses
from common.exceptions import ServiceError
from common.utils import parse_json_body, parse_pagination
from library.services.scanner import get_scanner
from uploads.services.sessions import get_session_manager

logger = logging.getLogger(__name__)


def parse_user_date(value):
    """Parse an ISO 8601 date or date-time supplied by a client.

    Raises:
        ValidationError: If the value is missing or not ISO 8601.
    """
    value = str(value or "").strip()
    if not value:
        raise ValidationError("date_taken is required.", code="date_required")
    try:
        parsed = parse_datetime(value)
        if parsed is None:
            day = parse_date(value)
            if day is not None:
                parsed = datetime.combine(day, time.min)
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError(
            f"Invalid date format: {value}. Use ISO 8601.", code="invalid_date"
        )
    return parsed


@require_http_methods(["GET"])
def browse_media(request):
    """Without ``year`` return the directory structure, else a page of files."""
    year = request.GET.get("year", "").strip()
    month = request.GET.get("month", "").strip()
    scanner = get_scanner()

    if not year:
        return responses.success({"structure": scanner.directory_structure()})

    limit, offset = parse_pagination(request.GET, settings.MEDIA_SCAN_DEFAULT_LIMIT)
    try:
        files = scanner.scan_files(year=year, month=month, limit=limit, offset=offset)
    except ValidationError as exc:
        return responses.from_exception(exc)

    return responses.success(
        {
            "year": year,
            "month": month,
            "files": [f.to_dict() for f in files],
            "count": len(files),
            "limit": limit,
            "offset": offset,
        }
    )


@require_http_methods(["GET"])
def search_media(request):
    limit, offset = parse_pagination(request.GET, settings.MEDIA_SCAN_DEFAULT_LIMIT)
    files, total = get_scanner().search_files(
        query=request.GET.get("q", ""),
        media_type=request.GET.get("type", ""),
        limit=limit,
        offset=offset,
    )
    return responses.success(
        {
            "files": [f.to_dict() for f in files],
            "total": total,
            "limit": limit,
            "offset": offset,
        }
    )


@csrf_exempt
@require_http_methods(["POST"])
def file_metadata(request):
    """Extract metadata for a file already in the library."""
    scanner = get_scanner()
    try:
        payload = parse_json_body(request)
        relative_path = str(payload.get("file_path") or "").strip()
        if not relative_path:
            raise ValidationError("file_path is required.", code="file_path_required")
        path = scanner.resolve_media_path(relative_path)
        info = scanner.extractor.extract_metadata(path)
    except (ValidationError, ServiceError) as exc:
        return responses.from_exception(exc)

    info.relative_path = relative_path
    return responses.success(info.to_dict())


@csrf_exempt
@require_http_methods(["POST"])
def set_user_date(request):
    """Attach a user-supplied capture date to an upload session."""
    try:
        payload = parse_json_body(request)
        session_id = str(payload.get("session_id") or "").strip()
        if not session_id:
            raise ValidationError("session_id is required.", code="session_id_required")
        date_taken = parse_user_date(payload.get("date_taken"))
        get_session_manager().set_user_date(session_id, date_taken)
    except (ValidationError, ServiceError) as exc:
        return responses.from_exception(exc)

    return HttpResponse(status=204)


@require_http_methods(["GET", "HEAD"])
def serve_media(request, path):
    """Serve an organized file from MEDIA_ROOT (development and small installs)."""
    path = posixpath.normpath(path).lstrip("/")
    if path.split("/", 1)[0] == settings.UPLOAD_TEMP_DIR_NAME:
        raise Http404("In-flight uploads are not served.")
    return serve(request, path, document_root=settings.MEDIA_ROOT)
