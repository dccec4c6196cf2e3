"""JSON response envelope used by every API endpoint.

Every body has the shape ``{"success": bool, "data": ..., "message": ...,
"error": ...}``; keys without a value are omitted.
"""

from django.core.exceptions import ValidationError
from django.http import JsonResponse

from common.exceptions import ServiceError


def success(data=None, message="", status=200):
    """Build a successful JSON response."""
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return JsonResponse(body, status=status)


def error(message, status=400, code=""):
    """Build an error JSON response."""
    body = {"success": False, "error": message}
    if code:
        body["code"] = code
    return JsonResponse(body, status=status)


def validation_error_message(exc):
    """Flatten a Django ValidationError into a single line."""
    return "; ".join(exc.messages)


def from_exception(exc, status=None):
    """Translate a service or validation exception into an error response.

    Args:
        exc: A ServiceError or django ValidationError.
        status: Optional status override (e.g. the chunk endpoint reports
            every manager failure as a 500).

    Returns:
        A JsonResponse.
    """
    if isinstance(exc, ValidationError):
        return error(
            validation_error_message(exc),
            status=status or 400,
            code=getattr(exc, "code", None) or "invalid",
        )
    if isinstance(exc, ServiceError):
        return error(str(exc), status=status or exc.status_code, code=exc.code)
    return error(str(exc), status=status or 500)
