"""Shared utility functions used across all apps."""

import json
import logging
from contextlib import contextmanager

from django.core.exceptions import ValidationError


@contextmanager
def safe_dispatch(operation_name, logger=None):
    """
    Context manager for operations that should never raise.

    Use around background sweeps and best-effort cleanup whose failure must
    not break the caller.

    Usage::

        with safe_dispatch("reap idle upload sessions", logger):
            manager.reap_idle_sessions(ttl)
    """
    _logger = logger or logging.getLogger("sortify.dispatch")
    try:
        yield
    except Exception as e:
        _logger.error("Failed to %s: %s", operation_name, e)


def parse_json_body(request):
    """Decode a JSON object request body.

    Returns:
        A dict (empty for an empty body).

    Raises:
        ValidationError: If the body is not a JSON object.
    """
    if not request.body:
        return {}
    try:
        payload = json.loads(request.body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError(
            f"Invalid request body: {exc}", code="invalid_json"
        ) from exc
    if not isinstance(payload, dict):
        raise ValidationError(
            "Request body must be a JSON object.", code="invalid_json"
        )
    return payload


def parse_pagination(params, default_limit=50):
    """
    Read ``limit``/``offset`` query parameters.

    Non-numeric, zero or negative limits and negative offsets fall back to
    the defaults instead of failing the request.

    Returns:
        A (limit, offset) tuple of ints.
    """
    limit = default_limit
    offset = 0
    try:
        value = int(params.get("limit", ""))
        if value > 0:
            limit = value
    except ValueError:
        pass
    try:
        value = int(params.get("offset", ""))
        if value >= 0:
            offset = value
    except ValueError:
        pass
    return limit, offset
