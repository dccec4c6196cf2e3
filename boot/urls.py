"""URL configuration for Sortify."""

from django.urls import include, path, re_path

from common.responses import success
from library.views import serve_media
from uploads.services.sessions import get_session_manager


def healthz(request):
    """Liveness check: reports the number of in-flight upload sessions."""
    return success(
        {"status": "ok", "active_sessions": get_session_manager().session_count()}
    )


urlpatterns = [
    path("api/health", healthz, name="healthz"),
    path("api/upload/", include("uploads.urls")),
    path("api/media/", include("library.urls")),
    re_path(r"^media/(?P<path>.*)$", serve_media, name="media-file"),
]
