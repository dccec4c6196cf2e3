"""Django AppConfig for the uploads app.

The idle-session reaper is started by ``get_session_manager()`` on first
use, so management commands that never touch uploads do not spawn it.
"""

from django.apps import AppConfig


class UploadsConfig(AppConfig):
    name = "uploads"
    verbose_name = "Uploads"
    default_auto_field = "django.db.models.BigAutoField"
