"""Django AppConfig for the library app."""

from django.apps import AppConfig


class LibraryConfig(AppConfig):
    """Metadata extraction, organizing and browsing of the media tree."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "library"
    verbose_name = "Media library"
