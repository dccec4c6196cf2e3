"""
Django settings for Sortify.

Uses django-configurations for class-based settings.
See https://docs.djangoproject.com/en/5.0/ref/settings/
"""

from datetime import datetime
from pathlib import Path

from configurations import Configuration, values


class Base(Configuration):
    """Base configuration for all environments."""

    BASE_DIR = Path(__file__).resolve().parent.parent

    SECRET_KEY = values.SecretValue()

    DEBUG = values.BooleanValue(False)

    ALLOWED_HOSTS = values.ListValue([])

    # Application definition
    INSTALLED_APPS = [
        "common",
        "uploads",
        "library",
    ]

    MIDDLEWARE = [
        "django.middleware.security.SecurityMiddleware",
        "django.middleware.common.CommonMiddleware",
        "django.middleware.clickjacking.XFrameOptionsMiddleware",
    ]

    ROOT_URLCONF = "boot.urls"

    TEMPLATES = []

    WSGI_APPLICATION = "boot.wsgi.application"

    # No relational database: upload sessions live in memory and the
    # organized media tree is the only persisted state.
    DATABASES = {}

    # Internationalization
    LANGUAGE_CODE = values.Value("en-us")
    TIME_ZONE = values.Value("UTC")
    USE_I18N = False
    USE_TZ = True

    # Media library (organized output lives in MEDIA_ROOT/<Year>/<Month>/)
    MEDIA_URL = values.Value("media/")
    MEDIA_ROOT = values.PathValue(
        str(BASE_DIR / "media"),
        check_exists=False,
        environ_name="MEDIA_ROOT",
    )

    # Chunked upload settings
    UPLOAD_TEMP_DIR_NAME = "temp"
    UPLOAD_MAX_SESSIONS = values.IntegerValue(10)
    UPLOAD_DEFAULT_CHUNK_SIZE = 1_048_576  # 1 MiB
    UPLOAD_SESSION_TTL_SECONDS = values.IntegerValue(86_400)
    UPLOAD_REAPER_INTERVAL_SECONDS = values.IntegerValue(300)
    UPLOAD_REAPER_ENABLED = values.BooleanValue(True)

    # Chunks arrive as multipart files; JSON bodies stay small.
    DATA_UPLOAD_MAX_MEMORY_SIZE = 10_485_760  # 10 MB
    FILE_UPLOAD_MAX_MEMORY_SIZE = 10_485_760

    # Library settings
    MEDIA_MIN_CAPTURE_DATE = datetime(1990, 1, 1)
    MEDIA_SCAN_DEFAULT_LIMIT = 50

    LOG_LEVEL = values.Value("INFO")

    @property
    def LOGGING(self):
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "verbose": {
                    "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "verbose",
                },
            },
            "root": {
                "handlers": ["console"],
                "level": self.LOG_LEVEL,
            },
            "loggers": {
                # exifread reports every non-image file at WARNING
                "exifread": {"level": "ERROR"},
            },
        }

    # Default field
    DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


class Dev(Base):
    """Development configuration."""

    DEBUG = True

    SECRET_KEY = values.Value("django-insecure-dev-key-change-in-production")

    ALLOWED_HOSTS = values.ListValue(["localhost", "127.0.0.1"])

    LOG_LEVEL = values.Value("DEBUG")


class Test(Dev):
    """Test configuration: no background reaper, quiet logging."""

    ALLOWED_HOSTS = ["testserver", "localhost"]

    UPLOAD_REAPER_ENABLED = False

    LOG_LEVEL = "WARNING"


class Production(Base):
    """Production configuration."""

    DEBUG = False

    ALLOWED_HOSTS = values.ListValue([])

    # Security settings
    SECURE_SSL_REDIRECT = values.BooleanValue(True)
    SECURE_HSTS_SECONDS = values.IntegerValue(31536000)
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_HSTS_PRELOAD = True
