"""
Shared base for the media library management commands.

Adds the options every library command understands (``--media-root``,
and opt-in ``--dry-run``/``--json``) and hands subclasses an organizer
and a scanner bound to the chosen library root.
"""

import json
import time
from functools import cached_property
from pathlib import Path

from django.conf import settings
from django.core.management.base import BaseCommand

from library.services.organizer import FileOrganizer, get_organizer
from library.services.scanner import MediaScanner, get_scanner


class MediaCommand(BaseCommand):
    """
    Base command for commands that read or write the media library.

    Subclasses opt in to extra flags with class attributes:
        supports_dry_run = True: adds --dry-run
        supports_json = True:    adds --json

    Without ``--media-root`` the process-wide services built from settings
    are used; with it, fresh ones rooted at the given directory.
    """

    supports_dry_run = False
    supports_json = False

    def add_arguments(self, parser):
        parser.add_argument(
            "--media-root",
            default="",
            help="Library root to use instead of MEDIA_ROOT",
        )
        if self.supports_dry_run:
            parser.add_argument(
                "--dry-run",
                action="store_true",
                help="Show what would happen without touching any file",
            )
        if self.supports_json:
            parser.add_argument(
                "--json",
                action="store_true",
                dest="json_output",
                help="Print a JSON report instead of text",
            )

    def execute(self, *args, **options):
        self._started = time.monotonic()
        self._media_root_option = options.get("media_root") or ""
        self.json_output = bool(options.get("json_output"))
        return super().execute(*args, **options)

    @property
    def media_root(self):
        return Path(self._media_root_option or settings.MEDIA_ROOT)

    @cached_property
    def organizer(self):
        if not self._media_root_option:
            return get_organizer()
        return FileOrganizer(media_root=self.media_root)

    @cached_property
    def scanner(self):
        if not self._media_root_option:
            return get_scanner()
        return MediaScanner(
            media_root=self.media_root, temp_dir_name=settings.UPLOAD_TEMP_DIR_NAME
        )

    def staging_path(self, prefix="import"):
        """A fresh path in the library's temp dir, on the same filesystem as the tree."""
        temp_dir = self.media_root / settings.UPLOAD_TEMP_DIR_NAME
        temp_dir.mkdir(parents=True, exist_ok=True)
        return temp_dir / f"{prefix}_{time.time_ns()}.tmp"

    def elapsed(self):
        """Seconds since the command started."""
        return time.monotonic() - getattr(self, "_started", time.monotonic())

    def finish(self, summary, report):
        """Print ``report`` as JSON under --json, else the ``summary`` line with timing."""
        if self.json_output:
            if isinstance(report, dict):
                report = {**report, "elapsed": round(self.elapsed(), 3)}
            self.stdout.write(json.dumps(report, indent=2, default=str))
        else:
            self.stdout.write(self.style.SUCCESS(f"{summary} in {self.elapsed():.2f}s."))
