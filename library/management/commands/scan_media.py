"""
Management command to list what the media library contains.

Usage:
    python manage.py scan_media
    python manage.py scan_media --year 2024 --month March --limit 20
    python manage.py scan_media --json --media-root /srv/photos
"""

from django.conf import settings

from library.management.base import MediaCommand


class Command(MediaCommand):
    help = "List organized media files, newest first"

    supports_json = True

    def add_arguments(self, parser):
        super().add_arguments(parser)
        parser.add_argument("--year", default="", help="Only scan this year")
        parser.add_argument("--month", default="", help="Only scan this month (needs --year)")
        parser.add_argument(
            "--limit",
            type=int,
            default=settings.MEDIA_SCAN_DEFAULT_LIMIT,
            help="Maximum number of files to list",
        )
        parser.add_argument("--offset", type=int, default=0, help="Files to skip")

    def handle(self, *args, **options):
        files = self.scanner.scan_files(
            year=options["year"],
            month=options["month"],
            limit=max(options["limit"], 1),
            offset=max(options["offset"], 0),
        )

        if not self.json_output:
            for f in files:
                date = f.effective_date.strftime("%Y-%m-%d %H:%M:%S")
                self.stdout.write(f"{date}  {f.media_type:<5}  {f.size:>12}  {f.relative_path}")
        self.finish(f"Listed {len(files)} file(s)", [f.to_dict() for f in files])
