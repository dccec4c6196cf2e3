"""
Management command to file local photos and videos into the media library.

Usage:
    python manage.py organize_media ~/Pictures/import/*.jpg
    python manage.py organize_media clip.mp4 --dry-run --json
    python manage.py organize_media IMG_20240315_101500.jpg --keep-source
    python manage.py organize_media clip.mp4 --media-root /srv/photos
"""

from pathlib import Path

from django.core.management.base import CommandError

from library.exceptions import LibraryError
from library.management.base import MediaCommand
from library.services.paths import copy_file, relative_to_root


class Command(MediaCommand):
    help = "Organize local files into the <Year>/<Month>/ media tree"

    supports_dry_run = True
    supports_json = True

    def add_arguments(self, parser):
        super().add_arguments(parser)
        parser.add_argument("paths", nargs="+", help="Files to organize")
        parser.add_argument(
            "--keep-source",
            action="store_true",
            help="Copy files into the library instead of moving them",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        results = []
        errors = 0

        for raw_path in options["paths"]:
            source = Path(raw_path)
            if not source.is_file():
                errors += 1
                results.append({"path": raw_path, "error": "not a file"})
                continue

            work_path = source
            try:
                if dry_run:
                    info, target = self.organizer.plan(source)
                    results.append(
                        {
                            "path": raw_path,
                            "target": relative_to_root(target, self.media_root),
                            "date_taken": info.date_taken,
                            "date_source": str(info.date_source),
                        }
                    )
                    continue

                if options["keep_source"]:
                    work_path = self.staging_path()
                    copy_file(source, work_path)

                info = self.organizer.organize_file(work_path, source.name)
                results.append(
                    {
                        "path": raw_path,
                        "target": info.relative_path,
                        "date_taken": info.date_taken,
                        "date_source": str(info.date_source),
                        "duplicate": info.is_duplicate,
                    }
                )
            except (LibraryError, OSError) as exc:
                errors += 1
                if work_path != source:
                    work_path.unlink(missing_ok=True)
                results.append({"path": raw_path, "error": str(exc)})

        if not self.json_output:
            for result in results:
                self._print_result(result, dry_run)

        done = len(results) - errors
        verb = "Would organize" if dry_run else "Organized"
        self.finish(
            f"{verb} {done} of {len(results)} file(s)",
            {"dry_run": dry_run, "results": results, "errors": errors},
        )

        if errors and errors == len(results):
            raise CommandError(f"All {errors} file(s) failed to organize.")

    def _print_result(self, result, dry_run):
        if "error" in result:
            self.stdout.write(self.style.ERROR(f"{result['path']}: {result['error']}"))
        elif dry_run:
            self.stdout.write(
                f"Would organize: {result['path']} -> {result['target']} "
                f"({result['date_source']})"
            )
        elif result["duplicate"]:
            self.stdout.write(
                self.style.WARNING(f"Duplicate: {result['path']} matches {result['target']}")
            )
        else:
            self.stdout.write(f"Organized: {result['path']} -> {result['target']}")
