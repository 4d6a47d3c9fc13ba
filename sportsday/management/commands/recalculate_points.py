from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from sportsday import models, rebuild, recalculation


class Command(BaseCommand):
    """Recalculate rankings and ledger rows for every scored competition."""

    help = "Rebuild competition rankings and points, optionally for a single meet."

    def add_arguments(self, parser):
        parser.add_argument("--meet", type=int, help="Id of the meet to rebuild (defaults to all meets)")
        parser.add_argument(
            "--workers", type=int, help="Concurrent workers (defaults to SPORTSDAY_REBUILD_MAX_WORKERS)"
        )

    def handle(self, *args, **options):
        meet = None
        if options.get("meet") is not None:
            meet = models.Meet.objects.filter(pk=options["meet"]).first()
            if not meet:
                raise CommandError(f"Meet {options['meet']} not found.")

        job = None
        if options.get("workers"):
            job = rebuild.RebuildJob(
                "points rebuild", recalculation.recalculate_competition, max_workers=options["workers"]
            )
        try:
            summary = rebuild.rebuild_meet_points(meet, job=job)
        except rebuild.RebuildInProgress as exc:
            raise CommandError(str(exc)) from exc

        for unit, error in summary.failed.items():
            self.stderr.write(f"Competition {unit}: {error}")
        message = f"Recalculated {len(summary.succeeded)} competitions, {len(summary.failed)} failed."
        if summary.failed:
            raise CommandError(message)
        self.stdout.write(self.style.SUCCESS(message))
