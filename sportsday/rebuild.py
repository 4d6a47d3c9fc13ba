"""Background rebuild of points across many competitions with a bounded worker pool."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from django.conf import settings
from django.db import OperationalError, connection

from . import models, recalculation

logger = logging.getLogger(__name__)

__all__ = ["RebuildInProgress", "RebuildSummary", "RebuildJob", "rebuild_meet_points", "meet_rebuild_job"]


class RebuildInProgress(RuntimeError):
    """Raised when a rebuild is started while another one is still running."""


@dataclass
class RebuildSummary:
    succeeded: List[object] = field(default_factory=list)
    failed: Dict[object, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class RebuildJob:
    """Runs ``handler`` for every unit with at most ``max_workers`` running at once.

    Each unit is retried with exponential backoff on ``OperationalError``.
    Progress lines are timestamped and can be read from another thread while
    the job is running.
    """

    def __init__(
        self,
        name: str,
        handler: Callable[[object], object],
        *,
        max_workers: Optional[int] = None,
        retries: Optional[int] = None,
        backoff: Optional[float] = None,
        close_connections: bool = True,
    ) -> None:
        self.name = name
        self.handler = handler
        self.max_workers = max(1, int(max_workers or getattr(settings, "SPORTSDAY_REBUILD_MAX_WORKERS", 2)))
        self.retries = max(1, int(retries or getattr(settings, "SPORTSDAY_REBUILD_RETRIES", 3)))
        self.backoff = float(backoff if backoff is not None else getattr(settings, "SPORTSDAY_REBUILD_BACKOFF", 0.5))
        self.close_connections = close_connections
        self._logs: List[str] = []
        self._log_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._running = False

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._running

    def logs(self) -> List[str]:
        with self._log_lock:
            return list(self._logs)

    def log(self, message: str) -> None:
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        with self._log_lock:
            self._logs.append(f"[{stamp}] {message}")
        logger.info("%s: %s", self.name, message)

    def _run_unit(self, unit: object, index: int, total: int) -> object:
        try:
            for attempt in range(1, self.retries + 1):
                self.log(f"processing {unit} ({index}/{total})")
                try:
                    return self.handler(unit)
                except OperationalError as exc:
                    if attempt == self.retries:
                        raise
                    delay = self.backoff * (2 ** (attempt - 1))
                    self.log(f"{unit} failed ({exc}); retry {attempt}/{self.retries - 1} in {delay:.2f}s")
                    time.sleep(delay)
        finally:
            if self.close_connections:
                connection.close()
        raise AssertionError("unreachable")  # pragma: no cover

    def run(self, units: Iterable[object]) -> RebuildSummary:
        with self._state_lock:
            if self._running:
                raise RebuildInProgress(f"{self.name} is already running; wait for it to finish.")
            self._running = True
        with self._log_lock:
            self._logs = []

        try:
            units = list(units)
            summary = RebuildSummary()
            self.log(f"starting {self.name} for {len(units)} units")
            with ThreadPoolExecutor(max_workers=self.max_workers) as ex:
                futures = [
                    (unit, ex.submit(self._run_unit, unit, index, len(units)))
                    for index, unit in enumerate(units, start=1)
                ]
                for unit, fut in futures:
                    try:
                        fut.result()
                    except Exception as exc:
                        summary.failed[unit] = str(exc)
                        self.log(f"{unit} failed: {exc}")
                        continue
                    summary.succeeded.append(unit)
            self.log(
                f"{self.name} finished. succeeded: {len(summary.succeeded)}, failed: {len(summary.failed)}"
            )
            return summary
        finally:
            with self._state_lock:
                self._running = False


meet_rebuild_job = RebuildJob("points rebuild", recalculation.recalculate_competition)


def rebuild_meet_points(meet: Optional[models.Meet] = None, job: Optional[RebuildJob] = None) -> RebuildSummary:
    """Recalculate every scored competition, optionally limited to one meet."""

    job = job or meet_rebuild_job
    queryset = models.Competition.objects.filter(scores__isnull=False)
    if meet is not None:
        queryset = queryset.filter(meet=meet)
    competition_ids = list(queryset.order_by("pk").values_list("pk", flat=True).distinct())
    return job.run(competition_ids)
