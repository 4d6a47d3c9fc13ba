"""Dashboard statistics with a short-lived in-process cache."""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from django.conf import settings
from django.db.models import F
from rest_framework.renderers import JSONRenderer

from . import models, points
from .serializers import PointDetailSerializer, StatisticsSerializer

logger = logging.getLogger(__name__)

Status = models.Competition.Status
REMAINING_STATUSES = (Status.APPROVED, Status.PENDING_SCORE_REVIEW)


def _ttl() -> float:
    return float(getattr(settings, "SPORTSDAY_STATISTICS_CACHE_SECONDS", 1.0))


def _top_n() -> int:
    return int(getattr(settings, "SPORTSDAY_STATISTICS_TOP_N", 10))


def build_statistics(meet: models.Meet) -> Dict[str, Any]:
    """Serialize the dashboard payload for ``meet`` straight from the database."""

    competitions = models.Competition.objects.filter(meet=meet)
    latest = (
        competitions.filter(status=Status.COMPLETED)
        .order_by(F("score_reviewed_at").desc(nulls_last=True), "-pk")
        .first()
    )
    latest_scores = []
    if latest is not None:
        latest_scores = list(
            models.Score.objects.filter(competition=latest)
            .select_related("student", "school_class")
            .order_by("ranking", "pk")
        )
    limit = _top_n()
    snapshot = {
        "meet_id": meet.pk,
        "latest_competition": latest,
        "latest_scores": latest_scores,
        "completed_count": competitions.filter(status=Status.COMPLETED).count(),
        "remaining_count": competitions.filter(status__in=REMAINING_STATUSES).count(),
        "top_classes": points.top_classes(meet, limit),
        "top_students": points.top_students(meet, limit),
    }
    return StatisticsSerializer(snapshot).data


def point_details(
    meet: models.Meet,
    *,
    school_class: models.SchoolClass | None = None,
    student: models.Student | None = None,
) -> list:
    """Serialized ledger lines for one class or one student, newest first."""

    if (school_class is None) == (student is None):
        raise ValueError("Pass exactly one of school_class or student.")
    if school_class is not None:
        details = points.class_point_details(meet, school_class)
    else:
        details = points.student_point_details(meet, student)
    return PointDetailSerializer(details, many=True).data


def content_hash(payload: Dict[str, Any]) -> str:
    """First four bytes of the MD5 of the rendered payload, as hex."""

    return hashlib.md5(JSONRenderer().render(payload)).hexdigest()[:8]  # noqa: S324 (not for security)


@dataclass(frozen=True)
class _Snapshot:
    payload: Dict[str, Any]
    digest: str
    expires_at: float


class StatisticsCache:
    """Per-meet payload cache; fresh snapshots are read without taking the lock.

    Snapshots are immutable and swapped in whole, so a plain mutex that only
    guards the rebuild is enough; no reader-writer lock is needed.
    """

    def __init__(
        self,
        builder: Callable[[models.Meet], Dict[str, Any]] = build_statistics,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._builder = builder
        self._clock = clock
        self._snapshots: Dict[int, _Snapshot] = {}
        self._lock = threading.Lock()

    def _fresh(self, meet_id: int) -> Optional[_Snapshot]:
        snapshot = self._snapshots.get(meet_id)
        if snapshot is not None and self._clock() < snapshot.expires_at:
            return snapshot
        return None

    def snapshot(self, meet: models.Meet) -> _Snapshot:
        cached = self._fresh(meet.pk)
        if cached is not None:
            return cached
        with self._lock:
            cached = self._fresh(meet.pk)
            if cached is not None:
                return cached
            payload = self._builder(meet)
            snapshot = _Snapshot(payload=payload, digest=content_hash(payload), expires_at=self._clock() + _ttl())
            self._snapshots[meet.pk] = snapshot
            logger.debug("statistics for meet %s rebuilt (hash %s)", meet.pk, snapshot.digest)
            return snapshot

    def get(self, meet: models.Meet) -> Dict[str, Any]:
        return self.snapshot(meet).payload

    def get_hash(self, meet: models.Meet) -> str:
        return self.snapshot(meet).digest

    def invalidate(self, meet: models.Meet | None = None) -> None:
        with self._lock:
            if meet is None:
                self._snapshots.clear()
            else:
                self._snapshots.pop(meet.pk, None)


statistics_cache = StatisticsCache()


def get_statistics(meet: models.Meet) -> Dict[str, Any]:
    return statistics_cache.get(meet)


def get_statistics_hash(meet: models.Meet) -> str:
    return statistics_cache.get_hash(meet)
