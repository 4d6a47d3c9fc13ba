"""Recalculation cascade: every score or configuration change re-ranks and re-credits.

Each competition is recalculated in its own atomic unit: ranks are written
first, then the ledger is regenerated from them, and either both land or
neither does.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, TypeVar

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import OperationalError, transaction

from . import lifecycle, models, points
from .lifecycle import Transition
from .ranking import rank_scores

logger = logging.getLogger(__name__)

T = TypeVar("T")

__all__ = [
    "ScoreInput",
    "run_with_retry",
    "recalculate_rankings",
    "recalculate_locked",
    "recalculate_competition",
    "recalculate_scored_competitions",
    "submit_scores",
    "review_scores",
    "withdraw_scores",
]


@dataclass(frozen=True)
class ScoreInput:
    """One row of a submitted score batch."""

    value: Decimal | float | int | str
    student_id: int | None = None
    class_id: int | None = None


def _is_lock_error(exc: OperationalError) -> bool:
    message = str(exc).lower()
    return "locked" in message or "busy" in message


def run_with_retry(func: Callable[[], T], *, label: str = "write") -> T:
    """Run a write unit, retrying with backoff while the database is locked.

    Retries only happen outside an enclosing transaction; inside one the
    error is raised straight away so the outer unit rolls back.
    """

    attempts = max(1, int(getattr(settings, "SPORTSDAY_WRITE_RETRIES", 5)))
    backoff = float(getattr(settings, "SPORTSDAY_WRITE_RETRY_BACKOFF", 0.05))
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except OperationalError as exc:
            if not _is_lock_error(exc) or transaction.get_connection().in_atomic_block or attempt == attempts:
                raise
            delay = backoff * (2 ** (attempt - 1))
            logger.warning("%s: database busy (attempt %d/%d), retrying in %.2fs", label, attempt, attempts, delay)
            time.sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover


def recalculate_rankings(competition: models.Competition) -> list[models.Score]:
    """Rank every score of the competition and persist the ranks."""

    scores = list(models.Score.objects.filter(competition=competition))
    if not scores:
        return []
    ranked = rank_scores(scores, competition.ranking_mode)
    models.Score.objects.bulk_update(ranked, ["ranking"])
    return ranked


def recalculate_locked(competition: models.Competition, scoring: models.ScoringSettings | None = None) -> int:
    recalculate_rankings(competition)
    return points.recalculate_points(competition, scoring)


def recalculate_competition(competition_id: int, scoring: models.ScoringSettings | None = None) -> int:
    """Re-rank and re-credit one competition atomically; returns ledger rows written."""

    def unit() -> int:
        with transaction.atomic():
            competition = models.Competition.objects.select_for_update().get(pk=competition_id)
            return recalculate_locked(competition, scoring)

    created = run_with_retry(unit, label=f"recalculate competition {competition_id}")
    logger.info("competition %s recalculated (%d ledger rows)", competition_id, created)
    return created


def recalculate_scored_competitions(meet: models.Meet | None = None) -> list[int]:
    """Recalculate every competition that has at least one score, whatever its status."""

    queryset = models.Competition.objects.filter(scores__isnull=False)
    if meet is not None:
        queryset = queryset.filter(meet=meet)
    competition_ids = list(queryset.order_by("pk").values_list("pk", flat=True).distinct())
    scoring = models.ScoringSettings.load()
    for competition_id in competition_ids:
        recalculate_competition(competition_id, scoring)
    return competition_ids


def _parse_value(raw) -> Decimal:
    if isinstance(raw, bool):
        raise ValidationError("Invalid score value %(value)r.", params={"value": raw})
    try:
        value = Decimal(str(raw).strip())
        if not value.is_finite():
            raise ValueError(raw)
        value = value.quantize(Decimal("0.001"))
        models.SCORE_VALUE_VALIDATOR(value)
    except (InvalidOperation, TypeError, ValueError, ValidationError) as exc:
        raise ValidationError("Invalid score value %(value)r.", params={"value": raw}) from exc
    return value


def _build_scores(competition: models.Competition, rows: Iterable[ScoreInput]) -> list[models.Score]:
    """Validate a batch and return unsaved score rows; nothing is written."""

    rows = list(rows)
    if not rows:
        raise ValidationError("Submit at least one score.", code="empty_batch")

    registrations = models.Registration.objects.filter(competition=competition)
    errors: list[str] = []
    built: list[models.Score] = []
    seen: set[int] = set()
    if competition.is_team:
        registered = set(registrations.values_list("school_class_id", flat=True))
        for row in rows:
            if row.class_id is None or row.student_id is not None:
                errors.append("Team scores must name a class and no student.")
                continue
            if row.class_id in seen:
                errors.append(f"Class {row.class_id} appears more than once.")
                continue
            seen.add(row.class_id)
            if row.class_id not in registered:
                errors.append(f"Class {row.class_id} has no students registered for this competition.")
                continue
            built.append(
                models.Score(competition=competition, school_class_id=row.class_id, value=_parse_value(row.value))
            )
    else:
        registered = set(registrations.values_list("student_id", flat=True))
        for row in rows:
            if row.student_id is None or row.class_id is not None:
                errors.append("Individual scores must name a student and no class.")
                continue
            if row.student_id in seen:
                errors.append(f"Student {row.student_id} appears more than once.")
                continue
            seen.add(row.student_id)
            if row.student_id not in registered:
                errors.append(f"Student {row.student_id} is not registered for this competition.")
                continue
            built.append(
                models.Score(competition=competition, student_id=row.student_id, value=_parse_value(row.value))
            )
    if errors:
        raise ValidationError(errors, code="invalid_batch")
    return built


def submit_scores(
    competition_id: int, rows: Iterable[ScoreInput], *, submitter_id: int | None
) -> models.Competition:
    """Replace the competition's scores with a new batch awaiting review."""

    rows = list(rows)

    def unit() -> models.Competition:
        with transaction.atomic():
            competition = models.Competition.objects.select_for_update().get(pk=competition_id)
            if not lifecycle.can_submit_scores(competition):
                raise lifecycle.InvalidTransition(competition, Transition.SUBMIT_SCORES)
            scores = _build_scores(competition, rows)
            models.Score.objects.filter(competition=competition).delete()
            models.Score.objects.bulk_create(scores)
            lifecycle.apply_transition(competition, Transition.SUBMIT_SCORES, actor_id=submitter_id)
            recalculate_locked(competition)
            return competition

    competition = run_with_retry(unit, label=f"submit scores {competition_id}")
    logger.info("competition %s: %d scores submitted by %s", competition_id, len(rows), submitter_id)
    return competition


def review_scores(competition_id: int, *, reviewer_id: int | None) -> models.Competition:
    """Accept the submitted batch; the ledger is regenerated from the final scores."""

    def unit() -> models.Competition:
        with transaction.atomic():
            competition = models.Competition.objects.select_for_update().get(pk=competition_id)
            lifecycle.apply_transition(competition, Transition.REVIEW_SCORES, actor_id=reviewer_id)
            recalculate_locked(competition)
            return competition

    return run_with_retry(unit, label=f"review scores {competition_id}")


def withdraw_scores(competition_id: int, *, actor_id: int | None) -> models.Competition:
    """Drop the competition's scores and send it back to approved."""

    def unit() -> models.Competition:
        with transaction.atomic():
            competition = models.Competition.objects.select_for_update().get(pk=competition_id)
            lifecycle.apply_transition(competition, Transition.WITHDRAW_SCORES, actor_id=actor_id)
            models.Score.objects.filter(competition=competition).delete()
            recalculate_locked(competition)
            return competition

    return run_with_retry(unit, label=f"withdraw scores {competition_id}")
