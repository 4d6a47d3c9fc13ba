"""Points ledger: rank-derived and custom points plus the standings built on them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import DecimalField, Q, Sum, Value
from django.db.models.functions import Coalesce

from . import forms, lifecycle, models
from .ranking import competition_ranks

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CLASS_REASON_SEPARATOR = "、"
CUSTOM_POINTS_LABEL = "Custom points"

__all__ = [
    "ClassPointsSummary",
    "StudentPointsSummary",
    "PointDetail",
    "points_mapping",
    "points_for_rank",
    "recalculate_points",
    "add_custom_points",
    "delete_custom_points",
    "class_points_summary",
    "student_points_summary",
    "class_summary",
    "student_summary",
    "top_classes",
    "top_students",
    "class_point_details",
    "student_point_details",
]


@dataclass
class ClassPointsSummary:
    class_id: int
    class_name: str
    total_points: Decimal
    ranking_points: Decimal
    custom_points: Decimal
    rank: int = 0


@dataclass
class StudentPointsSummary:
    student_id: int
    student_name: str
    class_id: int
    class_name: str
    total_points: Decimal
    ranking_points: Decimal
    rank: int = 0


@dataclass(frozen=True)
class PointDetail:
    """A ledger line decorated with the names a standings page shows."""

    id: int
    competition_id: int | None
    competition_name: str
    competition_type: str
    points: Decimal
    point_type: str
    ranking: int | None
    reason: str
    created_by: int | None
    created_at: object


def _as_decimal(value) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError("Invalid points value %(value)r.", params={"value": value})
    try:
        candidate = Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError("Invalid points value %(value)r.", params={"value": value}) from exc
    if not candidate.is_finite():
        raise ValidationError("Invalid points value %(value)r.", params={"value": value})
    try:
        models.POINTS_VALIDATOR(candidate)
    except ValidationError as exc:
        raise ValidationError(
            "Points value %(value)r must fit 6 digits and 2 decimal places.",
            code="points_precision",
            params={"value": value},
        ) from exc
    return candidate


def points_mapping(
    competition_type: str, scoring: models.ScoringSettings | None = None
) -> dict[str, Decimal]:
    """Return the rank to points table for a competition type."""

    scoring = scoring or models.ScoringSettings.load()
    return {str(rank): _as_decimal(value) for rank, value in scoring.mapping_for(competition_type).items()}


def points_for_rank(mapping: dict[str, Decimal], rank: int) -> Decimal | None:
    return mapping.get(str(rank))


def _class_entries_reason(names: Iterable[str]) -> str:
    return CLASS_REASON_SEPARATOR.join(name for name in names if name)


def recalculate_points(
    competition: models.Competition,
    scoring: models.ScoringSettings | None = None,
) -> int:
    """Regenerate the ranking-derived ledger for one competition.

    Must run inside the caller's transaction, after the ranks are written.
    Score previews are refreshed whatever the status; ledger rows are only
    produced once the competition is completed. Returns the number of
    ledger rows created.
    """

    models.PointsEntry.objects.filter(
        competition=competition, point_type=models.PointsEntry.PointType.RANKING
    ).delete()

    scores = list(
        models.Score.objects.filter(competition=competition).select_related("student", "school_class")
    )
    if not scores:
        return 0

    mapping = points_mapping(competition.competition_type, scoring)
    write_ledger = lifecycle.can_generate_ledger(competition)

    team_rosters: dict[int, list[models.Student]] = {}
    if write_ledger and competition.is_team:
        registrations = (
            models.Registration.objects.filter(competition=competition)
            .select_related("student")
            .order_by("pk")
        )
        for registration in registrations:
            team_rosters.setdefault(registration.school_class_id, []).append(registration.student)

    entries: list[models.PointsEntry] = []
    for score in scores:
        awarded = points_for_rank(mapping, score.ranking)
        score.point = awarded if awarded is not None else ZERO
        if awarded is None or not write_ledger:
            continue

        common = {
            "meet_id": competition.meet_id,
            "competition": competition,
            "points": awarded,
            "point_type": models.PointsEntry.PointType.RANKING,
            "ranking": score.ranking,
        }
        if competition.is_team:
            if not score.school_class_id:
                continue
            roster = team_rosters.get(score.school_class_id, [])
            for student in roster:
                entries.append(models.PointsEntry(student=student, **common))
            entries.append(
                models.PointsEntry(
                    school_class_id=score.school_class_id,
                    reason=_class_entries_reason(student.full_name for student in roster),
                    **common,
                )
            )
        else:
            if not score.student_id:
                continue
            student = score.student
            entries.append(models.PointsEntry(student=student, **common))
            entries.append(
                models.PointsEntry(
                    school_class_id=student.school_class_id,
                    reason=student.full_name,
                    **common,
                )
            )

    models.Score.objects.bulk_update(scores, ["point"])
    models.PointsEntry.objects.bulk_create(entries)
    logger.debug(
        "competition %s: refreshed %d score previews, wrote %d ledger rows",
        competition.pk,
        len(scores),
        len(entries),
    )
    return len(entries)


@transaction.atomic
def add_custom_points(
    *,
    meet: models.Meet,
    school_class: models.SchoolClass,
    points,
    reason: str,
    created_by: int | None,
) -> models.PointsEntry:
    """Credit a class with an administrative adjustment under the meet scope."""

    form = forms.CustomPointsForm(
        data={"school_class": school_class.pk, "points": _as_decimal(points), "reason": reason}
    )
    if not form.is_valid():
        raise ValidationError(form.errors.as_data())
    entry = models.PointsEntry.objects.create(
        meet=meet,
        competition=None,
        school_class=form.cleaned_data["school_class"],
        points=form.cleaned_data["points"],
        point_type=models.PointsEntry.PointType.CUSTOM,
        reason=form.cleaned_data["reason"],
        created_by=created_by,
    )
    models.AuditLog.objects.create(
        action="points.custom_added",
        actor_id=created_by,
        payload={
            "entry_id": entry.pk,
            "meet_id": meet.pk,
            "class_id": school_class.pk,
            "points": str(entry.points),
        },
    )
    logger.info("custom points %s added to class %s by %s", entry.points, school_class.pk, created_by)
    return entry


@transaction.atomic
def delete_custom_points(entry_id: int, *, actor_id: int | None = None) -> None:
    """Delete a custom ledger entry; ranking entries only change via recalculation."""

    entry = models.PointsEntry.objects.select_for_update().get(pk=entry_id)
    if not entry.is_custom:
        raise ValidationError(
            "Only custom points entries can be deleted directly.", code="not_custom"
        )
    payload = {"entry_id": entry.pk, "class_id": entry.school_class_id, "points": str(entry.points)}
    entry.delete()
    models.AuditLog.objects.create(action="points.custom_deleted", actor_id=actor_id, payload=payload)


def _decimal_sum(expression: str, condition: Q) -> Coalesce:
    field = DecimalField(max_digits=12, decimal_places=2)
    return Coalesce(Sum(expression, filter=condition), Value(ZERO), output_field=field)


def _rank_summaries(rows: list) -> list:
    ranked = competition_ranks(rows, key=lambda row: row.total_points, descending=True)
    for row, rank in ranked:
        row.rank = rank
    return [row for row, _rank in ranked]


def class_points_summary(meet: models.Meet) -> list[ClassPointsSummary]:
    """Every class with its totals for the meet, ranked by total points."""

    in_meet = Q(points_entries__meet=meet)
    ranking = in_meet & Q(points_entries__point_type=models.PointsEntry.PointType.RANKING)
    custom = in_meet & Q(points_entries__point_type=models.PointsEntry.PointType.CUSTOM)
    queryset = (
        models.SchoolClass.objects.annotate(
            total=_decimal_sum("points_entries__points", in_meet),
            ranking_total=_decimal_sum("points_entries__points", ranking),
            custom_total=_decimal_sum("points_entries__points", custom),
        )
        .order_by("pk")
    )
    rows = [
        ClassPointsSummary(
            class_id=school_class.pk,
            class_name=school_class.name,
            total_points=school_class.total,
            ranking_points=school_class.ranking_total,
            custom_points=school_class.custom_total,
        )
        for school_class in queryset
    ]
    return _rank_summaries(rows)


def student_points_summary(meet: models.Meet) -> list[StudentPointsSummary]:
    """Students who scored in the meet, ranked by total points."""

    in_meet = Q(points_entries__meet=meet)
    ranking = in_meet & Q(points_entries__point_type=models.PointsEntry.PointType.RANKING)
    queryset = (
        models.Student.objects.select_related("school_class")
        .annotate(
            total=_decimal_sum("points_entries__points", in_meet),
            ranking_total=_decimal_sum("points_entries__points", ranking),
        )
        .filter(total__gt=0)
        .order_by("pk")
    )
    rows = [
        StudentPointsSummary(
            student_id=student.pk,
            student_name=student.full_name,
            class_id=student.school_class_id,
            class_name=student.school_class.name,
            total_points=student.total,
            ranking_points=student.ranking_total,
        )
        for student in queryset
    ]
    return _rank_summaries(rows)


def class_summary(meet: models.Meet, class_id: int) -> ClassPointsSummary:
    for row in class_points_summary(meet):
        if row.class_id == class_id:
            return row
    raise models.SchoolClass.DoesNotExist(f"Class {class_id} not found.")


def student_summary(meet: models.Meet, student_id: int) -> StudentPointsSummary | None:
    """Return the student's standing, or ``None`` when they have not scored yet."""

    if not models.Student.objects.filter(pk=student_id).exists():
        raise models.Student.DoesNotExist(f"Student {student_id} not found.")
    for row in student_points_summary(meet):
        if row.student_id == student_id:
            return row
    return None


def _top(rows: list, limit: int) -> list:
    """First ``limit`` rows plus any rows tied with the last of them."""

    if limit <= 0 or not rows:
        return []
    if len(rows) <= limit:
        return list(rows)
    cutoff = rows[limit - 1].rank
    return [row for idx, row in enumerate(rows) if idx < limit or row.rank == cutoff]


def top_classes(meet: models.Meet, limit: int) -> list[ClassPointsSummary]:
    return _top(class_points_summary(meet), limit)


def top_students(meet: models.Meet, limit: int) -> list[StudentPointsSummary]:
    return _top(student_points_summary(meet), limit)


def _detail(entry: models.PointsEntry) -> PointDetail:
    competition = entry.competition
    return PointDetail(
        id=entry.pk,
        competition_id=entry.competition_id,
        competition_name=competition.name if competition else CUSTOM_POINTS_LABEL,
        competition_type=(
            competition.competition_type if competition else models.Competition.CompetitionType.TEAM
        ),
        points=entry.points,
        point_type=entry.point_type,
        ranking=entry.ranking,
        reason=entry.reason,
        created_by=entry.created_by,
        created_at=entry.created_at,
    )


def class_point_details(meet: models.Meet, school_class: models.SchoolClass) -> list[PointDetail]:
    entries = (
        models.PointsEntry.objects.filter(meet=meet, school_class=school_class)
        .select_related("competition")
        .order_by("-created_at", "-pk")
    )
    return [_detail(entry) for entry in entries]


def student_point_details(meet: models.Meet, student: models.Student) -> list[PointDetail]:
    entries = (
        models.PointsEntry.objects.filter(meet=meet, student=student)
        .select_related("competition")
        .order_by("-created_at", "-pk")
    )
    return [_detail(entry) for entry in entries]
