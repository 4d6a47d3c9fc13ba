"""Database models for the Sports Day scoring engine."""
from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.validators import DecimalValidator, MinValueValidator
from django.db import models
from django.db.models import Q


# Column precision of PointsEntry.points / Score.point and of Score.value.
POINTS_VALIDATOR = DecimalValidator(max_digits=8, decimal_places=2)
SCORE_VALUE_VALIDATOR = DecimalValidator(max_digits=12, decimal_places=3)


def default_team_points_mapping() -> dict[str, float]:
    return dict(getattr(settings, "SPORTSDAY_TEAM_POINTS_MAPPING", {}))


def default_individual_points_mapping() -> dict[str, float]:
    return dict(getattr(settings, "SPORTSDAY_INDIVIDUAL_POINTS_MAPPING", {}))


class Meet(models.Model):
    """A sports day edition; every competition and custom point belongs to one."""

    name = models.CharField(max_length=120, unique=True)
    date = models.DateField(blank=True, null=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-id",)

    def __str__(self) -> str:
        return self.name


class SchoolClass(models.Model):
    """A form class; classes collect points from their students and teams."""

    name = models.CharField(max_length=64, unique=True)
    grade = models.CharField(max_length=10, blank=True)

    class Meta:
        ordering = ("name",)
        verbose_name_plural = "school classes"

    def __str__(self) -> str:
        return self.name


class Student(models.Model):
    """Represents a student that can participate in a sports day."""

    class Gender(models.TextChoices):
        MALE = "M", "Male"
        FEMALE = "F", "Female"

    external_id = models.CharField(max_length=64, blank=True)
    first_name = models.CharField(max_length=80)
    last_name = models.CharField(max_length=80, blank=True)
    gender = models.CharField(max_length=1, choices=Gender.choices)
    school_class = models.ForeignKey(SchoolClass, on_delete=models.CASCADE, related_name="students")

    class Meta:
        ordering = ("last_name", "first_name")

    def __str__(self) -> str:
        return self.full_name

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Competition(models.Model):
    """A single competition (event on the programme) within a meet."""

    class Status(models.TextChoices):
        PENDING_APPROVAL = "pending_approval", "Pending approval"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"
        PENDING_SCORE_REVIEW = "pending_score_review", "Pending score review"
        COMPLETED = "completed", "Completed"

    class CompetitionType(models.TextChoices):
        INDIVIDUAL = "individual", "Individual"
        TEAM = "team", "Team"

    class RankingMode(models.TextChoices):
        HIGHER_FIRST = "higher_first", "Higher score ranks first"
        LOWER_FIRST = "lower_first", "Lower score ranks first"

    class GenderLimit(models.TextChoices):
        MALE = "M", "Male"
        FEMALE = "F", "Female"
        MIXED = "X", "Mixed/Open"

    meet = models.ForeignKey(Meet, on_delete=models.CASCADE, related_name="competitions")
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True)
    unit = models.CharField(max_length=16, default="points")
    gender_limit = models.CharField(max_length=1, choices=GenderLimit.choices, default=GenderLimit.MIXED)
    competition_type = models.CharField(
        max_length=12, choices=CompetitionType.choices, default=CompetitionType.INDIVIDUAL
    )
    ranking_mode = models.CharField(max_length=12, choices=RankingMode.choices, default=RankingMode.HIGHER_FIRST)
    status = models.CharField(max_length=24, choices=Status.choices, default=Status.PENDING_APPROVAL)
    min_participants_per_class = models.PositiveIntegerField(default=0)
    max_participants_per_class = models.PositiveIntegerField(default=0)
    start_time = models.DateTimeField(blank=True, null=True)
    end_time = models.DateTimeField(blank=True, null=True)

    # Actor ids come from the identity service and are stored as plain integers.
    submitter_id = models.PositiveIntegerField(blank=True, null=True)
    reviewer_id = models.PositiveIntegerField(blank=True, null=True)
    reviewed_at = models.DateTimeField(blank=True, null=True)
    score_submitter_id = models.PositiveIntegerField(blank=True, null=True)
    score_created_at = models.DateTimeField(blank=True, null=True)
    score_reviewer_id = models.PositiveIntegerField(blank=True, null=True)
    score_reviewed_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        ordering = (models.F("start_time").asc(nulls_last=True), "pk")
        constraints = [
            models.UniqueConstraint(fields=["meet", "name"], name="unique_competition_name_per_meet"),
        ]

    def __str__(self) -> str:
        return f"{self.meet.name}: {self.name}"

    @property
    def is_team(self) -> bool:
        return self.competition_type == self.CompetitionType.TEAM

    def gender_allows(self, gender: str) -> bool:
        if self.gender_limit == self.GenderLimit.MIXED:
            return True
        return (gender or "").upper() == self.gender_limit


class Registration(models.Model):
    """Links a student, and the class they represent, to a competition."""

    competition = models.ForeignKey(Competition, on_delete=models.CASCADE, related_name="registrations")
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="registrations")
    school_class = models.ForeignKey(SchoolClass, on_delete=models.CASCADE, related_name="registrations")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["student", "competition"], name="unique_registration_per_student"),
        ]
        ordering = ("competition", "pk")

    def __str__(self) -> str:
        return f"{self.student} - {self.competition}"

    def save(self, *args, **kwargs):
        if not self.school_class_id and self.student_id:
            self.school_class_id = self.student.school_class_id
        return super().save(*args, **kwargs)


class Score(models.Model):
    """Raw result for one participant; ``ranking`` and ``point`` are derived."""

    competition = models.ForeignKey(Competition, on_delete=models.CASCADE, related_name="scores")
    student = models.ForeignKey(
        Student, on_delete=models.CASCADE, related_name="scores", blank=True, null=True
    )
    school_class = models.ForeignKey(
        SchoolClass, on_delete=models.CASCADE, related_name="scores", blank=True, null=True
    )
    value = models.DecimalField(max_digits=12, decimal_places=3)
    ranking = models.PositiveIntegerField(default=0)
    point = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal("0"))

    class Meta:
        ordering = ("competition", "ranking", "pk")
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(student__isnull=False, school_class__isnull=True)
                    | Q(student__isnull=True, school_class__isnull=False)
                ),
                name="score_has_single_participant",
            ),
            models.UniqueConstraint(
                fields=["competition", "student"],
                condition=Q(student__isnull=False),
                name="unique_score_per_student",
            ),
            models.UniqueConstraint(
                fields=["competition", "school_class"],
                condition=Q(school_class__isnull=False),
                name="unique_score_per_class",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.participant_name} - {self.competition} = {self.value}"

    @property
    def participant_name(self) -> str:
        if self.student_id:
            return str(self.student)
        return str(self.school_class)


class PointsEntry(models.Model):
    """A single ledger line crediting points to a student or a class."""

    class PointType(models.TextChoices):
        RANKING = "ranking", "Ranking"
        CUSTOM = "custom", "Custom"

    meet = models.ForeignKey(Meet, on_delete=models.CASCADE, related_name="points_entries")
    competition = models.ForeignKey(
        Competition, on_delete=models.CASCADE, related_name="points_entries", blank=True, null=True
    )
    student = models.ForeignKey(
        Student, on_delete=models.CASCADE, related_name="points_entries", blank=True, null=True
    )
    school_class = models.ForeignKey(
        SchoolClass, on_delete=models.CASCADE, related_name="points_entries", blank=True, null=True
    )
    points = models.DecimalField(max_digits=8, decimal_places=2)
    point_type = models.CharField(max_length=8, choices=PointType.choices)
    ranking = models.PositiveIntegerField(blank=True, null=True, validators=[MinValueValidator(1)])
    reason = models.TextField(blank=True)
    created_by = models.PositiveIntegerField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at", "-pk")
        verbose_name_plural = "points entries"
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(student__isnull=False, school_class__isnull=True)
                    | Q(student__isnull=True, school_class__isnull=False)
                ),
                name="points_entry_has_single_owner",
            ),
            models.CheckConstraint(
                condition=(
                    Q(point_type="ranking", competition__isnull=False)
                    | Q(point_type="custom", competition__isnull=True)
                ),
                name="points_entry_scope_matches_type",
            ),
        ]

    def __str__(self) -> str:
        owner = self.student if self.student_id else self.school_class
        return f"{owner}: {self.points} ({self.point_type})"

    @property
    def is_custom(self) -> bool:
        return self.point_type == self.PointType.CUSTOM


class ScoringSettings(models.Model):
    """Singleton holding the rank to points tables and the current meet."""

    current_meet = models.ForeignKey(
        Meet, on_delete=models.SET_NULL, related_name="+", blank=True, null=True
    )
    team_points_mapping = models.JSONField(default=default_team_points_mapping)
    individual_points_mapping = models.JSONField(default=default_individual_points_mapping)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "scoring settings"

    def __str__(self) -> str:
        return "Scoring settings"

    @classmethod
    def load(cls) -> "ScoringSettings":
        instance, _ = cls.objects.get_or_create(pk=1)
        return instance

    def mapping_for(self, competition_type: str) -> dict[str, float]:
        if competition_type == Competition.CompetitionType.TEAM:
            return self.team_points_mapping or {}
        return self.individual_points_mapping or {}


class AuditLog(models.Model):
    """Simple audit trail for lifecycle and ledger actions."""

    ts = models.DateTimeField(auto_now_add=True)
    action = models.CharField(max_length=64)
    actor_id = models.PositiveIntegerField(blank=True, null=True)
    payload = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ("-ts",)

    def __str__(self) -> str:
        return f"{self.action} at {self.ts:%Y-%m-%d %H:%M:%S}"
