"""Competition and meet management for the Sports Day app."""

from __future__ import annotations

import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.forms.models import model_to_dict
from django.utils import timezone

from . import forms, lifecycle, models, recalculation
from .lifecycle import Transition

logger = logging.getLogger(__name__)

RECALCULATION_FIELDS = ("ranking_mode", "competition_type")

__all__ = [
    "current_meet",
    "set_current_meet",
    "create_meet",
    "rename_meet",
    "delete_meet",
    "create_competition",
    "admin_create_competition",
    "approve_competition",
    "reject_competition",
    "update_competition",
    "delete_competition",
    "register_student",
    "update_scoring_settings",
    "seed_demo_meet",
]


def _raise_form_errors(form) -> None:
    if not form.is_valid():
        raise ValidationError(form.errors.as_data())


def current_meet() -> models.Meet | None:
    return models.ScoringSettings.load().current_meet


@transaction.atomic
def set_current_meet(meet: models.Meet, *, actor_id: int | None = None) -> models.ScoringSettings:
    scoring = models.ScoringSettings.load()
    scoring.current_meet = meet
    scoring.save(update_fields=["current_meet", "updated_at"])
    models.AuditLog.objects.create(action="meet.set_current", actor_id=actor_id, payload={"meet_id": meet.pk})
    return scoring


@transaction.atomic
def create_meet(data: dict, *, actor_id: int | None = None) -> models.Meet:
    form = forms.MeetForm(data=data)
    _raise_form_errors(form)
    meet = form.save()
    models.AuditLog.objects.create(action="meet.created", actor_id=actor_id, payload={"meet_id": meet.pk})
    return meet


@transaction.atomic
def rename_meet(meet_id: int, name: str, *, actor_id: int | None = None) -> models.Meet:
    meet = models.Meet.objects.select_for_update().get(pk=meet_id)
    data = model_to_dict(meet, fields=("name", "date", "notes"))
    data["name"] = name
    form = forms.MeetForm(data=data, instance=meet)
    _raise_form_errors(form)
    meet = form.save()
    models.AuditLog.objects.create(
        action="meet.renamed", actor_id=actor_id, payload={"meet_id": meet.pk, "name": meet.name}
    )
    return meet


@transaction.atomic
def delete_meet(meet_id: int, *, actor_id: int | None = None) -> None:
    """Delete an unused meet; the current meet and meets with competitions are kept."""

    meet = models.Meet.objects.select_for_update().get(pk=meet_id)
    scoring = models.ScoringSettings.load()
    if scoring.current_meet_id == meet.pk:
        raise ValidationError("The current meet cannot be deleted.", code="current_meet")
    if meet.competitions.exists():
        raise ValidationError("Delete the meet's competitions first.", code="has_competitions")
    meet.delete()
    models.AuditLog.objects.create(action="meet.deleted", actor_id=actor_id, payload={"meet_id": meet_id})


@transaction.atomic
def create_competition(meet: models.Meet, data: dict, *, submitter_id: int | None) -> models.Competition:
    """Propose a competition; it waits for an administrator's approval."""

    form = forms.CompetitionForm(data=data, meet=meet)
    _raise_form_errors(form)
    competition = form.save(commit=False)
    competition.status = models.Competition.Status.PENDING_APPROVAL
    competition.submitter_id = submitter_id
    competition.save()
    models.AuditLog.objects.create(
        action="competition.created",
        actor_id=submitter_id,
        payload={"competition_id": competition.pk, "meet_id": meet.pk},
    )
    return competition


@transaction.atomic
def admin_create_competition(meet: models.Meet, data: dict, *, admin_id: int | None) -> models.Competition:
    """Create a competition that is approved straight away by ``admin_id``."""

    form = forms.CompetitionForm(data=data, meet=meet)
    _raise_form_errors(form)
    competition = form.save(commit=False)
    competition.status = models.Competition.Status.APPROVED
    competition.submitter_id = admin_id
    competition.reviewer_id = admin_id
    competition.reviewed_at = timezone.now()
    competition.save()
    models.AuditLog.objects.create(
        action="competition.admin_created",
        actor_id=admin_id,
        payload={"competition_id": competition.pk, "meet_id": meet.pk},
    )
    logger.info("competition %s created and approved by %s", competition.pk, admin_id)
    return competition


@transaction.atomic
def approve_competition(competition_id: int, *, reviewer_id: int | None) -> models.Competition:
    competition = models.Competition.objects.select_for_update().get(pk=competition_id)
    return lifecycle.apply_transition(competition, Transition.APPROVE, actor_id=reviewer_id)


@transaction.atomic
def reject_competition(competition_id: int, *, reviewer_id: int | None) -> models.Competition:
    competition = models.Competition.objects.select_for_update().get(pk=competition_id)
    return lifecycle.apply_transition(competition, Transition.REJECT, actor_id=reviewer_id)


def update_competition(
    competition_id: int, changes: dict, *, actor_id: int | None = None
) -> models.Competition:
    """Edit competition metadata; a new ranking mode or type re-ranks the scores."""

    def unit() -> models.Competition:
        with transaction.atomic():
            competition = models.Competition.objects.select_for_update().get(pk=competition_id)
            before = {field: getattr(competition, field) for field in RECALCULATION_FIELDS}
            data = model_to_dict(competition, fields=forms.CompetitionForm._meta.fields)
            data.update(changes)
            form = forms.CompetitionForm(data=data, instance=competition, meet=competition.meet)
            _raise_form_errors(form)
            competition = form.save()
            changed = [field for field in RECALCULATION_FIELDS if getattr(competition, field) != before[field]]
            models.AuditLog.objects.create(
                action="competition.updated",
                actor_id=actor_id,
                payload={"competition_id": competition.pk, "changed": sorted(form.changed_data)},
            )
            if changed:
                recalculation.recalculate_locked(competition)
                logger.info("competition %s recalculated after %s changed", competition.pk, ", ".join(changed))
            return competition

    return recalculation.run_with_retry(unit, label=f"update competition {competition_id}")


@transaction.atomic
def delete_competition(competition_id: int, *, actor_id: int | None = None) -> None:
    """Delete a competition with its registrations, scores and ledger rows."""

    competition = models.Competition.objects.select_for_update().get(pk=competition_id)
    payload = {"competition_id": competition.pk, "meet_id": competition.meet_id, "name": competition.name}
    competition.delete()
    models.AuditLog.objects.create(action="competition.deleted", actor_id=actor_id, payload=payload)


@transaction.atomic
def register_student(competition: models.Competition, student: models.Student) -> models.Registration:
    """Register ``student`` for ``competition`` on behalf of their class."""

    if competition.status == models.Competition.Status.REJECTED:
        raise ValidationError("Cannot register for a rejected competition.", code="rejected")
    if not competition.gender_allows(student.gender):
        raise ValidationError(
            "%(student)s is not eligible for %(competition)s.",
            code="gender_limit",
            params={"student": student.full_name, "competition": competition.name},
        )
    if models.Registration.objects.filter(competition=competition, student=student).exists():
        raise ValidationError("Student is already registered.", code="duplicate")
    limit = competition.max_participants_per_class
    if limit:
        taken = models.Registration.objects.filter(
            competition=competition, school_class_id=student.school_class_id
        ).count()
        if taken >= limit:
            raise ValidationError(
                "Class %(class)s already has %(limit)d participants.",
                code="class_full",
                params={"class": student.school_class.name, "limit": limit},
            )
    return models.Registration.objects.create(
        competition=competition, student=student, school_class_id=student.school_class_id
    )


def update_scoring_settings(data: dict, *, actor_id: int | None = None) -> models.ScoringSettings:
    """Replace the points tables and recalculate every scored competition."""

    with transaction.atomic():
        scoring = models.ScoringSettings.load()
        payload = model_to_dict(scoring, fields=forms.ScoringSettingsForm._meta.fields)
        payload.update(data)
        form = forms.ScoringSettingsForm(data=payload, instance=scoring)
        _raise_form_errors(form)
        scoring = form.save()
        models.AuditLog.objects.create(
            action="scoring.updated",
            actor_id=actor_id,
            payload={
                "team_points_mapping": scoring.team_points_mapping,
                "individual_points_mapping": scoring.individual_points_mapping,
            },
        )
    recalculated = recalculation.recalculate_scored_competitions()
    logger.info("points tables updated by %s; %d competitions recalculated", actor_id, len(recalculated))
    return scoring


DEMO_CLASSES = ("7A", "7B", "8A", "8B")
DEMO_STUDENTS = (
    ("Ava", "Chen", "F"),
    ("Ben", "Okafor", "M"),
    ("Chloe", "Singh", "F"),
    ("Dan", "Reyes", "M"),
)


def seed_demo_meet(name: str = "Demo Sports Day") -> models.Meet:
    """Create a small meet with one completed individual and one completed team competition."""

    meet, _ = models.Meet.objects.get_or_create(name=name)
    classes = []
    for label in DEMO_CLASSES:
        school_class, _ = models.SchoolClass.objects.get_or_create(name=label, defaults={"grade": label[:-1]})
        classes.append(school_class)
    students = []
    for school_class in classes:
        for first_name, last_name, gender in DEMO_STUDENTS:
            student, _ = models.Student.objects.get_or_create(
                first_name=first_name,
                last_name=f"{last_name}-{school_class.name}",
                school_class=school_class,
                defaults={"gender": gender},
            )
            students.append(student)
    set_current_meet(meet)
    if meet.competitions.exists():
        return meet

    sprint = admin_create_competition(
        meet,
        {
            "name": "100m",
            "unit": "s",
            "competition_type": "individual",
            "ranking_mode": "lower_first",
            "gender_limit": "X",
            "min_participants_per_class": 0,
            "max_participants_per_class": 2,
        },
        admin_id=None,
    )
    relay = admin_create_competition(
        meet,
        {
            "name": "4x100m relay",
            "unit": "s",
            "competition_type": "team",
            "ranking_mode": "lower_first",
            "gender_limit": "X",
            "min_participants_per_class": 0,
            "max_participants_per_class": 4,
        },
        admin_id=None,
    )
    sprint_rows = []
    for offset, student in enumerate(students[::4]):
        register_student(sprint, student)
        sprint_rows.append(recalculation.ScoreInput(value=f"{12.5 + offset * 0.3:.2f}", student_id=student.pk))
    relay_rows = []
    for offset, school_class in enumerate(classes):
        for student in school_class.students.all()[:4]:
            register_student(relay, student)
        relay_rows.append(recalculation.ScoreInput(value=f"{52.0 + offset:.2f}", class_id=school_class.pk))

    for competition, rows in ((sprint, sprint_rows), (relay, relay_rows)):
        recalculation.submit_scores(competition.pk, rows, submitter_id=None)
        recalculation.review_scores(competition.pk, reviewer_id=None)
    logger.info("demo meet %s seeded", meet.pk)
    return meet
