"""Small builders shared by the sportsday test modules."""

from __future__ import annotations

from itertools import count

from sportsday import models

_sequence = count(1)

Status = models.Competition.Status
CompetitionType = models.Competition.CompetitionType
RankingMode = models.Competition.RankingMode


def make_meet(name: str | None = None) -> models.Meet:
    return models.Meet.objects.create(name=name or f"Meet {next(_sequence)}")


def make_class(name: str | None = None) -> models.SchoolClass:
    return models.SchoolClass.objects.create(name=name or f"Class {next(_sequence)}")


def make_student(school_class: models.SchoolClass, first_name: str | None = None, **extra) -> models.Student:
    extra.setdefault("gender", models.Student.Gender.FEMALE)
    return models.Student.objects.create(
        first_name=first_name or f"Student{next(_sequence)}",
        last_name=extra.pop("last_name", ""),
        school_class=school_class,
        **extra,
    )


def make_competition(meet: models.Meet, **fields) -> models.Competition:
    fields.setdefault("name", f"Competition {next(_sequence)}")
    fields.setdefault("status", Status.APPROVED)
    fields.setdefault("competition_type", CompetitionType.INDIVIDUAL)
    fields.setdefault("ranking_mode", RankingMode.HIGHER_FIRST)
    return models.Competition.objects.create(meet=meet, **fields)


def register(competition: models.Competition, *students: models.Student) -> None:
    for student in students:
        models.Registration.objects.create(competition=competition, student=student)


def set_mappings(team: dict | None = None, individual: dict | None = None) -> models.ScoringSettings:
    scoring = models.ScoringSettings.load()
    if team is not None:
        scoring.team_points_mapping = team
    if individual is not None:
        scoring.individual_points_mapping = individual
    scoring.save()
    return scoring
