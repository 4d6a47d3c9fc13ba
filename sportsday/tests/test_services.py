import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "meet_platform.settings")

import django

django.setup()

from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.test import TestCase

from sportsday import models, services
from sportsday.lifecycle import InvalidTransition

from .factories import Status, make_class, make_competition, make_meet, make_student


def competition_data(**overrides):
    data = {
        "name": "High jump",
        "description": "",
        "unit": "m",
        "gender_limit": "X",
        "competition_type": "individual",
        "ranking_mode": "higher_first",
        "min_participants_per_class": 0,
        "max_participants_per_class": 2,
    }
    data.update(overrides)
    return data


class CompetitionManagementTests(TestCase):
    def setUp(self):
        self.meet = make_meet("Spring Meet")

    def test_create_competition_waits_for_approval(self):
        competition = services.create_competition(self.meet, competition_data(), submitter_id=12)

        self.assertEqual(competition.status, Status.PENDING_APPROVAL)
        self.assertEqual(competition.submitter_id, 12)
        self.assertEqual(competition.meet, self.meet)
        self.assertIsNone(competition.reviewer_id)

    def test_admin_create_is_approved_with_reviewer(self):
        competition = services.admin_create_competition(self.meet, competition_data(), admin_id=1)

        self.assertEqual(competition.status, Status.APPROVED)
        self.assertEqual(competition.reviewer_id, 1)
        self.assertIsNotNone(competition.reviewed_at)
        self.assertTrue(models.AuditLog.objects.filter(action="competition.admin_created").exists())

    def test_blank_unit_defaults_to_points(self):
        competition = services.create_competition(self.meet, competition_data(unit=""), submitter_id=1)
        self.assertEqual(competition.unit, "points")

    def test_invalid_metadata_is_rejected_before_writing(self):
        invalid = (
            competition_data(ranking_mode="fastest"),
            competition_data(min_participants_per_class=3, max_participants_per_class=2),
            competition_data(start_time="2025-05-01 10:00", end_time="2025-05-01 09:00"),
            competition_data(name="  "),
        )
        for data in invalid:
            with self.assertRaises(ValidationError):
                services.create_competition(self.meet, data, submitter_id=1)
        self.assertFalse(models.Competition.objects.exists())

    def test_names_are_unique_within_a_meet_only(self):
        services.create_competition(self.meet, competition_data(), submitter_id=1)
        with self.assertRaises(ValidationError) as ctx:
            services.create_competition(self.meet, competition_data(), submitter_id=1)
        self.assertIn("name", ctx.exception.message_dict)

        services.create_competition(make_meet(), competition_data(), submitter_id=1)

    def test_approve_and_reject_only_from_pending(self):
        first = services.create_competition(self.meet, competition_data(name="A"), submitter_id=1)
        second = services.create_competition(self.meet, competition_data(name="B"), submitter_id=1)

        self.assertEqual(services.approve_competition(first.pk, reviewer_id=2).status, Status.APPROVED)
        self.assertEqual(services.reject_competition(second.pk, reviewer_id=2).status, Status.REJECTED)
        with self.assertRaises(InvalidTransition):
            services.approve_competition(first.pk, reviewer_id=2)

    def test_update_rejects_invalid_changes(self):
        competition = services.admin_create_competition(self.meet, competition_data(), admin_id=1)
        services.admin_create_competition(self.meet, competition_data(name="Taken"), admin_id=1)

        with self.assertRaises(ValidationError):
            services.update_competition(competition.pk, {"name": "Taken"}, actor_id=1)
        with self.assertRaises(ValidationError):
            services.update_competition(
                competition.pk, {"max_participants_per_class": 1, "min_participants_per_class": 4}
            )

        updated = services.update_competition(competition.pk, {"unit": "cm"}, actor_id=1)
        self.assertEqual(updated.unit, "cm")
        self.assertEqual(updated.status, Status.APPROVED)

    def test_delete_competition_cascades(self):
        competition = make_competition(self.meet)
        student = make_student(make_class())
        services.register_student(competition, student)
        models.Score.objects.create(competition=competition, student=student, value=1)

        services.delete_competition(competition.pk, actor_id=1)

        self.assertFalse(models.Competition.objects.filter(pk=competition.pk).exists())
        self.assertFalse(models.Registration.objects.exists())
        self.assertFalse(models.Score.objects.exists())
        with self.assertRaises(models.Competition.DoesNotExist):
            services.delete_competition(competition.pk)


class RegistrationTests(TestCase):
    def setUp(self):
        self.meet = make_meet()
        self.school_class = make_class()

    def test_registration_resolves_the_class(self):
        competition = make_competition(self.meet)
        student = make_student(self.school_class)

        registration = services.register_student(competition, student)

        self.assertEqual(registration.school_class, self.school_class)
        with self.assertRaises(ValidationError):
            services.register_student(competition, student)

    def test_gender_limit_and_class_quota(self):
        girls_only = make_competition(self.meet, gender_limit=models.Competition.GenderLimit.FEMALE)
        with self.assertRaises(ValidationError):
            services.register_student(girls_only, make_student(self.school_class, gender="M"))

        limited = make_competition(self.meet, max_participants_per_class=1)
        services.register_student(limited, make_student(self.school_class))
        with self.assertRaises(ValidationError) as ctx:
            services.register_student(limited, make_student(self.school_class))
        self.assertEqual(ctx.exception.code, "class_full")


class MeetManagementTests(TestCase):
    def test_create_and_rename(self):
        meet = services.create_meet({"name": "Autumn Carnival", "notes": ""})
        services.create_meet({"name": "Winter Games", "notes": ""})

        self.assertEqual(services.rename_meet(meet.pk, "Autumn Games").name, "Autumn Games")
        with self.assertRaises(ValidationError):
            services.rename_meet(meet.pk, "Winter Games")
        with self.assertRaises(ValidationError):
            services.create_meet({"name": "Autumn Games", "notes": ""})

    def test_current_meet_round_trip(self):
        meet = make_meet()
        services.set_current_meet(meet, actor_id=1)
        self.assertEqual(services.current_meet(), meet)

    def test_delete_meet_guards(self):
        current, busy, spare = make_meet(), make_meet(), make_meet()
        services.set_current_meet(current)
        make_competition(busy)

        with self.assertRaises(ValidationError) as ctx:
            services.delete_meet(current.pk)
        self.assertEqual(ctx.exception.code, "current_meet")
        with self.assertRaises(ValidationError) as ctx:
            services.delete_meet(busy.pk)
        self.assertEqual(ctx.exception.code, "has_competitions")

        services.delete_meet(spare.pk)
        self.assertFalse(models.Meet.objects.filter(pk=spare.pk).exists())


class ScoringSettingsTests(TestCase):
    def test_invalid_mappings_are_rejected(self):
        for mapping in ({"0": 5}, {"first": 5}, {"1": -1}, {"1": "many"}, [1, 2]):
            with self.assertRaises(ValidationError):
                services.update_scoring_settings({"team_points_mapping": mapping})

    def test_valid_mapping_is_normalised_and_saved(self):
        scoring = services.update_scoring_settings({"team_points_mapping": {1: 9, "02": 6.5}}, actor_id=3)

        scoring.refresh_from_db()
        self.assertEqual(scoring.team_points_mapping, {"1": 9, "2": 6.5})

    def test_oversized_points_leave_settings_untouched(self):
        before = models.ScoringSettings.load().individual_points_mapping

        for mapping in ({"1": 1000000}, {"1": 2.125}):
            with self.assertRaises(ValidationError):
                services.update_scoring_settings({"individual_points_mapping": mapping}, actor_id=1)

        self.assertEqual(models.ScoringSettings.load().individual_points_mapping, before)


class DemoDataTests(TestCase):
    def test_demo_meet_is_scored_and_idempotent(self):
        call_command("sportsday_demo_data", "--no-output")
        call_command("sportsday_demo_data", "--no-output")

        meet = models.Meet.objects.get(name="Demo Sports Day")
        self.assertEqual(services.current_meet(), meet)
        self.assertEqual(meet.competitions.filter(status=Status.COMPLETED).count(), 2)
        self.assertTrue(models.PointsEntry.objects.filter(meet=meet).exists())
