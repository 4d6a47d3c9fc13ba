"""Tests for the score submission and recalculation cascade."""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from unittest import mock

from django.core.exceptions import ValidationError
from django.db import OperationalError
from django.test import TestCase, override_settings

from sportsday import models, recalculation, services
from sportsday.lifecycle import InvalidTransition
from sportsday.recalculation import ScoreInput

from .factories import (
    CompetitionType,
    RankingMode,
    Status,
    make_class,
    make_competition,
    make_meet,
    make_student,
    register,
    set_mappings,
)


class ScoreBatchTests(TestCase):
    def setUp(self) -> None:
        set_mappings(individual={"1": 7, "2": 5, "3": 4})
        self.meet = make_meet()
        self.school_class = make_class()
        self.students = [make_student(self.school_class) for _ in range(3)]
        self.competition = make_competition(self.meet)
        register(self.competition, *self.students)

    def rows(self, *values):
        return [ScoreInput(value=value, student_id=student.pk) for student, value in zip(self.students, values)]

    def test_submit_ranks_scores_and_moves_to_review(self) -> None:
        recalculation.submit_scores(self.competition.pk, self.rows("10", "10", "8"), submitter_id=3)

        self.competition.refresh_from_db()
        self.assertEqual(self.competition.status, Status.PENDING_SCORE_REVIEW)
        self.assertEqual(self.competition.score_submitter_id, 3)
        ranks = dict(models.Score.objects.values_list("student_id", "ranking"))
        self.assertEqual([ranks[s.pk] for s in self.students], [1, 1, 3])

    def test_resubmission_overwrites_previous_batch(self) -> None:
        recalculation.submit_scores(self.competition.pk, self.rows("10", "9", "8"), submitter_id=3)
        recalculation.submit_scores(self.competition.pk, self.rows("1", "2"), submitter_id=4)

        self.assertEqual(models.Score.objects.filter(competition=self.competition).count(), 2)
        top = models.Score.objects.get(competition=self.competition, ranking=1)
        self.assertEqual(top.student, self.students[1])

    def test_empty_batch_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            recalculation.submit_scores(self.competition.pk, [], submitter_id=3)

    def test_out_of_range_value_is_rejected(self) -> None:
        for value in ("12345678901", "1.0005e12"):
            with self.assertRaises(ValidationError, msg=value):
                recalculation.submit_scores(self.competition.pk, self.rows(value), submitter_id=3)

        self.competition.refresh_from_db()
        self.assertEqual(self.competition.status, Status.APPROVED)
        self.assertFalse(models.Score.objects.exists())

    def test_unregistered_participant_rejects_the_whole_batch(self) -> None:
        outsider = make_student(self.school_class)
        rows = self.rows("10") + [ScoreInput(value="11", student_id=outsider.pk)]

        with self.assertRaises(ValidationError):
            recalculation.submit_scores(self.competition.pk, rows, submitter_id=3)

        self.assertFalse(models.Score.objects.exists())
        self.competition.refresh_from_db()
        self.assertEqual(self.competition.status, Status.APPROVED)

    def test_duplicate_and_wrong_kind_rows_are_rejected(self) -> None:
        student = self.students[0]
        for rows in (
            [ScoreInput(value="1", student_id=student.pk), ScoreInput(value="2", student_id=student.pk)],
            [ScoreInput(value="1", class_id=self.school_class.pk)],
            [ScoreInput(value="fast", student_id=student.pk)],
        ):
            with self.assertRaises(ValidationError):
                recalculation.submit_scores(self.competition.pk, rows, submitter_id=3)
        self.assertFalse(models.Score.objects.exists())

    def test_cannot_submit_before_approval_or_after_completion(self) -> None:
        pending = make_competition(self.meet, status=Status.PENDING_APPROVAL)
        with self.assertRaises(InvalidTransition):
            recalculation.submit_scores(pending.pk, self.rows("1"), submitter_id=3)

        recalculation.submit_scores(self.competition.pk, self.rows("3", "2", "1"), submitter_id=3)
        recalculation.review_scores(self.competition.pk, reviewer_id=5)
        with self.assertRaises(InvalidTransition):
            recalculation.submit_scores(self.competition.pk, self.rows("1", "2", "3"), submitter_id=3)

    def test_missing_competition_raises_does_not_exist(self) -> None:
        with self.assertRaises(models.Competition.DoesNotExist):
            recalculation.submit_scores(999_999, self.rows("1"), submitter_id=3)

    def test_team_batch_requires_registered_classes(self) -> None:
        team = make_competition(self.meet, competition_type=CompetitionType.TEAM)
        other_class = make_class()
        register(team, self.students[0])

        with self.assertRaises(ValidationError):
            recalculation.submit_scores(
                team.pk,
                [ScoreInput(value="1", class_id=self.school_class.pk), ScoreInput(value="2", class_id=other_class.pk)],
                submitter_id=3,
            )
        recalculation.submit_scores(team.pk, [ScoreInput(value="1", class_id=self.school_class.pk)], submitter_id=3)
        self.assertEqual(models.Score.objects.get(competition=team).school_class, self.school_class)


class CascadeTests(TestCase):
    def setUp(self) -> None:
        set_mappings(individual={"1": 7, "2": 5})
        self.meet = make_meet()
        self.school_class = make_class()
        self.first = make_student(self.school_class)
        self.second = make_student(self.school_class)
        self.competition = make_competition(self.meet)
        register(self.competition, self.first, self.second)
        recalculation.submit_scores(
            self.competition.pk,
            [ScoreInput(value="12", student_id=self.first.pk), ScoreInput(value="11", student_id=self.second.pk)],
            submitter_id=1,
        )
        recalculation.review_scores(self.competition.pk, reviewer_id=2)

    def ledger(self):
        return models.PointsEntry.objects.filter(competition=self.competition)

    def test_review_writes_the_ledger(self) -> None:
        self.assertEqual(self.ledger().count(), 4)

    def test_withdrawing_a_completed_competition_clears_everything(self) -> None:
        recalculation.withdraw_scores(self.competition.pk, actor_id=2)

        self.competition.refresh_from_db()
        self.assertEqual(self.competition.status, Status.APPROVED)
        self.assertEqual(self.ledger().count(), 0)
        self.assertFalse(models.Score.objects.filter(competition=self.competition).exists())

    def test_mapping_change_updates_points_but_not_ranks(self) -> None:
        ranks_before = dict(models.Score.objects.values_list("student_id", "ranking"))

        services.update_scoring_settings({"individual_points_mapping": {"1": 10, "2": 8}}, actor_id=1)

        self.assertEqual(dict(models.Score.objects.values_list("student_id", "ranking")), ranks_before)
        self.assertEqual(
            set(self.ledger().filter(student=self.first).values_list("points", flat=True)), {Decimal("10")}
        )
        self.assertEqual(models.Score.objects.get(student=self.second).point, Decimal("8"))

    def test_switching_ranking_mode_reranks(self) -> None:
        services.update_competition(self.competition.pk, {"ranking_mode": RankingMode.LOWER_FIRST}, actor_id=1)

        self.assertEqual(models.Score.objects.get(student=self.second).ranking, 1)
        self.assertEqual(self.ledger().get(student=self.second).points, Decimal("7"))

    def test_metadata_edit_without_ranking_change_keeps_ledger(self) -> None:
        ids_before = set(self.ledger().values_list("pk", flat=True))

        services.update_competition(self.competition.pk, {"description": "Windy"}, actor_id=1)

        self.assertEqual(set(self.ledger().values_list("pk", flat=True)), ids_before)

    def test_recalculate_scored_competitions_skips_unscored(self) -> None:
        make_competition(self.meet)
        self.assertEqual(recalculation.recalculate_scored_competitions(self.meet), [self.competition.pk])

    def test_failed_recalculation_leaves_the_previous_state(self) -> None:
        ranks_before = dict(models.Score.objects.values_list("student_id", "ranking"))
        previews_before = dict(models.Score.objects.values_list("student_id", "point"))
        ledger_before = sorted(self.ledger().values_list("pk", "points"))
        models.Score.objects.filter(student=self.first).update(value=Decimal("1"))

        with mock.patch("sportsday.points.recalculate_points", side_effect=RuntimeError("boom")):
            with self.assertRaises(RuntimeError):
                recalculation.recalculate_competition(self.competition.pk)

        self.competition.refresh_from_db()
        self.assertEqual(self.competition.status, Status.COMPLETED)
        self.assertEqual(dict(models.Score.objects.values_list("student_id", "ranking")), ranks_before)
        self.assertEqual(dict(models.Score.objects.values_list("student_id", "point")), previews_before)
        self.assertEqual(sorted(self.ledger().values_list("pk", "points")), ledger_before)

    def test_failed_review_keeps_the_batch_pending(self) -> None:
        pending = make_competition(self.meet, name="Relay")
        register(pending, self.first, self.second)
        recalculation.submit_scores(
            pending.pk,
            [ScoreInput(value="5", student_id=self.first.pk), ScoreInput(value="6", student_id=self.second.pk)],
            submitter_id=1,
        )

        with mock.patch("sportsday.points.recalculate_points", side_effect=RuntimeError("boom")):
            with self.assertRaises(RuntimeError):
                recalculation.review_scores(pending.pk, reviewer_id=2)

        pending.refresh_from_db()
        self.assertEqual(pending.status, Status.PENDING_SCORE_REVIEW)
        self.assertIsNone(pending.score_reviewer_id)
        self.assertFalse(models.PointsEntry.objects.filter(competition=pending).exists())


@override_settings(SPORTSDAY_WRITE_RETRIES=3, SPORTSDAY_WRITE_RETRY_BACKOFF=0)
class RetryTests(TestCase):
    def outside_transaction(self):
        return mock.patch(
            "sportsday.recalculation.transaction.get_connection",
            return_value=SimpleNamespace(in_atomic_block=False),
        )

    def test_retries_while_database_is_locked(self) -> None:
        func = mock.Mock(side_effect=[OperationalError("database is locked"), OperationalError("database is locked"), 3])

        with self.outside_transaction(), mock.patch("sportsday.recalculation.time.sleep") as sleep:
            self.assertEqual(recalculation.run_with_retry(func), 3)

        self.assertEqual(func.call_count, 3)
        self.assertEqual(sleep.call_count, 2)

    def test_gives_up_after_the_last_attempt(self) -> None:
        func = mock.Mock(side_effect=OperationalError("database is locked"))

        with self.outside_transaction(), mock.patch("sportsday.recalculation.time.sleep"):
            with self.assertRaises(OperationalError):
                recalculation.run_with_retry(func)
        self.assertEqual(func.call_count, 3)

    def test_never_retries_inside_an_outer_transaction(self) -> None:
        func = mock.Mock(side_effect=OperationalError("database is locked"))

        with self.assertRaises(OperationalError):
            recalculation.run_with_retry(func)
        self.assertEqual(func.call_count, 1)

    def test_other_operational_errors_are_not_retried(self) -> None:
        func = mock.Mock(side_effect=OperationalError("no such table: x"))

        with self.outside_transaction():
            with self.assertRaises(OperationalError):
                recalculation.run_with_retry(func)
        self.assertEqual(func.call_count, 1)
