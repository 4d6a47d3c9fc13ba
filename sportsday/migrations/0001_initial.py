import django.core.validators
import django.db.models.deletion
import django.db.models.expressions
import sportsday.models
from decimal import Decimal
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("ts", models.DateTimeField(auto_now_add=True)),
                ("action", models.CharField(max_length=64)),
                ("actor_id", models.PositiveIntegerField(blank=True, null=True)),
                ("payload", models.JSONField(blank=True, default=dict)),
            ],
            options={
                "ordering": ("-ts",),
            },
        ),
        migrations.CreateModel(
            name="Meet",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=120, unique=True)),
                ("date", models.DateField(blank=True, null=True)),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ("-id",),
            },
        ),
        migrations.CreateModel(
            name="SchoolClass",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=64, unique=True)),
                ("grade", models.CharField(blank=True, max_length=10)),
            ],
            options={
                "verbose_name_plural": "school classes",
                "ordering": ("name",),
            },
        ),
        migrations.CreateModel(
            name="Competition",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=120)),
                ("description", models.TextField(blank=True)),
                ("unit", models.CharField(default="points", max_length=16)),
                (
                    "gender_limit",
                    models.CharField(
                        choices=[("M", "Male"), ("F", "Female"), ("X", "Mixed/Open")],
                        default="X",
                        max_length=1,
                    ),
                ),
                (
                    "competition_type",
                    models.CharField(
                        choices=[("individual", "Individual"), ("team", "Team")],
                        default="individual",
                        max_length=12,
                    ),
                ),
                (
                    "ranking_mode",
                    models.CharField(
                        choices=[
                            ("higher_first", "Higher score ranks first"),
                            ("lower_first", "Lower score ranks first"),
                        ],
                        default="higher_first",
                        max_length=12,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending_approval", "Pending approval"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                            ("pending_score_review", "Pending score review"),
                            ("completed", "Completed"),
                        ],
                        default="pending_approval",
                        max_length=24,
                    ),
                ),
                ("min_participants_per_class", models.PositiveIntegerField(default=0)),
                ("max_participants_per_class", models.PositiveIntegerField(default=0)),
                ("start_time", models.DateTimeField(blank=True, null=True)),
                ("end_time", models.DateTimeField(blank=True, null=True)),
                ("submitter_id", models.PositiveIntegerField(blank=True, null=True)),
                ("reviewer_id", models.PositiveIntegerField(blank=True, null=True)),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("score_submitter_id", models.PositiveIntegerField(blank=True, null=True)),
                ("score_created_at", models.DateTimeField(blank=True, null=True)),
                ("score_reviewer_id", models.PositiveIntegerField(blank=True, null=True)),
                ("score_reviewed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "meet",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="competitions",
                        to="sportsday.meet",
                    ),
                ),
            ],
            options={
                "ordering": (
                    django.db.models.expressions.OrderBy(
                        django.db.models.expressions.F("start_time"), nulls_last=True
                    ),
                    "pk",
                ),
                "constraints": [
                    models.UniqueConstraint(fields=("meet", "name"), name="unique_competition_name_per_meet"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Student",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("external_id", models.CharField(blank=True, max_length=64)),
                ("first_name", models.CharField(max_length=80)),
                ("last_name", models.CharField(blank=True, max_length=80)),
                ("gender", models.CharField(choices=[("M", "Male"), ("F", "Female")], max_length=1)),
                (
                    "school_class",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="students",
                        to="sportsday.schoolclass",
                    ),
                ),
            ],
            options={
                "ordering": ("last_name", "first_name"),
            },
        ),
        migrations.CreateModel(
            name="Registration",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "competition",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="registrations",
                        to="sportsday.competition",
                    ),
                ),
                (
                    "school_class",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="registrations",
                        to="sportsday.schoolclass",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="registrations",
                        to="sportsday.student",
                    ),
                ),
            ],
            options={
                "ordering": ("competition", "pk"),
                "constraints": [
                    models.UniqueConstraint(
                        fields=("student", "competition"), name="unique_registration_per_student"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Score",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("value", models.DecimalField(decimal_places=3, max_digits=12)),
                ("ranking", models.PositiveIntegerField(default=0)),
                ("point", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=8)),
                (
                    "competition",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="scores",
                        to="sportsday.competition",
                    ),
                ),
                (
                    "school_class",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="scores",
                        to="sportsday.schoolclass",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="scores",
                        to="sportsday.student",
                    ),
                ),
            ],
            options={
                "ordering": ("competition", "ranking", "pk"),
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("school_class__isnull", True), ("student__isnull", False)),
                            models.Q(("school_class__isnull", False), ("student__isnull", True)),
                            _connector="OR",
                        ),
                        name="score_has_single_participant",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("student__isnull", False)),
                        fields=("competition", "student"),
                        name="unique_score_per_student",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("school_class__isnull", False)),
                        fields=("competition", "school_class"),
                        name="unique_score_per_class",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PointsEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("points", models.DecimalField(decimal_places=2, max_digits=8)),
                (
                    "point_type",
                    models.CharField(choices=[("ranking", "Ranking"), ("custom", "Custom")], max_length=8),
                ),
                (
                    "ranking",
                    models.PositiveIntegerField(
                        blank=True, null=True, validators=[django.core.validators.MinValueValidator(1)]
                    ),
                ),
                ("reason", models.TextField(blank=True)),
                ("created_by", models.PositiveIntegerField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "competition",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="points_entries",
                        to="sportsday.competition",
                    ),
                ),
                (
                    "meet",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="points_entries",
                        to="sportsday.meet",
                    ),
                ),
                (
                    "school_class",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="points_entries",
                        to="sportsday.schoolclass",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="points_entries",
                        to="sportsday.student",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "points entries",
                "ordering": ("-created_at", "-pk"),
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("school_class__isnull", True), ("student__isnull", False)),
                            models.Q(("school_class__isnull", False), ("student__isnull", True)),
                            _connector="OR",
                        ),
                        name="points_entry_has_single_owner",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("competition__isnull", False), ("point_type", "ranking")),
                            models.Q(("competition__isnull", True), ("point_type", "custom")),
                            _connector="OR",
                        ),
                        name="points_entry_scope_matches_type",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ScoringSettings",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("team_points_mapping", models.JSONField(default=sportsday.models.default_team_points_mapping)),
                (
                    "individual_points_mapping",
                    models.JSONField(default=sportsday.models.default_individual_points_mapping),
                ),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "current_meet",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="sportsday.meet",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "scoring settings",
            },
        ),
    ]
