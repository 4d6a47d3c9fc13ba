"""Serializers for the payloads the scoring engine produces."""

from __future__ import annotations

from rest_framework import serializers

from .models import Competition, Score


class CompetitionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Competition
        fields = [
            "id",
            "meet",
            "name",
            "description",
            "unit",
            "gender_limit",
            "competition_type",
            "ranking_mode",
            "status",
            "min_participants_per_class",
            "max_participants_per_class",
            "start_time",
            "end_time",
            "submitter_id",
            "reviewer_id",
            "reviewed_at",
            "score_submitter_id",
            "score_created_at",
            "score_reviewer_id",
            "score_reviewed_at",
        ]


class ScoreSerializer(serializers.ModelSerializer):
    participant_name = serializers.CharField(read_only=True)
    class_id = serializers.IntegerField(source="school_class_id", read_only=True)

    class Meta:
        model = Score
        fields = ["id", "competition", "student", "class_id", "participant_name", "value", "ranking", "point"]


class PointDetailSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    competition_id = serializers.IntegerField(allow_null=True)
    competition_name = serializers.CharField()
    competition_type = serializers.CharField()
    points = serializers.DecimalField(max_digits=8, decimal_places=2)
    point_type = serializers.CharField()
    ranking = serializers.IntegerField(allow_null=True)
    reason = serializers.CharField(allow_blank=True)
    created_by = serializers.IntegerField(allow_null=True)
    created_at = serializers.DateTimeField()


class ClassPointsSummarySerializer(serializers.Serializer):
    class_id = serializers.IntegerField()
    class_name = serializers.CharField()
    total_points = serializers.DecimalField(max_digits=12, decimal_places=2)
    ranking_points = serializers.DecimalField(max_digits=12, decimal_places=2)
    custom_points = serializers.DecimalField(max_digits=12, decimal_places=2)
    rank = serializers.IntegerField()


class StudentPointsSummarySerializer(serializers.Serializer):
    student_id = serializers.IntegerField()
    student_name = serializers.CharField()
    class_id = serializers.IntegerField()
    class_name = serializers.CharField()
    total_points = serializers.DecimalField(max_digits=12, decimal_places=2)
    ranking_points = serializers.DecimalField(max_digits=12, decimal_places=2)
    rank = serializers.IntegerField()


class StatisticsSerializer(serializers.Serializer):
    """Dashboard snapshot for one meet."""

    meet_id = serializers.IntegerField()
    latest_competition = CompetitionSerializer(allow_null=True)
    latest_scores = ScoreSerializer(many=True)
    completed_count = serializers.IntegerField()
    remaining_count = serializers.IntegerField()
    top_classes = ClassPointsSummarySerializer(many=True)
    top_students = StudentPointsSummarySerializer(many=True)
