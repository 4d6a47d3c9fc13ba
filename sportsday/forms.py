"""Validation forms for the sportsday scoring engine."""
from __future__ import annotations

from decimal import Decimal

from django import forms

from . import models


class MeetForm(forms.ModelForm):
    """Create or rename a meet."""

    class Meta:
        model = models.Meet
        fields = ("name", "date", "notes")

    def clean_name(self) -> str:
        name = (self.cleaned_data.get("name") or "").strip()
        if not name:
            raise forms.ValidationError("Enter a name for the meet.")
        queryset = models.Meet.objects.filter(name=name)
        if self.instance.pk:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise forms.ValidationError("A meet with this name already exists.", code="duplicate")
        return name


class CompetitionForm(forms.ModelForm):
    """Validates competition metadata before it is created or edited."""

    class Meta:
        model = models.Competition
        fields = (
            "name",
            "description",
            "unit",
            "gender_limit",
            "competition_type",
            "ranking_mode",
            "min_participants_per_class",
            "max_participants_per_class",
            "start_time",
            "end_time",
        )

    def __init__(self, *args, meet: models.Meet, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.meet = meet
        self.fields["unit"].required = False
        for name in ("gender_limit", "competition_type", "ranking_mode"):
            self.fields[name].required = True

    def clean_name(self) -> str:
        name = (self.cleaned_data.get("name") or "").strip()
        if not name:
            raise forms.ValidationError("Enter a name for the competition.")
        queryset = models.Competition.objects.filter(meet=self.meet, name=name)
        if self.instance.pk:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise forms.ValidationError("A competition with this name already exists.", code="duplicate")
        return name

    def clean(self):
        cleaned_data = super().clean()
        minimum = cleaned_data.get("min_participants_per_class") or 0
        maximum = cleaned_data.get("max_participants_per_class") or 0
        if maximum and maximum < minimum:
            self.add_error(
                "max_participants_per_class",
                "Maximum participants per class cannot be below the minimum.",
            )
        start, end = cleaned_data.get("start_time"), cleaned_data.get("end_time")
        if start and end and end < start:
            self.add_error("end_time", "End time cannot be before the start time.")
        if not cleaned_data.get("unit"):
            cleaned_data["unit"] = "points"
        return cleaned_data

    def save(self, commit: bool = True):
        competition: models.Competition = super().save(commit=False)
        competition.meet = self.meet
        if commit:
            competition.save()
        return competition


class PointsMappingField(forms.JSONField):
    """A rank to points table such as ``{"1": 7, "2": 5}``; an empty table awards nothing."""

    def __init__(self, **kwargs) -> None:
        kwargs.setdefault("required", False)
        super().__init__(**kwargs)

    def clean(self, value):
        mapping = super().clean(value)
        if mapping is None:
            return {}
        if not isinstance(mapping, dict):
            raise forms.ValidationError("Points mapping must be an object of rank to points.")
        cleaned: dict[str, float | int] = {}
        for rank, points in mapping.items():
            rank_text = str(rank).strip()
            if not rank_text.isdigit() or int(rank_text) < 1:
                raise forms.ValidationError(
                    "Ranks must be positive whole numbers (got %(rank)r).", params={"rank": rank}
                )
            if isinstance(points, bool) or not isinstance(points, (int, float, str, Decimal)):
                raise forms.ValidationError("Points for rank %(rank)s must be a number.", params={"rank": rank_text})
            try:
                amount = Decimal(str(points))
            except ArithmeticError as exc:
                raise forms.ValidationError(
                    "Points for rank %(rank)s must be a number.", params={"rank": rank_text}
                ) from exc
            if not amount.is_finite() or amount < 0:
                raise forms.ValidationError(
                    "Points for rank %(rank)s cannot be negative.", params={"rank": rank_text}
                )
            try:
                models.POINTS_VALIDATOR(amount)
            except forms.ValidationError as exc:
                raise forms.ValidationError(
                    "Points for rank %(rank)s must fit 6 digits and 2 decimal places.",
                    code="points_precision",
                    params={"rank": rank_text},
                ) from exc
            cleaned[str(int(rank_text))] = int(amount) if amount == amount.to_integral_value() else float(amount)
        return cleaned


class ScoringSettingsForm(forms.ModelForm):
    """Edits the global rank to points tables."""

    team_points_mapping = PointsMappingField()
    individual_points_mapping = PointsMappingField()

    class Meta:
        model = models.ScoringSettings
        fields = ("team_points_mapping", "individual_points_mapping")


class CustomPointsForm(forms.Form):
    """An administrative points adjustment for a class."""

    school_class = forms.ModelChoiceField(queryset=models.SchoolClass.objects.all())
    points = forms.DecimalField(max_digits=8, decimal_places=2)
    reason = forms.CharField(max_length=255)

    def clean_reason(self) -> str:
        reason = (self.cleaned_data.get("reason") or "").strip()
        if not reason:
            raise forms.ValidationError("Give a reason for the adjustment.")
        return reason
