from django.conf import settings
from django.db import migrations


def seed_scoring_settings(apps, schema_editor):
    ScoringSettings = apps.get_model('sportsday', 'ScoringSettings')  # historical model, not direct import
    ScoringSettings.objects.get_or_create(
        pk=1,
        defaults=dict(
            team_points_mapping=dict(getattr(settings, "SPORTSDAY_TEAM_POINTS_MAPPING", {})),
            individual_points_mapping=dict(getattr(settings, "SPORTSDAY_INDIVIDUAL_POINTS_MAPPING", {})),
        ),
    )


def unseed_scoring_settings(apps, schema_editor):
    ScoringSettings = apps.get_model('sportsday', 'ScoringSettings')
    ScoringSettings.objects.filter(pk=1).delete()


class Migration(migrations.Migration):

    dependencies = [
        ('sportsday', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(seed_scoring_settings, reverse_code=unseed_scoring_settings),
    ]
