from django.apps import AppConfig


class SportsdayConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "sportsday"
    verbose_name = "Sports Day Scoring"
