from pathlib import Path
import os
import dj_database_url

# Base Directory
BASE_DIR = Path(__file__).resolve().parent.parent

# Security Settings
SECRET_KEY = os.getenv("SECRET_KEY", "django-insecure-key")
DEBUG = os.getenv("DEBUG", "1") == "1"

ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost").split(",")

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'rest_framework',

    'sportsday',
]

# Database Configuration
DATABASES = {
    'default': dj_database_url.config(
        default=os.getenv('DATABASE_URL', 'sqlite:///db.sqlite3')
    )
}

# SQLite allows a single writer: take the write lock up front and wait for it.
if DATABASES['default']['ENGINE'] == 'django.db.backends.sqlite3':
    DATABASES['default'].setdefault('OPTIONS', {}).update(
        {
            "timeout": int(os.getenv("SQLITE_BUSY_TIMEOUT", "10")),
            "transaction_mode": "IMMEDIATE",
            "init_command": "PRAGMA journal_mode=WAL; PRAGMA synchronous=NORMAL;",
        }
    )

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv("TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

# Default Primary Key Field
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Logging
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "[{asctime}] {levelname} {name}: {message}", "style": "{"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "sportsday": {
            "handlers": ["console"],
            "level": os.getenv("SPORTSDAY_LOG_LEVEL", "INFO"),
        },
    },
}

# Sports day scoring
SPORTSDAY_TEAM_POINTS_MAPPING = {
    "1": 9, "2": 7, "3": 6, "4": 5, "5": 4, "6": 3, "7": 2, "8": 1,
}
SPORTSDAY_INDIVIDUAL_POINTS_MAPPING = {
    "1": 7, "2": 5, "3": 4, "4": 3, "5": 2, "6": 1,
}
SPORTSDAY_STATISTICS_CACHE_SECONDS = float(os.getenv("SPORTSDAY_STATISTICS_CACHE_SECONDS", "1.0"))
SPORTSDAY_STATISTICS_TOP_N = int(os.getenv("SPORTSDAY_STATISTICS_TOP_N", "10"))
SPORTSDAY_WRITE_RETRIES = int(os.getenv("SPORTSDAY_WRITE_RETRIES", "5"))
SPORTSDAY_WRITE_RETRY_BACKOFF = float(os.getenv("SPORTSDAY_WRITE_RETRY_BACKOFF", "0.05"))
SPORTSDAY_REBUILD_MAX_WORKERS = int(os.getenv("SPORTSDAY_REBUILD_MAX_WORKERS", "2"))
SPORTSDAY_REBUILD_RETRIES = int(os.getenv("SPORTSDAY_REBUILD_RETRIES", "3"))
SPORTSDAY_REBUILD_BACKOFF = float(os.getenv("SPORTSDAY_REBUILD_BACKOFF", "0.5"))
