# config/settings/base.py

from pathlib import Path
import os

# ==================================================
# BASE
# ==================================================

BASE_DIR = Path(__file__).resolve().parents[2]

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-secret-key")
DEBUG = os.getenv("DJANGO_DEBUG", "false").lower() == "true"
ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h]

# ==================================================
# INSTALLED APPS
# ==================================================

INSTALLED_APPS = [
    # Django
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # REST
    "rest_framework",

    # Domain apps
    "accounts",
    "review.apps.ReviewConfig",
]

# ==================================================
# MIDDLEWARE
# ==================================================

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    # Must run after AuthenticationMiddleware: it inspects request.user.
    "accounts.middleware.ApprovalGateMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

# ==================================================
# URL / WSGI / ASGI
# ==================================================

ROOT_URLCONF = "config.urls"

WSGI_APPLICATION = "config.wsgi.application"
ASGI_APPLICATION = "config.asgi.application"

# ==================================================
# TEMPLATES (admin only)
# ==================================================

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

# ==================================================
# DATABASE
# ==================================================

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.getenv("DB_PATH", str(BASE_DIR / "db.sqlite3")),
        "OPTIONS": {
            # Seconds to wait on a locked database before raising.
            "timeout": int(os.getenv("DB_TIMEOUT", "10")),
        },
    }
}

# ==================================================
# AUTH
# ==================================================

AUTHENTICATION_BACKENDS = [
    "django.contrib.auth.backends.ModelBackend",
]

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"
    },
]

# ==================================================
# GLOBAL
# ==================================================

LANGUAGE_CODE = "fr-fr"
TIME_ZONE = os.getenv("REVIEW_TIMEZONE", "Europe/Paris")

USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ==================================================
# DRF
# ==================================================

REST_FRAMEWORK = {
    "DEFAULT_PERMISSION_CLASSES": [
        "accounts.permissions.IsApproved",
    ],
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    # `?format=` is a view parameter (export), not a renderer switch.
    "URL_FORMAT_OVERRIDE": None,
}

# ==================================================
# REVIEW WORKFLOW
# ==================================================

# A lock whose claimed_at is older than this may be taken over by another user.
REVIEW_LOCK_STALE_AFTER_SECONDS = int(os.getenv("REVIEW_LOCK_STALE_AFTER_SECONDS", "120"))
# Interval advertised to clients for heartbeat renewal.
REVIEW_LOCK_HEARTBEAT_SECONDS = int(os.getenv("REVIEW_LOCK_HEARTBEAT_SECONDS", "30"))

# Size of the corpus once fully ingested; exercises not yet imported count as pending.
REVIEW_EXPECTED_TOTAL = int(os.getenv("REVIEW_EXPECTED_TOTAL", "0")) or None

# Number of change events kept for long-polling clients.
REVIEW_CHANGE_BACKLOG = int(os.getenv("REVIEW_CHANGE_BACKLOG", "500"))
# "redis": sequence and backlog shared by every worker; "local": this process only.
REVIEW_CHANGE_BACKEND = os.getenv("REVIEW_CHANGE_BACKEND", "redis")
REVIEW_REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REVIEW_CHANGE_KEY_PREFIX = os.getenv("REVIEW_CHANGE_KEY_PREFIX", "review:changes")
# Upper bound for a single long-poll wait, in seconds.
REVIEW_CHANGE_MAX_WAIT = int(os.getenv("REVIEW_CHANGE_MAX_WAIT", "25"))

# Upper bound on buckets returned by one activity query.
REVIEW_ACTIVITY_MAX_BUCKETS = int(os.getenv("REVIEW_ACTIVITY_MAX_BUCKETS", "1000"))

# ==================================================
# LOGGING
# ==================================================

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "[{levelname}] {asctime} {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": os.getenv("LOG_LEVEL", "INFO"),
    },
}
