from .base import *

SECRET_KEY = "test-secret-key"
DEBUG = False
ALLOWED_HOSTS = ["testserver", "localhost"]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

REVIEW_LOCK_STALE_AFTER_SECONDS = 120
REVIEW_LOCK_HEARTBEAT_SECONDS = 30
REVIEW_EXPECTED_TOTAL = None
REVIEW_CHANGE_BACKLOG = 50
REVIEW_CHANGE_BACKEND = "local"
REVIEW_ACTIVITY_MAX_BUCKETS = 1000

LOGGING["root"]["level"] = "WARNING"
LANGUAGE_CODE = "en-us"
