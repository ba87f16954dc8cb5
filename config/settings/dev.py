from .base import *

DEBUG = True
ALLOWED_HOSTS = ["*"]

# Browsable API only while developing; production answers JSON only.
REST_FRAMEWORK["DEFAULT_RENDERER_CLASSES"] = [
    "rest_framework.renderers.JSONRenderer",
    "rest_framework.renderers.BrowsableAPIRenderer",
]

LOGGING["root"]["level"] = os.getenv("LOG_LEVEL", "DEBUG")

# runserver is a single process; point REVIEW_CHANGE_BACKEND at redis to try multi-worker setups.
REVIEW_CHANGE_BACKEND = os.getenv("REVIEW_CHANGE_BACKEND", "local")
