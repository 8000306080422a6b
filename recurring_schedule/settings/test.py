from .base import *


SECRET_KEY = "test"  # nosec

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    },
}

LOGGING["loggers"]["recurrences"]["level"] = "DEBUG"  # noqa: F405
