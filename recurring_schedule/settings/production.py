from decouple import config  # type: ignore

from .base import *


DEBUG = False

SECRET_KEY = config("SECRET_KEY")

DATABASES["default"]["CONN_MAX_AGE"] = config("CONN_MAX_AGE", cast=int, default=60)  # noqa: F405

LOGGING["loggers"][""]["level"] = config("LOG_LEVEL", default="WARNING")  # noqa: F405
LOGGING["loggers"]["recurrences"]["level"] = config("LOG_LEVEL", default="INFO")  # noqa: F405
