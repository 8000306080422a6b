import os

from decouple import config  # type: ignore
from dj_database_url import parse as db_url


BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def base_dir_join(*args):
    return os.path.join(BASE_DIR, *args)


DEBUG = config("DEBUG", cast=bool, default=True)

SECRET_KEY = config("SECRET_KEY", default="secret")

DATABASES = {
    "default": config(
        "DATABASE_URL",
        cast=db_url,
        default=f"sqlite:///{base_dir_join('db.sqlite3')}",
    ),
}

INTERNAL_INSTALLED_APPS = [
    "di_core",
    "common",
    "recurrences",
]
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    *INTERNAL_INSTALLED_APPS,
]

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"

TIME_ZONE = "UTC"

USE_I18N = True

USE_TZ = True

# Recurrences
RECURRENCES_DATABASE_ALIAS = config("RECURRENCES_DATABASE_ALIAS", default="default")

# Modules whose @inject markers are resolved against di_core.containers.AppContainer
DI_WIRED_MODULES = [
    "recurrences.dependencies",
    "recurrences.services.mutation_service",
    "recurrences.services.virtualization_service",
]

# Logging
LOG_LEVEL = config("LOG_LEVEL", default="INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(levelname)-8s [%(asctime)s] %(name)s: %(message)s",
        },
    },
    "handlers": {
        "null": {
            "class": "logging.NullHandler",
        },
        "console": {
            "level": "DEBUG",
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "loggers": {
        "": {"handlers": ["console"], "level": LOG_LEVEL},
        "recurrences": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "django.db.backends": {"handlers": ["null"], "propagate": False},
    },
}
