"""Django settings for ScoreForge.

Settings are 12-factor compliant and pull configuration from environment variables. Defaults
are suitable for local development and unit tests only.
"""

from __future__ import annotations

import os
from pathlib import Path

import environ
from django.core.exceptions import ImproperlyConfigured

from scoreforge.domain.models.descriptor import DEFAULT_REGIONS

BASE_DIR = Path(__file__).resolve().parent.parent.parent

env = environ.Env(
    DEBUG=(bool, False),
    SECRET_KEY=(str, "unsafe-secret-key"),
    ALLOWED_HOSTS=(list, ["*"]),
    DATABASE_URL=(str, "sqlite://:memory:"),
    REDIS_URL=(str, "redis://localhost:6379/0"),
    LOG_LEVEL=(str, "INFO"),
    RUN_LOG_STREAMER=(str, "memory"),
    SCOREFORGE_ENVIRONMENTS_ROOT=(str, str(BASE_DIR / "environments")),
    SCOREFORGE_REGIONS=(list, list(DEFAULT_REGIONS)),
    TERRAFORM_BINARY=(str, "terraform"),
    LIFECYCLE_MAX_WORKERS=(int, 8),
    SESSION_LOG_MAXLEN=(int, 10_000),
    SESSION_REAP_INTERVAL_SEC=(int, 300),
    SESSION_REAP_IN_PROCESS=(bool, True),
    SESSION_IDLE_TTL_SEC=(int, 24 * 60 * 60),
)

environ.Env.read_env(
    env_file=os.environ.get("SCOREFORGE_ENV_FILE", BASE_DIR / ".env"), recurse=False
)

SECRET_KEY = env("SECRET_KEY")
DEBUG = env("DEBUG")
ALLOWED_HOSTS = env("ALLOWED_HOSTS")

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "drf_spectacular",
    "corsheaders",
    "scoreforge.interfaces.rest",
]

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "scoreforge.config.urls"

WSGI_APPLICATION = "scoreforge.config.wsgi.application"
ASGI_APPLICATION = "scoreforge.config.asgi.application"

DATABASES = {
    "default": env.db(),
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = False
USE_TZ = True
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
    ],
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.AllowAny",
    ],
    "UNAUTHENTICATED_USER": None,
    "EXCEPTION_HANDLER": "scoreforge.interfaces.rest.exceptions.api_exception_handler",
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

SPECTACULAR_SETTINGS = {
    "TITLE": "ScoreForge API",
    "VERSION": "0.1.0",
    "SERVE_INCLUDE_SCHEMA": False,
}

CORS_ALLOW_ALL_ORIGINS = True
CORS_EXPOSE_HEADERS = ["X-Session-Id"]

LOG_LEVEL = env("LOG_LEVEL")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "structured": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "structured",
        }
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
}

SCOREFORGE_ENVIRONMENTS_ROOT = env("SCOREFORGE_ENVIRONMENTS_ROOT")
SCOREFORGE_REGIONS = tuple(region.strip() for region in env("SCOREFORGE_REGIONS") if region.strip())
if not SCOREFORGE_REGIONS:
    raise ImproperlyConfigured("SCOREFORGE_REGIONS must list at least one region")
TERRAFORM_BINARY = env("TERRAFORM_BINARY")
LIFECYCLE_MAX_WORKERS = env.int("LIFECYCLE_MAX_WORKERS")
SESSION_LOG_MAXLEN = env.int("SESSION_LOG_MAXLEN")
SESSION_IDLE_TTL_SEC = env.int("SESSION_IDLE_TTL_SEC")
SESSION_REAP_IN_PROCESS = env.bool("SESSION_REAP_IN_PROCESS")

SESSION_STORE = "memory"
PROCESS_SUPERVISOR = "subprocess"
RUN_LOG_STREAMER = env("RUN_LOG_STREAMER")

CELERY_BROKER_URL = env("REDIS_URL")
CELERY_RESULT_BACKEND = env("REDIS_URL")
CELERY_TASK_ALWAYS_EAGER = env.bool("CELERY_TASK_ALWAYS_EAGER", default=True)
CELERY_TASK_EAGER_PROPAGATES = env.bool("CELERY_TASK_EAGER_PROPAGATES", default=True)
CELERY_TASK_DEFAULT_QUEUE = "scoreforge.default"
SESSION_REAP_INTERVAL_SEC = env.int("SESSION_REAP_INTERVAL_SEC")
# Beat only removes abandoned directories; the serving process evicts its own sessions.
CELERY_BEAT_SCHEDULE = {
    "reap-provisioning-sessions": {
        "task": "scoreforge.sessions.tasks.reap_sessions",
        "schedule": SESSION_REAP_INTERVAL_SEC,
    },
}
