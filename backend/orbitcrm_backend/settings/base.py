# backend/orbitcrm_backend/settings/base.py
import os
from pathlib import Path
from datetime import timedelta
from celery.schedules import crontab

BASE_DIR = Path(__file__).resolve().parents[2]

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-secret")
DEBUG = os.getenv("DJANGO_DEBUG", "true").lower() == "true"

ALLOWED_HOSTS = [h for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,0.0.0.0").split(",") if h]
CSRF_TRUSTED_ORIGINS = [s.strip() for s in os.getenv("CSRF_TRUSTED_ORIGINS", "").split(",") if s.strip()]

INSTALLED_APPS = [
    "identity",
    "platformapp",
    "crm",
    "support",
    "notificationsapp",
    "cs",
    "workflow.apps.WorkflowConfig",

    # third-party
    "rest_framework",
    "django_filters",

    # contrib
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
]

AUTH_USER_MODEL = "identity.User"

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "orbitcrm_backend.urls"

TEMPLATES = [{
    "BACKEND": "django.template.backends.django.DjangoTemplates",
    "DIRS": [],
    "APP_DIRS": True,
    "OPTIONS": {"context_processors": [
        "django.template.context_processors.debug",
        "django.template.context_processors.request",
        "django.contrib.auth.context_processors.auth",
    ]},
}]

WSGI_APPLICATION = "orbitcrm_backend.wsgi.application"

if os.getenv("POSTGRES_HOST"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB", "orbitcrm"),
            "USER": os.getenv("POSTGRES_USER", "postgres"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", ""),
            "HOST": os.getenv("POSTGRES_HOST"),
            "PORT": int(os.getenv("POSTGRES_PORT", "5432")),
            "CONN_MAX_AGE": 60,
        }
    }
else:
    DATABASES = {"default": {"ENGINE": "django.db.backends.sqlite3", "NAME": str(BASE_DIR / "db.sqlite3")}}

LANGUAGE_CODE = "en-us"; TIME_ZONE = "UTC"; USE_I18N = True; USE_TZ = True

STATIC_URL = "/static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

CACHES = {
    "default": {
        "BACKEND": os.getenv("CACHE_BACKEND", "django.core.cache.backends.locmem.LocMemCache"),
        "LOCATION": os.getenv("CACHE_LOCATION", "orbitcrm"),
    }
}

# DRF
REST_FRAMEWORK = {
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.IsAuthenticated"],
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
}

# SimpleJWT
SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=30),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=1),
    "ALGORITHM": "HS256",
    "SIGNING_KEY": SECRET_KEY,
    "AUTH_HEADER_TYPES": ("Bearer",),
    "USER_ID_FIELD": "id",
    "USER_ID_CLAIM": "user_id",
}

AUTOMATION_LOG_LEVEL = os.getenv("AUTOMATION_LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1, "disable_existing_loggers": False,
    "formatters": {"plain": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"}},
    "handlers": {"console": {"class": "logging.StreamHandler", "formatter": "plain"}},
    "loggers": {"django": {"handlers": ["console"], "level": "INFO"},
                "django.request": {"handlers": ["console"], "level": "ERROR", "propagate": False},
                "workflow": {"handlers": ["console"], "level": AUTOMATION_LOG_LEVEL, "propagate": False},
                "cs": {"handlers": ["console"], "level": AUTOMATION_LOG_LEVEL, "propagate": False}},
}


def _int_env(name: str, fallback: int) -> int:
    try:
        return int(os.getenv(name, str(fallback)))
    except ValueError:
        return fallback


# Automation: event worker
EVENT_WORKER_ENABLED = os.getenv("EVENT_WORKER_ENABLED", "true").lower() != "false"
EVENT_WORKER_POLL_INTERVAL_MS = _int_env("EVENT_WORKER_POLL_INTERVAL_MS", 2000)
# Read-aggregate cache keys dropped after every processed event
AUTOMATION_CACHE_INVALIDATE_PREFIX = "bi:"

# Automation: scheduler
RENEWAL_NOTICE_DAYS = _int_env("RENEWAL_NOTICE_DAYS", 30)
HEALTH_SCORE_THRESHOLD = 60

# Automation: outbound webhooks
WEBHOOK_SIGNATURE_HEADER = "X-Webhook-Signature"
WEBHOOK_TIMEOUT_SECONDS = float(os.getenv("WEBHOOK_TIMEOUT_SECONDS")) if os.getenv("WEBHOOK_TIMEOUT_SECONDS") else None
WEBHOOK_MAX_CONCURRENCY = _int_env("WEBHOOK_MAX_CONCURRENCY", 8)

# Celery
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_TIMEZONE = "UTC"
CELERY_BEAT_SCHEDULE = {
    "renewal-due-soon-daily": {
        "task": "workflow.tasks.run_renewal_job_task",
        "schedule": crontab(minute=0, hour=3),  # 03:00 UTC daily
    },
    "health-score-daily": {
        "task": "workflow.tasks.run_health_job_task",
        "schedule": crontab(minute=0, hour=3),
    },
}
