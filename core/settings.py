
from pathlib import Path
from datetime import timedelta
import os
BASE_DIR = Path(__file__).resolve().parent.parent


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-3v#q9d@m1x!r7t0w$k2z8h5y&n4j6b^c-p_s+f=e")


DEBUG = os.getenv("DJANGO_DEBUG", "true").lower() in {"1", "true", "yes", "on"}

ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "").split(",") if h]



INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    'rest_framework',
    #apps
    'account',
    'audit',
    'order',
    'payment',

]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "core.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "core.wsgi.application"



DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    }
}


AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]



LANGUAGE_CODE = "fr-fr"

TIME_ZONE = "Africa/Abidjan"

USE_I18N = True

USE_TZ = True



STATIC_URL = "static/"


DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

AUTH_USER_MODEL = "account.User"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
}



SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=60),   # 1 hour
    "REFRESH_TOKEN_LIFETIME": timedelta(days=30),     # 30 days

    "ROTATE_REFRESH_TOKENS": True,
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "order": {"handlers": ["console"], "level": os.getenv("APP_LOG_LEVEL", "INFO")},
        "payment": {"handlers": ["console"], "level": os.getenv("APP_LOG_LEVEL", "INFO")},
        "audit": {"handlers": ["console"], "level": os.getenv("APP_LOG_LEVEL", "INFO")},
        "account": {"handlers": ["console"], "level": os.getenv("APP_LOG_LEVEL", "INFO")},
    },
}

# GeniusPay (Wave mobile money). Payments stay disabled until the API key is set.
GENIUSPAY_API_KEY = os.getenv("GENIUSPAY_API_KEY", "")
GENIUSPAY_BASE_URL = os.getenv("GENIUSPAY_BASE_URL", "https://api.geniuspay.com/v1")
GENIUSPAY_RETURN_URL = os.getenv("GENIUSPAY_RETURN_URL", "http://localhost:8000/payment/callback")
GENIUSPAY_COUNTRY_CODE = os.getenv("GENIUSPAY_COUNTRY_CODE", "225")
GENIUSPAY_CURRENCY = os.getenv("GENIUSPAY_CURRENCY", "XOF")
GENIUSPAY_TIMEOUT = int(os.getenv("GENIUSPAY_TIMEOUT", "30"))
GENIUSPAY_WEBHOOK_SECRET = os.getenv("GENIUSPAY_WEBHOOK_SECRET", "")
# Local development only: accept callbacks without a signature when no secret is set.
GENIUSPAY_ALLOW_UNSIGNED_WEBHOOKS = os.getenv("GENIUSPAY_ALLOW_UNSIGNED_WEBHOOKS", "false").lower() in {"1", "true", "yes", "on"}
