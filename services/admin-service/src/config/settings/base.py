"""
Base settings for Admin Service.
"""
import os
from pathlib import Path
from datetime import timedelta

from celery.schedules import crontab

# Build paths inside the project
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.environ.get('DEBUG', 'False').lower() == 'true'

ALLOWED_HOSTS = os.environ.get('ALLOWED_HOSTS', '*').split(',')

# Application definition
INSTALLED_APPS = [
    'django.contrib.auth',
    'django.contrib.contenttypes',
    # Third party
    'rest_framework',
    'django_filters',
    # Local apps
    'apps.core',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
    'apps.core.middleware.RequestContextMiddleware',
    'apps.core.middleware.RateLimitMiddleware',
    'apps.core.middleware.JWTAuthenticationMiddleware',
]

# Database
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.environ.get('DB_NAME', 'aurora_nova'),
        'USER': os.environ.get('DB_USER', 'aurora_nova'),
        'PASSWORD': os.environ.get('DB_PASSWORD', 'aurora_nova_password'),
        'HOST': os.environ.get('DB_HOST', 'localhost'),
        'PORT': os.environ.get('DB_PORT', '5432'),
        'OPTIONS': {
            'connect_timeout': 10,
        },
    }
}

# Password hashing (adaptive, bcrypt based)
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.BCryptSHA256PasswordHasher',
    'django.contrib.auth.hashers.PBKDF2PasswordHasher',
]

# Internationalization
LANGUAGE_CODE = 'es'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# REST Framework
REST_FRAMEWORK = {
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'apps.core.authentication.JWTAuthentication',
    ],
    'EXCEPTION_HANDLER': 'apps.core.exceptions.custom_exception_handler',
}

# Caches
# The rate limiter keeps its counters in a process-local bounded cache;
# MAX_ENTRIES caps the number of distinct client tokens tracked.
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'aurora-nova-default',
    },
    'rate_limit': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'aurora-nova-rate-limit',
        'TIMEOUT': 900,
        'OPTIONS': {
            'MAX_ENTRIES': 500,
            'CULL_FREQUENCY': 10,
        },
    },
}

# Celery
REDIS_URL = os.environ.get('REDIS_URL', 'redis://localhost:6379/0')
CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', REDIS_URL)
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE
CELERY_BEAT_SCHEDULE = {
    'sweep-expired-sessions': {
        'task': 'core.sweep_expired_sessions',
        'schedule': crontab(minute=0),
    },
    'sweep-expired-reset-tokens': {
        'task': 'core.sweep_expired_reset_tokens',
        'schedule': crontab(minute=30),
    },
    'process-event-outbox': {
        'task': 'core.process_event_outbox',
        'schedule': crontab(minute='*/5'),
    },
}

# JWT Settings
# Access tokens carry identity only; authorization is resolved live per request.
JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', SECRET_KEY)
JWT_ALGORITHM = 'HS256'
JWT_ACCESS_TOKEN_LIFETIME = timedelta(days=30)

# Authentication
AUTH_SETTINGS = {
    'SESSION_LIFETIME': int(os.environ.get('SESSION_LIFETIME', 30 * 24 * 60 * 60)),
    'PASSWORD_RESET_TOKEN_LIFETIME': 30 * 60,
    'PASSWORD_MIN_LENGTH': 8,
    'MAX_SESSIONS_PER_USER': None,
    'PASSWORD_RESET_URL': os.environ.get(
        'PASSWORD_RESET_URL',
        'http://localhost:3000/reset-password?token={token}'
    ),
}

# Audit log
AUDIT_SETTINGS = {
    'DEFAULT_LIMIT': 50,
    'MAX_LIMIT': 500,
    'REQUEST_LOGS_LIMIT': 100,
    'TOP_USERS_LIMIT': 10,
}

# Rate limiting: named policies applied by path prefix
RATE_LIMITING_ENABLED = True
RATE_LIMITS = {
    'default': {'limit': 100, 'window': 60},
    'login': {'limit': 5, 'window': 60},
    'password_reset': {'limit': 3, 'window': 15 * 60},
}
RATE_LIMIT_PATHS = {
    '/api/auth/login': 'login',
    '/api/auth/forgot-password': 'password_reset',
    '/api/auth/reset-password': 'password_reset',
}

# Events
EVENT_BACKEND = 'memory'
# Keep the most recent published events in memory for inspection
RECORD_EVENTS = False

# Email
EMAIL_BACKEND = os.environ.get('EMAIL_BACKEND', 'django.core.mail.backends.smtp.EmailBackend')
EMAIL_HOST = os.environ.get('EMAIL_HOST', 'localhost')
EMAIL_PORT = int(os.environ.get('EMAIL_PORT', 25))
DEFAULT_FROM_EMAIL = os.environ.get('DEFAULT_FROM_EMAIL', 'Aurora Nova <no-reply@aurora-nova.local>')

# Service Configuration
SERVICE_NAME = 'admin-service'

# Logging
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'json': {
            '()': 'pythonjsonlogger.jsonlogger.JsonFormatter',
            'format': '%(asctime)s %(levelname)s %(name)s %(message)s'
        },
        'standard': {
            'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'json',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'apps': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}
