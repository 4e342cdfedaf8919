"""
Django settings for visa_portal project.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


# ======================
# Core
# ======================

SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'django-insecure-visa-portal-dev-key')
DEBUG = env_bool('DJANGO_DEBUG', False)
ALLOWED_HOSTS = [h for h in os.getenv(
    'DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Local apps
    'customers',
    'visas',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'visa_portal.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

# ======================
# Database
# ======================

DATABASES = {
    'default': {
        'ENGINE': os.getenv('DATABASE_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.getenv('DATABASE_NAME', str(BASE_DIR / 'db.sqlite3')),
        'USER': os.getenv('DATABASE_USER', ''),
        'PASSWORD': os.getenv('DATABASE_PASSWORD', ''),
        'HOST': os.getenv('DATABASE_HOST', ''),
        'PORT': os.getenv('DATABASE_PORT', ''),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# ======================
# Static & Media
# ======================

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'
MEDIA_URL = '/media/'
MEDIA_ROOT = Path(os.getenv('MEDIA_ROOT', str(BASE_DIR / 'media')))

# ======================
# Email
# ======================

EMAIL_BACKEND = os.getenv(
    'EMAIL_BACKEND', 'django.core.mail.backends.console.EmailBackend')
EMAIL_HOST = os.getenv('EMAIL_HOST', 'localhost')
EMAIL_PORT = int(os.getenv('EMAIL_PORT', '25'))
EMAIL_HOST_USER = os.getenv('EMAIL_HOST_USER', '')
EMAIL_HOST_PASSWORD = os.getenv('EMAIL_HOST_PASSWORD', '')
EMAIL_USE_TLS = env_bool('EMAIL_USE_TLS', False)
DEFAULT_FROM_EMAIL = os.getenv('DEFAULT_FROM_EMAIL', 'no-reply@visa-portal.local')

# Public site used to build tracking links in notifications
FRONTEND_URL = os.getenv('FRONTEND_URL', 'https://yourapp.com').rstrip('/')

# ======================
# Visa workflow
# ======================

# Optional platform inbox copied on every application notice
VISAS_ADMIN_NOTIFICATION_EMAIL = os.getenv('VISAS_ADMIN_NOTIFICATION_EMAIL') or None

# Upload limit used when a field does not define max_file_size_mb
VISAS_DEFAULT_MAX_UPLOAD_MB = int(os.getenv('VISAS_DEFAULT_MAX_UPLOAD_MB', '10'))

# Storage prefix for answer uploads
VISAS_UPLOAD_DIR = os.getenv('VISAS_UPLOAD_DIR', 'visa-applications')

# Repair batches whose display_order arrives inverted (first = max, last = 0)
VISAS_REPAIR_REVERSED_FIELD_ORDER = env_bool(
    'VISAS_REPAIR_REVERSED_FIELD_ORDER', True)

# Notices are sent by a small worker pool after commit
VISAS_NOTIFICATION_WORKERS = int(os.getenv('VISAS_NOTIFICATION_WORKERS', '2'))
# Send in the calling thread instead (tests, management commands)
VISAS_SEND_NOTICES_INLINE = env_bool('VISAS_SEND_NOTICES_INLINE', False)

# ======================
# Logging
# ======================

VISAS_LOG_LEVEL = os.getenv('VISAS_LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'visas': {
            'handlers': ['console'],
            'level': VISAS_LOG_LEVEL,
            'propagate': False,
        },
        'customers': {
            'handlers': ['console'],
            'level': VISAS_LOG_LEVEL,
            'propagate': False,
        },
    },
}
