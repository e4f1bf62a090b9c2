"""
Django settings for the signflow project.

Values are read from the environment with development defaults so the
project boots without any configuration. Engine tunables for the signing
workflow live in the SIGNING dict below.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
DEBUG = os.getenv('DEBUG', 'True').lower() == 'true'
ALLOWED_HOSTS = [h for h in os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'documents',
    'signing',
    'notifications',
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

ROOT_URLCONF = 'signflow.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'signflow.wsgi.application'

# ----------------------------
# Database
# ----------------------------
DATABASES = {
    'default': {
        'ENGINE': os.getenv('DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.getenv('DB_NAME', str(BASE_DIR / 'db.sqlite3')),
        'USER': os.getenv('DB_USER', ''),
        'PASSWORD': os.getenv('DB_PASSWORD', ''),
        'HOST': os.getenv('DB_HOST', ''),
        'PORT': os.getenv('DB_PORT', ''),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
MEDIA_URL = '/media/'
MEDIA_ROOT = os.getenv('MEDIA_ROOT', str(BASE_DIR / 'media'))

# ----------------------------
# REST framework
# ----------------------------
REST_FRAMEWORK = {
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.AllowAny',
    ],
    'EXCEPTION_HANDLER': 'signing.handlers.signing_exception_handler',
}

# ----------------------------
# Email (Notifier default backend)
# ----------------------------
EMAIL_BACKEND = os.getenv('EMAIL_BACKEND', 'django.core.mail.backends.console.EmailBackend')
EMAIL_HOST = os.getenv('EMAIL_HOST', 'localhost')
EMAIL_PORT = int(os.getenv('EMAIL_PORT', 25))
EMAIL_HOST_USER = os.getenv('EMAIL_HOST_USER', '')
EMAIL_HOST_PASSWORD = os.getenv('EMAIL_HOST_PASSWORD', '')
EMAIL_USE_TLS = os.getenv('EMAIL_USE_TLS', 'False').lower() == 'true'
DEFAULT_FROM_EMAIL = os.getenv('DEFAULT_FROM_EMAIL', 'SignFlow <noreply@example.com>')

FRONTEND_BASE_URL = os.getenv('FRONTEND_BASE_URL', 'http://localhost:3000')

# Shared secret for the externally triggered reminder/expiration sweep.
CRON_SECRET = os.getenv('CRON_SECRET', 'dev-cron-secret')

# ----------------------------
# Signing workflow
# ----------------------------
SIGNING = {
    'DECLINE_REASON_MIN_LENGTH': int(os.getenv('SIGNING_DECLINE_REASON_MIN_LENGTH', 10)),
    'REMINDER_INTERVAL_DAYS': int(os.getenv('SIGNING_REMINDER_INTERVAL_DAYS', 3)),
    'DUE_SOON_DAYS': int(os.getenv('SIGNING_DUE_SOON_DAYS', 1)),
    'EXPIRATION_WARNING_DAYS': [7, 2, 1],
    'HARD_EXPIRY_DEFAULT': True,
    'ACCESS_CODE_MIN_LENGTH': 4,
    'ACCESS_CODE_MAX_LENGTH': 50,
    'ACCESS_CODE_MAX_ATTEMPTS': 5,
    'ACCESS_CODE_LOCKOUT_MINUTES': 30,
    'VERIFICATION_CODE_TTL_MINUTES': 10,
    'FINALIZATION_RETRY_DELAYS': [60, 300, 900],
    'FINALIZATION_LEASE_SECONDS': int(os.getenv('SIGNING_FINALIZATION_LEASE_SECONDS', 600)),
    'BLOB_STORE': os.getenv('SIGNING_BLOB_STORE', 'documents.services.blob_store.StorageBlobStore'),
    'ARTIFACT_ASSEMBLER': os.getenv(
        'SIGNING_ARTIFACT_ASSEMBLER', 'documents.services.pdf_flattening.PdfArtifactAssembler'
    ),
    'NOTIFIER': os.getenv('SIGNING_NOTIFIER', 'notifications.services.notifier.EmailNotifier'),
}

# ----------------------------
# Celery
# ----------------------------
CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = os.getenv('CELERY_TASK_ALWAYS_EAGER', 'False').lower() == 'true'
CELERY_TASK_SERIALIZER = 'json'
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TIMEZONE = TIME_ZONE

# ----------------------------
# Logging
# ----------------------------
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'signing': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'documents': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'notifications': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
    },
}
