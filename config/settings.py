"""
Django settings for the BloodLink backend.

Everything deployment-specific comes from the environment. Credentials are
handed to the clients that need them and never logged.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'dev-secret-key-change-me')
DEBUG = os.getenv('DJANGO_DEBUG', 'true').lower() == 'true'
ALLOWED_HOSTS = os.getenv('DJANGO_ALLOWED_HOSTS', '*').split(',')

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'rest_framework',
    'api',
    'chatbot',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {},
    },
]

WSGI_APPLICATION = 'config.wsgi.application'

# Relational DB is only here for Django's own apps; domain data lives in the document store.
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': ['rest_framework.permissions.AllowAny'],
    'DEFAULT_RENDERER_CLASSES': ['rest_framework.renderers.JSONRenderer'],
    'UNAUTHENTICATED_USER': None,
}

# Document store
DOCUMENT_STORE_BACKEND = os.getenv('DOCUMENT_STORE_BACKEND', 'mongo')
MONGO_URI = os.getenv('MONGO_URI', 'mongodb://localhost:27017')
MONGO_DB_NAME = os.getenv('MONGO_DB_NAME', 'bloodlink')
STORE_POLL_INTERVAL = float(os.getenv('STORE_POLL_INTERVAL', '2.0'))

# Email
EMAIL_BACKEND = os.getenv('EMAIL_BACKEND', 'django.core.mail.backends.smtp.EmailBackend')
EMAIL_HOST = os.getenv('EMAIL_HOST', 'localhost')
EMAIL_PORT = int(os.getenv('EMAIL_PORT', '587'))
EMAIL_HOST_USER = os.getenv('EMAIL_HOST_USER', '')
EMAIL_HOST_PASSWORD = os.getenv('EMAIL_HOST_PASSWORD', '')
EMAIL_USE_TLS = os.getenv('EMAIL_USE_TLS', 'true').lower() == 'true'
DEFAULT_FROM_EMAIL = os.getenv('DEFAULT_FROM_EMAIL', 'BloodLink <no-reply@bloodlink.local>')

EMAIL_REQUEST_TEMPLATE_ID = os.getenv('EMAIL_REQUEST_TEMPLATE_ID', 'blood_request')
EMAIL_ACCEPTANCE_TEMPLATE_ID = os.getenv('EMAIL_ACCEPTANCE_TEMPLATE_ID', 'request_accepted')

EMAIL_TEMPLATES = {
    EMAIL_REQUEST_TEMPLATE_ID: {
        'subject': 'Urgent: {{ blood_type }} blood needed',
        'template': 'emails/blood_request.txt',
    },
    EMAIL_ACCEPTANCE_TEMPLATE_ID: {
        'subject': '{{ donor_name }} accepted your blood request',
        'template': 'emails/request_accepted.txt',
    },
}

FRONTEND_URL = os.getenv('FRONTEND_URL', 'http://localhost:5173')

# Best-effort side channels (email, push) run on a daemon thread unless inline.
NOTIFICATIONS_RUN_INLINE = os.getenv('NOTIFICATIONS_RUN_INLINE', 'false').lower() == 'true'

APPOINTMENT_SLOT_CAPACITY = int(os.getenv('APPOINTMENT_SLOT_CAPACITY', '2'))

CHATBOT_REPLY_DELAY_MS = int(os.getenv('CHATBOT_REPLY_DELAY_MS', '1000'))
CHATBOT_NAVIGATION_DELAY_MS = int(os.getenv('CHATBOT_NAVIGATION_DELAY_MS', '3000'))

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': os.getenv('LOG_LEVEL', 'INFO'),
    },
}
