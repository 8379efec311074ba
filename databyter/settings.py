"""
Django settings for the databyter project.

Everything is read from environment variables with defaults suited to a
local MongoDB instance.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'databyter-insecure-dev-key')

DEBUG = os.environ.get('DJANGO_DEBUG', 'false').lower() == 'true'

ALLOWED_HOSTS = os.environ.get('DJANGO_ALLOWED_HOSTS', '*').split(',')

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'rest_framework',
    'databyter',
    'projects',
    'users',
]

MIDDLEWARE = [
    'databyter.middleware.PrometheusMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'databyter.urls'

WSGI_APPLICATION = 'databyter.wsgi.application'

# All persistent state lives in MongoDB
DATABASES = {}

TEST_RUNNER = 'databyter.test_runner.NoDBTestRunner'

APPEND_SLASH = False

USE_TZ = True
TIME_ZONE = 'UTC'

# MongoDB connection settings
MONGODB_HOST = os.environ.get('MONGODB_HOST', 'localhost')
MONGODB_PORT = int(os.environ.get('MONGODB_PORT', 27017))
MONGODB_USERNAME = os.environ.get('MONGODB_USERNAME', '')
MONGODB_PASSWORD = os.environ.get('MONGODB_PASSWORD', '')
MONGODB_DATABASE = os.environ.get('MONGODB_DATABASE', 'databyter')
# Multi-document transactions need a replica set
MONGODB_TRANSACTIONS = os.environ.get('MONGODB_TRANSACTIONS', 'false').lower() == 'true'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': ['rest_framework.permissions.AllowAny'],
    'DEFAULT_RENDERER_CLASSES': ['rest_framework.renderers.JSONRenderer'],
    'DEFAULT_PARSER_CLASSES': [
        'rest_framework.parsers.JSONParser',
        'rest_framework.parsers.FormParser',
    ],
    'UNAUTHENTICATED_USER': None,
    'EXCEPTION_HANDLER': 'databyter.exceptions.api_exception_handler',
}

LOG_LEVEL = os.environ.get('DATABYTER_LOG_LEVEL', 'INFO').upper()

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s %(levelname)s [%(name)s] %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': LOG_LEVEL,
    },
    'loggers': {
        'pymongo': {
            'level': 'WARNING',
        },
    },
}
