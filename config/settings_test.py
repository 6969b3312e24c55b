"""
Settings for the test suite.
"""
from config.settings import *  # noqa: F401,F403

SECRET_KEY = 'test-only-secret-key-do-not-deploy'
DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'ATOMIC_REQUESTS': False,
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'authz-tests',
    }
}

AUTHZ_CACHE_ALIAS = 'default'
AUTHZ_CACHE_TTL = 300
