"""
Pytest configuration and fixtures.
"""
import uuid
from io import StringIO

import pytest
from django.apps import apps as django_apps
from django.core.cache import caches
from django.core.cache.backends.locmem import LocMemCache
from django.core.management import call_command


@pytest.fixture(scope='session')
def django_db_setup(django_db_setup, django_db_blocker):
    """Set up test database; the authz app ships no migrations."""
    with django_db_blocker.unblock():
        call_command('migrate', '--run-syncdb', verbosity=0)


@pytest.fixture(autouse=True)
def clear_caches():
    """Start every test with an empty cache."""
    caches['default'].clear()
    yield
    caches['default'].clear()


@pytest.fixture
def authz_config():
    return django_apps.get_app_config('authz')


@pytest.fixture
def service(authz_config):
    """Project-wide AuthorizationService (shares the cache the signals invalidate)."""
    return authz_config.service


@pytest.fixture
def catalog(authz_config):
    return authz_config.catalog


@pytest.fixture
def role_store(authz_config):
    return authz_config.role_store


@pytest.fixture
def principal_store(authz_config):
    return authz_config.principal_store


@pytest.fixture
def cache_backend():
    """An isolated in-memory Django cache."""
    return LocMemCache(f'authz-test-{uuid.uuid4().hex}', {})


@pytest.fixture
def permissions(db, catalog):
    """A small catalog keyed by 'resource:action'."""
    pairs = [
        ('order', 'read'), ('order', 'create'), ('order', 'update'),
        ('menu', 'read'), ('menu', 'update'),
        ('report', 'generate'), ('business', 'read'),
    ]
    return {
        f'{resource}:{action}': catalog.register(resource, action)
        for resource, action in pairs
    }


@pytest.fixture
def seeded(db):
    """Canonical catalog plus the system_admin role."""
    call_command('seed_permissions', stdout=StringIO())
