"""
Tests for startup configuration checks.
"""
from django.apps import apps
from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, override_settings


class SecuritySettingsTestCase(SimpleTestCase):

    def setUp(self):
        self.config = apps.get_app_config('core')

    @override_settings(SECRET_KEY='')
    def test_empty_secret_key_rejected(self):
        with self.assertRaises(ImproperlyConfigured):
            self.config._validate_security_settings()

    @override_settings(SECRET_KEY='django-insecure-abc', DEBUG=False)
    def test_insecure_key_rejected_without_debug(self):
        with self.assertRaises(ImproperlyConfigured):
            self.config._validate_security_settings()

    @override_settings(SECRET_KEY='django-insecure-abc', DEBUG=True)
    def test_insecure_key_allowed_in_debug(self):
        self.config._validate_security_settings()


class CacheSettingsTestCase(SimpleTestCase):

    def setUp(self):
        self.config = apps.get_app_config('core')

    @override_settings(AUTHZ_CACHE_ALIAS='missing')
    def test_unknown_alias_rejected(self):
        with self.assertRaises(ImproperlyConfigured):
            self.config._validate_cache_settings()

    @override_settings(AUTHZ_CACHE_TTL=0)
    def test_non_positive_ttl_rejected(self):
        with self.assertRaises(ImproperlyConfigured):
            self.config._validate_cache_settings()

    @override_settings(AUTHZ_CACHE_TTL=7200)
    def test_long_ttl_warns(self):
        with self.assertLogs('apps.core.apps', level='WARNING'):
            self.config._validate_cache_settings()
