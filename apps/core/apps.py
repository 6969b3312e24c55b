from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
import logging

logger = logging.getLogger(__name__)


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Core'

    def ready(self):
        """
        Validate configuration the rest of the project relies on.
        """
        self._validate_security_settings()
        self._validate_cache_settings()

    def _validate_security_settings(self):
        """Validate general security settings."""
        secret_key = getattr(settings, 'SECRET_KEY', None)

        if not secret_key:
            raise ImproperlyConfigured(
                "SECRET_KEY must be set in environment variables. "
                "Generate with: "
                "python -c \"import secrets; print(secrets.token_urlsafe(50))\""
            )

        if not settings.DEBUG and 'insecure' in secret_key.lower():
            raise ImproperlyConfigured(
                "SECRET_KEY appears to be a development default. "
                "Set a strong SECRET_KEY before running with DEBUG off."
            )

    def _validate_cache_settings(self):
        """The authorization cache alias must exist and the TTL must be positive."""
        alias = getattr(settings, 'AUTHZ_CACHE_ALIAS', 'default')
        if alias not in settings.CACHES:
            raise ImproperlyConfigured(
                f"AUTHZ_CACHE_ALIAS '{alias}' is not defined in CACHES"
            )

        ttl = getattr(settings, 'AUTHZ_CACHE_TTL', 300)
        if ttl <= 0:
            raise ImproperlyConfigured(
                f"AUTHZ_CACHE_TTL must be a positive number of seconds, got {ttl}"
            )
        if ttl > 3600:
            logger.warning(
                "⚠ AUTHZ_CACHE_TTL is above one hour; revoked access may stay "
                "cached for that long if an invalidation is ever missed."
            )
