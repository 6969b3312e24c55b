"""
Authorization app configuration.
"""
from django.apps import AppConfig
from django.conf import settings


class AuthzConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.authz'
    label = 'authz'
    verbose_name = 'Authorization'

    def ready(self):
        """Assemble the project-wide authorization objects and connect signals."""
        from django.core.cache import caches

        from apps.authz.cache import ResolutionCache
        from apps.authz.catalog import PermissionCatalog
        from apps.authz.invalidation import Invalidator
        from apps.authz.principals import PrincipalResolver, PrincipalStore
        from apps.authz.roles import RoleStore
        from apps.authz.services import AuthorizationService

        self.cache = ResolutionCache(
            caches[getattr(settings, 'AUTHZ_CACHE_ALIAS', 'default')],
            ttl=getattr(settings, 'AUTHZ_CACHE_TTL', ResolutionCache.DEFAULT_TTL),
            key_prefix=getattr(settings, 'AUTHZ_CACHE_KEY_PREFIX', 'authz'),
        )
        self.invalidator = Invalidator(self.cache)
        self.catalog = PermissionCatalog()
        self.role_store = RoleStore(self.catalog)
        self.principal_store = PrincipalStore(self.role_store)
        self.resolver = PrincipalResolver()
        self.service = AuthorizationService(
            cache=self.cache,
            resolver=self.resolver,
            store=self.role_store,
            invalidator=self.invalidator,
        )

        import apps.authz.signals  # noqa
