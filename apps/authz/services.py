"""
Authorization service: the public entry point of the core.

Implements:
- AuthorizationService: authorize, effective permissions, role checks,
  permission matrix, explicit invalidation
"""
from typing import Dict, Iterable, List, Optional

from django.apps import apps

from apps.authz import engine, enforcer
from apps.authz.constants import DenyReason, LegacyRole
from apps.authz.exceptions import PrincipalNotFound, RoleNotFound
from apps.authz.principals import canonical_principal_id
from apps.authz.types import Decision, EffectivePermissionSet, PermissionKey
from apps.core.logging import SecurityLogger


class AuthorizationService:
    """
    Resolves, caches and enforces effective permissions.

    Collaborators are injected; the project-wide instance is assembled in
    `AuthzConfig.ready()` and returned by `get_authorization_service()`.
    """

    def __init__(self, cache, resolver, store, invalidator):
        """
        Args:
            cache: ResolutionCache
            resolver: PrincipalResolver
            store: object with load_role / load_permission (usually RoleStore)
            invalidator: Invalidator bound to the same cache
        """
        self.cache = cache
        self.resolver = resolver
        self.store = store
        self.invalidator = invalidator

    def effective_permissions(self, principal_id) -> EffectivePermissionSet:
        """
        Cached effective permission set of a principal.

        Raises:
            PrincipalNotFound: If the principal does not exist
            ResolutionUnavailable: If storage fails
        """
        principal_id = canonical_principal_id(principal_id)
        return self.cache.get_or_compute(
            principal_id,
            lambda: engine.compute(self.resolver.resolve(principal_id), self.store),
        )

    def authorize(self, principal_id, permission, target_business_id: Optional[str]) -> Decision:
        """
        Decide whether a principal may perform `permission` on a resource
        owned by `target_business_id` (None for global resources).

        Args:
            principal_id: Principal id
            permission: PermissionKey, {'resource', 'action'} mapping,
                (resource, action) tuple or 'resource:action'
            target_business_id: Business owning the resource

        Returns:
            Decision; denials carry a DenyReason

        Raises:
            ResolutionUnavailable: If permissions cannot be determined.
                Never reported as a denial.
        """
        required = PermissionKey.parse(permission)
        try:
            effective_set = self.effective_permissions(principal_id)
        except PrincipalNotFound:
            SecurityLogger.log_event(
                'unknown_principal',
                level='info',
                principal_id=str(principal_id),
                permission=str(required),
            )
            return Decision.deny(DenyReason.PRINCIPAL_NOT_FOUND)

        decision = enforcer.authorize(effective_set, required, target_business_id)
        if not decision.allowed:
            self._log_denial(principal_id, required, effective_set, target_business_id, decision)
        return decision

    def authorize_all(self, principal_id, permissions: Iterable,
                      target_business_id: Optional[str]) -> Decision:
        """Allow only if every permission is held."""
        try:
            effective_set = self.effective_permissions(principal_id)
        except PrincipalNotFound:
            return Decision.deny(DenyReason.PRINCIPAL_NOT_FOUND)
        return enforcer.authorize_all(effective_set, permissions, target_business_id)

    def authorize_any(self, principal_id, permissions: Iterable,
                      target_business_id: Optional[str]) -> Decision:
        """Allow if at least one permission is held."""
        try:
            effective_set = self.effective_permissions(principal_id)
        except PrincipalNotFound:
            return Decision.deny(DenyReason.PRINCIPAL_NOT_FOUND)
        return enforcer.authorize_any(effective_set, permissions, target_business_id)

    def _log_denial(self, principal_id, permission, effective_set, target_business_id, decision):
        principal_id = str(principal_id)
        if decision.reason == DenyReason.PRINCIPAL_INACTIVE:
            SecurityLogger.log_inactive_principal(principal_id, str(permission))
        elif decision.reason == DenyReason.OUT_OF_SCOPE:
            SecurityLogger.log_out_of_scope(
                principal_id,
                str(permission),
                effective_set.scope.business_id,
                target_business_id,
            )
        else:
            SecurityLogger.log_permission_denied(principal_id, str(permission), target_business_id)

    def invalidate(self, principal_id=None, role_id=None, permission_id=None) -> int:
        """
        Drop cached sets affected by a change made outside the ORM.

        Changes made through the ORM are invalidated by signals already.

        Returns:
            Number of principals invalidated
        """
        if principal_id is None and role_id is None and permission_id is None:
            raise ValueError("One of principal_id, role_id or permission_id is required")

        count = 0
        if principal_id is not None:
            count += self.invalidator.invalidate_principal(canonical_principal_id(principal_id))
        if role_id is not None:
            count += self.invalidator.invalidate_role(role_id)
        if permission_id is not None:
            count += self.invalidator.invalidate_permission(permission_id)
        return count

    def has_role(self, principal_id, names: Iterable[str]) -> bool:
        """
        Whether the principal holds any of the named roles, either as its
        legacy role or as an RBAC role that applies to its business.

        Raises:
            PrincipalNotFound: If the principal does not exist
        """
        names = {name.strip() for name in ([names] if isinstance(names, str) else names)}
        context = self.resolver.resolve(principal_id)
        if not context.is_active:
            return False
        if LegacyRole(context.legacy_role).value in names:
            return True

        for role_id in context.role_refs:
            try:
                role = self.store.load_role(role_id)
            except RoleNotFound:
                continue
            if role.name in names and engine.role_applies(role, context.business_id):
                return True
        return False

    def permission_matrix(self, principal_id) -> Dict[str, List[str]]:
        """
        Effective permissions grouped by resource.

        Returns:
            {'order': ['create', 'read'], ...} with resources and actions sorted
        """
        effective_set = self.effective_permissions(principal_id)
        matrix: Dict[str, List[str]] = {}
        for key in sorted(effective_set.permissions):
            matrix.setdefault(key.resource, []).append(key.action)
        return matrix


def get_authorization_service() -> AuthorizationService:
    """The project-wide service built when the authz app loaded."""
    return apps.get_app_config('authz').service
