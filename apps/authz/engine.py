"""
Effective-permission engine.

`compute` merges a principal's legacy role, RBAC roles and direct grants
into one EffectivePermissionSet. It is a pure function of the
PrincipalContext and whatever the store returns: no caching, no writes,
no dependence on iteration order.

The store is anything exposing:
    load_role(role_id) -> RoleSnapshot           (raises RoleNotFound)
    load_permission(permission_id) -> PermissionKey   (raises PermissionNotFound)
"""
import logging

from apps.authz.constants import ELEVATED_LEGACY_ROLES, LegacyRole, RoleScope, ScopeKind
from apps.authz.exceptions import PermissionNotFound, RoleNotFound
from apps.authz.types import EffectivePermissionSet, PrincipalContext, RoleSnapshot, ScopeDescriptor

logger = logging.getLogger(__name__)

# Names of system roles that carry the same authority as an elevated legacy role.
ELEVATED_ROLE_NAMES = frozenset(role.value for role in ELEVATED_LEGACY_ROLES)


def is_elevated_role(role: RoleSnapshot) -> bool:
    """A protected system-scoped role named after an elevated legacy role."""
    return (
        role.scope == RoleScope.SYSTEM
        and role.is_system_role
        and role.name in ELEVATED_ROLE_NAMES
    )


def role_applies(role: RoleSnapshot, business_id) -> bool:
    """System roles always apply; business roles only inside their own business."""
    if role.scope == RoleScope.SYSTEM:
        return True
    return role.business_id is not None and role.business_id == business_id


def compute(context: PrincipalContext, store) -> EffectivePermissionSet:
    """
    Compute the effective permission set of one principal.

    Steps:
    1. Inactive principals get the empty, unscoped set.
    2. Scope starts pinned to the principal's home business.
    3. An elevated legacy role (or elevated system role) widens scope to global.
    4. System roles contribute unconditionally; business roles only when
       their business matches. Mismatches are skipped silently so that an
       assignment surviving a business transfer never leaks access.
    5. Direct grants contribute unless qualified with another business.
    6. The result is a set; duplicates collapse.

    Args:
        context: PrincipalContext loaded by the resolver
        store: object providing load_role / load_permission

    Returns:
        EffectivePermissionSet
    """
    if not context.is_active:
        return EffectivePermissionSet.empty(is_active=False)

    business_id = context.business_id
    kind = ScopeKind.BUSINESS
    if LegacyRole(context.legacy_role).is_elevated:
        kind = ScopeKind.GLOBAL

    permissions = set()

    for role_id in context.role_refs:
        try:
            role = store.load_role(role_id)
        except RoleNotFound:
            logger.debug(
                "Skipping missing role during resolution",
                extra={'principal_id': context.principal_id, 'role_id': str(role_id)}
            )
            continue

        if not role_applies(role, business_id):
            logger.debug(
                "Ignoring business role outside the principal's business",
                extra={
                    'principal_id': context.principal_id,
                    'role_id': role.id,
                    'role_business_id': role.business_id,
                    'principal_business_id': business_id,
                }
            )
            continue

        if is_elevated_role(role):
            kind = ScopeKind.GLOBAL
        permissions.update(role.permissions)

    for grant in context.direct_grants:
        if grant.business_id is not None and grant.business_id != business_id:
            continue
        try:
            permissions.add(store.load_permission(grant.permission_id))
        except PermissionNotFound:
            continue

    return EffectivePermissionSet(
        permissions=frozenset(permissions),
        scope=ScopeDescriptor(kind=kind, business_id=business_id),
        is_active=True,
    )
