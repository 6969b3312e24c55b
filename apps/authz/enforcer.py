"""
Scope enforcer.

Decides Allow / Deny for an EffectivePermissionSet. Scope is checked
before permission membership so that a correctly-permissioned request
against the wrong business is reported as OUT_OF_SCOPE rather than
PERMISSION_MISSING.
"""
from typing import Iterable, Optional

from apps.authz.constants import DenyReason
from apps.authz.types import Decision, EffectivePermissionSet, PermissionKey


def in_scope(effective_set: EffectivePermissionSet, target_business_id: Optional[str]) -> bool:
    """
    Whether the target business lies inside the set's scope.

    A global resource (target None) is only reachable with global scope.
    """
    if effective_set.scope.is_global:
        return True
    if target_business_id is None:
        return False
    return str(target_business_id) == effective_set.scope.business_id


def authorize(effective_set: EffectivePermissionSet, required_permission,
              target_business_id: Optional[str]) -> Decision:
    """
    Check one permission against one target business.

    Args:
        effective_set: result of engine.compute
        required_permission: PermissionKey, (resource, action) or 'resource:action'
        target_business_id: business owning the resource, None for global resources

    Returns:
        Decision
    """
    if not effective_set.is_active:
        return Decision.deny(DenyReason.PRINCIPAL_INACTIVE)

    if not in_scope(effective_set, target_business_id):
        return Decision.deny(DenyReason.OUT_OF_SCOPE)

    if PermissionKey.parse(required_permission) not in effective_set.permissions:
        return Decision.deny(DenyReason.PERMISSION_MISSING)

    return Decision.allow()


def authorize_all(effective_set: EffectivePermissionSet, required_permissions: Iterable,
                  target_business_id: Optional[str]) -> Decision:
    """Allow only if every permission is held. The first denial is returned."""
    for permission in required_permissions:
        decision = authorize(effective_set, permission, target_business_id)
        if not decision.allowed:
            return decision
    return authorize_scope_only(effective_set, target_business_id)


def authorize_any(effective_set: EffectivePermissionSet, required_permissions: Iterable,
                  target_business_id: Optional[str]) -> Decision:
    """Allow if at least one permission is held."""
    scope_decision = authorize_scope_only(effective_set, target_business_id)
    if not scope_decision.allowed:
        return scope_decision

    required = {PermissionKey.parse(p) for p in required_permissions}
    if required & effective_set.permissions:
        return Decision.allow()
    return Decision.deny(DenyReason.PERMISSION_MISSING)


def authorize_scope_only(effective_set: EffectivePermissionSet,
                         target_business_id: Optional[str]) -> Decision:
    """Activity and scope checks without a permission (e.g. listing a business)."""
    if not effective_set.is_active:
        return Decision.deny(DenyReason.PRINCIPAL_INACTIVE)
    if not in_scope(effective_set, target_business_id):
        return Decision.deny(DenyReason.OUT_OF_SCOPE)
    return Decision.allow()
