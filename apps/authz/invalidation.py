"""
Invalidation of cached permission sets.

Maps a changed principal, role or permission to the principals whose
effective sets depend on it, and drops their cache entries.

Inside a transaction the entries are dropped twice: immediately, so a
cache failure raises and rolls the mutation back, and again on commit,
so a reader that cached pre-commit state in between is corrected.
"""
import logging
from typing import Iterable, Set

from django.db import transaction

from apps.authz.models import DirectPermission, PrincipalRole

logger = logging.getLogger(__name__)


def principals_holding_role(role_id) -> Set[str]:
    """Ids of principals assigned the role."""
    return {
        str(pid) for pid in
        PrincipalRole.objects.filter(role_id=role_id).values_list('principal_id', flat=True)
    }


def principals_holding_roles(role_ids: Iterable) -> Set[str]:
    role_ids = list(role_ids)
    if not role_ids:
        return set()
    return {
        str(pid) for pid in
        PrincipalRole.objects.filter(role_id__in=role_ids).values_list('principal_id', flat=True)
    }


def principals_affected_by_permission(permission_id) -> Set[str]:
    """Principals holding the permission through any role or a direct grant."""
    via_roles = PrincipalRole.objects.filter(
        role__role_permissions__permission_id=permission_id
    ).values_list('principal_id', flat=True)
    direct = DirectPermission.objects.filter(
        permission_id=permission_id
    ).values_list('principal_id', flat=True)
    return {str(pid) for pid in via_roles} | {str(pid) for pid in direct}


class Invalidator:
    """Turns change notifications into cache invalidations."""

    def __init__(self, cache):
        """
        Args:
            cache: ResolutionCache to invalidate
        """
        self.cache = cache

    def invalidate_principals(self, principal_ids: Iterable) -> int:
        principal_ids = {str(pid) for pid in principal_ids}
        if not principal_ids:
            return 0

        count = self.cache.invalidate_principals(principal_ids)

        connection = transaction.get_connection()
        if connection.in_atomic_block:
            transaction.on_commit(lambda: self._invalidate_after_commit(principal_ids))
        return count

    def _invalidate_after_commit(self, principal_ids):
        # After commit there is nothing left to roll back; log instead of raising.
        try:
            self.cache.invalidate_principals(principal_ids)
        except Exception:
            logger.exception(
                "Post-commit invalidation failed; entries expire within the TTL",
                extra={'principal_ids': sorted(principal_ids)}
            )

    def invalidate_principal(self, principal_id) -> int:
        return self.invalidate_principals([principal_id])

    def invalidate_role(self, role_id) -> int:
        """Invalidate every principal holding the role."""
        return self.invalidate_principals(principals_holding_role(role_id))

    def invalidate_roles(self, role_ids: Iterable) -> int:
        return self.invalidate_principals(principals_holding_roles(role_ids))

    def invalidate_permission(self, permission_id) -> int:
        """Invalidate every principal holding the permission by role or direct grant."""
        return self.invalidate_principals(principals_affected_by_permission(permission_id))
