"""
Principal resolution and assignment administration.

PrincipalResolver is a pure read: it loads raw assignments and performs
no merging. PrincipalStore mutates assignments; like the role store, its
cache invalidation comes from ORM signals inside the same transaction.
"""
import logging
import uuid
from typing import Iterable, Optional

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction

from apps.authz.constants import LegacyRole
from apps.authz.exceptions import PrincipalNotFound, ResolutionUnavailable
from apps.authz.models import AuditLog, DirectPermission, Principal, PrincipalRole
from apps.authz.types import DirectGrant, PrincipalContext

logger = logging.getLogger(__name__)


def canonical_principal_id(principal_id) -> str:
    """
    The dashed lower-case spelling of a principal id.

    Cache entries and invalidations are keyed by this form, so every
    spelling the ORM accepts must map onto it.

    Raises:
        PrincipalNotFound: If the id is not a UUID
    """
    try:
        return str(uuid.UUID(str(principal_id)))
    except ValueError:
        raise PrincipalNotFound(
            f"Principal '{principal_id}' does not exist",
            principal_id=str(principal_id),
        )


def _get_principal(principal_id) -> Principal:
    try:
        return Principal.objects.get(id=principal_id)
    except (Principal.DoesNotExist, ValidationError, ValueError):
        raise PrincipalNotFound(
            f"Principal '{principal_id}' does not exist",
            principal_id=str(principal_id),
        )


class PrincipalResolver:
    """Loads the raw authorization inputs of a principal."""

    def resolve(self, principal_id) -> PrincipalContext:
        """
        Load a principal's legacy role, role references, direct grants,
        home business and activity flag.

        Raises:
            PrincipalNotFound: If the principal does not exist (malformed ids included)
            ResolutionUnavailable: If storage fails
        """
        try:
            principal = _get_principal(principal_id)
            role_refs = tuple(
                str(role_id) for role_id in
                PrincipalRole.objects.filter(principal=principal)
                .order_by('role_id').values_list('role_id', flat=True)
            )
            direct_grants = tuple(
                DirectGrant(permission_id=str(permission_id), business_id=business_id)
                for permission_id, business_id in
                DirectPermission.objects.filter(principal=principal)
                .order_by('permission_id', 'business_id')
                .values_list('permission_id', 'business_id')
            )
        except DatabaseError as e:
            raise ResolutionUnavailable(
                "Principal storage unavailable",
                principal_id=str(principal_id),
            ) from e

        return PrincipalContext(
            principal_id=str(principal.id),
            legacy_role=LegacyRole(principal.legacy_role),
            role_refs=role_refs,
            direct_grants=direct_grants,
            business_id=principal.business_id,
            is_active=principal.is_active,
        )


class PrincipalStore:
    """
    Administrative operations on principals: creation, role assignment,
    direct grants, activation and business transfer. All idempotent.
    """

    def __init__(self, role_store=None):
        from apps.authz.roles import RoleStore
        self.role_store = role_store or RoleStore()

    def create_principal(self, legacy_role=LegacyRole.CUSTOMER, business_id: Optional[str] = None,
                         role_refs: Iterable = (), display_name: str = '',
                         is_active: bool = True) -> Principal:
        """
        Create a principal, optionally with initial role assignments.

        Args:
            legacy_role: One of LegacyRole
            business_id: Home business
            role_refs: Role ids to assign
            display_name: Name used in audit output
            is_active: Whether the principal starts active
        """
        legacy_role = LegacyRole(legacy_role)
        with transaction.atomic():
            principal = Principal.objects.create(
                legacy_role=legacy_role,
                business_id=str(business_id) if business_id else None,
                display_name=display_name,
                is_active=is_active,
            )
            for role_id in role_refs:
                PrincipalRole.objects.get_or_create(
                    principal=principal,
                    role=self.role_store.get(role_id),
                )
        return principal

    def get(self, principal_id) -> Principal:
        return _get_principal(principal_id)

    def assign_role(self, principal_id, role_id, actor=None) -> bool:
        """
        Assign a role to a principal.

        A business role from another business may be assigned; it simply
        contributes nothing until the principal's business matches.

        Returns:
            True if newly assigned, False if already held
        """
        with transaction.atomic():
            principal = _get_principal(principal_id)
            role = self.role_store.get(role_id)
            _, created = PrincipalRole.objects.get_or_create(
                principal=principal,
                role=role,
                defaults={'assigned_by': actor},
            )

            if created:
                if role.business_id and role.business_id != principal.business_id:
                    logger.warning(
                        "Assigned a business role outside the principal's business; it will not apply",
                        extra={
                            'principal_id': str(principal.id),
                            'role_id': str(role.id),
                            'role_business_id': role.business_id,
                            'principal_business_id': principal.business_id,
                        }
                    )
                AuditLog.log_action(
                    action='role_assigned',
                    target_type='Principal',
                    target_id=principal.id,
                    actor=actor,
                    business_id=role.business_id or principal.business_id,
                    diff={'role': role.name, 'action': 'assigned'},
                )
        return created

    def remove_role(self, principal_id, role_id, actor=None) -> bool:
        """
        Remove a role from a principal. Removing an unassigned role is a no-op.

        Returns:
            True if the role was removed, False if it was not held
        """
        with transaction.atomic():
            principal = _get_principal(principal_id)
            role = self.role_store.get(role_id)
            deleted_count, _ = PrincipalRole.objects.filter(
                principal=principal,
                role=role,
            ).delete()

            if deleted_count:
                AuditLog.log_action(
                    action='role_removed',
                    target_type='Principal',
                    target_id=principal.id,
                    actor=actor,
                    business_id=role.business_id or principal.business_id,
                    diff={'role': role.name, 'action': 'removed'},
                )
        return bool(deleted_count)

    def grant_permission(self, principal_id, permission_id, business_id: Optional[str] = None,
                         reason: str = '', actor=None) -> bool:
        """
        Attach a permission directly to a principal.

        Args:
            business_id: Optional qualifier; when set, the grant applies only
                while the principal's home business equals it

        Returns:
            True if newly granted, False if an identical grant existed
        """
        business_id = str(business_id) if business_id else None
        with transaction.atomic():
            principal = _get_principal(principal_id)
            permission = self.role_store.catalog.get(permission_id)
            _, created = DirectPermission.objects.get_or_create(
                principal=principal,
                permission=permission,
                business_id=business_id,
                defaults={'reason': reason, 'granted_by': actor},
            )

            if created:
                AuditLog.log_action(
                    action='permission_granted',
                    target_type='Principal',
                    target_id=principal.id,
                    actor=actor,
                    business_id=business_id or principal.business_id,
                    diff={'permission': str(permission), 'business_id': business_id},
                    metadata={'reason': reason},
                )
        return created

    def revoke_permission(self, principal_id, permission_id, business_id: Optional[str] = None,
                          actor=None) -> bool:
        """
        Remove a direct grant. Revoking a grant that does not exist is a no-op.

        Returns:
            True if a grant was removed
        """
        business_id = str(business_id) if business_id else None
        with transaction.atomic():
            principal = _get_principal(principal_id)
            permission = self.role_store.catalog.get(permission_id)
            deleted_count, _ = DirectPermission.objects.filter(
                principal=principal,
                permission=permission,
                business_id=business_id,
            ).delete()

            if deleted_count:
                AuditLog.log_action(
                    action='permission_revoked',
                    target_type='Principal',
                    target_id=principal.id,
                    actor=actor,
                    business_id=business_id or principal.business_id,
                    diff={'permission': str(permission), 'business_id': business_id},
                )
        return bool(deleted_count)

    def _update(self, principal_id, actor, action, **changes) -> Principal:
        with transaction.atomic():
            principal = _get_principal(principal_id)
            before = {field: getattr(principal, field) for field in changes}
            if before == changes:
                return principal

            for field, value in changes.items():
                setattr(principal, field, value)
            principal.save(update_fields=list(changes) + ['updated_at'])

            AuditLog.log_action(
                action=action,
                target_type='Principal',
                target_id=principal.id,
                actor=actor,
                business_id=principal.business_id or before.get('business_id'),
                diff={
                    field: {'before': before[field], 'after': value}
                    for field, value in changes.items()
                },
            )
        return principal

    def deactivate(self, principal_id, actor=None) -> Principal:
        """Deactivate a principal; it resolves to the empty set from now on."""
        return self._update(principal_id, actor, 'principal_deactivated', is_active=False)

    def activate(self, principal_id, actor=None) -> Principal:
        return self._update(principal_id, actor, 'principal_activated', is_active=True)

    def move_to_business(self, principal_id, business_id: Optional[str], actor=None) -> Principal:
        """
        Change a principal's home business.

        Business roles of the old business stay assigned but stop applying.
        """
        business_id = str(business_id) if business_id else None
        return self._update(principal_id, actor, 'principal_moved', business_id=business_id)

    def set_legacy_role(self, principal_id, legacy_role, actor=None) -> Principal:
        legacy_role = LegacyRole(legacy_role)
        return self._update(principal_id, actor, 'legacy_role_changed', legacy_role=legacy_role.value)
