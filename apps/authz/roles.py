"""
Role store: named bundles of permissions, system-wide or business-scoped.

Every mutation runs in a transaction. Cache invalidation is emitted by the
ORM signal handlers in `apps.authz.signals` from inside that same
transaction, so a change is never persisted without its invalidation.
"""
import logging
from typing import Iterable, Optional

from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction

from apps.authz.catalog import PermissionCatalog
from apps.authz.constants import RoleScope
from apps.authz.exceptions import (
    DuplicateRole, InvalidScope, OutOfScopeError,
    ResolutionUnavailable, RoleNotFound, SystemRoleProtected,
)
from apps.authz.models import AuditLog, Permission, Role, RolePermission
from apps.authz.types import EffectivePermissionSet, PermissionKey, RoleSnapshot

logger = logging.getLogger(__name__)


def _validate_scope(scope, business_id):
    try:
        scope = RoleScope(scope)
    except ValueError:
        raise InvalidScope(f"Unknown role scope '{scope}'", scope=scope)

    if scope == RoleScope.BUSINESS and not business_id:
        raise InvalidScope("Business-scoped roles require a business_id", scope=scope)
    if scope == RoleScope.SYSTEM and business_id:
        raise InvalidScope(
            "System roles must not carry a business_id",
            scope=scope, business_id=business_id,
        )
    return scope


def _check_actor(role: Role, acting_set: Optional[EffectivePermissionSet]):
    """
    Business-scoped actors may only manage their own business's roles,
    and never protected system roles.

    `acting_set` None means a platform-level caller (seed commands, system admin tooling).
    """
    if acting_set is None or acting_set.scope.is_global:
        return
    if role.is_system_role:
        raise SystemRoleProtected(
            f"Role '{role.name}' is a protected system role",
            role_id=str(role.id),
        )
    if role.scope != RoleScope.BUSINESS or role.business_id != acting_set.scope.business_id:
        raise OutOfScopeError(
            f"Role '{role.name}' belongs to another business",
            role_id=str(role.id),
        )


class RoleStore:
    """Create, look up and mutate roles."""

    def __init__(self, catalog: Optional[PermissionCatalog] = None):
        self.catalog = catalog or PermissionCatalog()

    def create_role(self, name: str, scope, business_id: Optional[str] = None,
                    permission_refs: Iterable = (), description: str = '',
                    is_system_role: bool = False, actor=None) -> Role:
        """
        Create a role.

        Args:
            name: Role name, unique within its scope
            scope: 'system' or 'business'
            business_id: Owning business, required iff scope is 'business'
            permission_refs: Permission ids to attach
            description: Role description
            is_system_role: Protect the role from tenant admins
            actor: Principal performing the change (audit trail)

        Returns:
            Role instance

        Raises:
            InvalidScope: If scope and business_id disagree
            DuplicateRole: If the name is already taken in that scope
            PermissionNotFound: If a permission reference does not exist
        """
        name = (name or '').strip()
        if not name:
            raise ValueError("Role name must not be empty")
        scope = _validate_scope(scope, business_id)
        business_id = str(business_id) if business_id else None

        if Role.objects.by_name(name, business_id) is not None:
            raise DuplicateRole(
                f"Role '{name}' already exists",
                name=name, business_id=business_id,
            )

        try:
            with transaction.atomic():
                role = Role.objects.create(
                    name=name,
                    description=description,
                    scope=scope,
                    business_id=business_id,
                    is_system_role=is_system_role,
                )
                for permission_id in permission_refs:
                    RolePermission.objects.grant_permission(role, self.catalog.get(permission_id))
        except IntegrityError as e:
            raise DuplicateRole(
                f"Role '{name}' already exists",
                name=name, business_id=business_id,
            ) from e

        AuditLog.log_action(
            action='role_created',
            target_type='Role',
            target_id=role.id,
            actor=actor,
            business_id=business_id,
            diff={
                'name': name,
                'scope': scope.value,
                'is_system_role': is_system_role,
                'permissions': sorted(str(p) for p in role.permissions.all()),
            },
        )
        logger.info(
            f"Created role {role}",
            extra={'role_id': str(role.id), 'business_id': business_id}
        )
        return role

    def get(self, role_id) -> Role:
        """
        Raises:
            RoleNotFound: If no role has this id
        """
        try:
            return Role.objects.get(id=role_id)
        except (Role.DoesNotExist, ValidationError, ValueError):
            raise RoleNotFound(f"Role '{role_id}' does not exist", role_id=str(role_id))

    def find_by_name(self, name: str, business_id: Optional[str] = None) -> Role:
        """
        Find a role by name.

        System roles are found without a business id; business roles need one.

        Raises:
            RoleNotFound: If nothing matches
        """
        role = Role.objects.by_name(name, str(business_id) if business_id else None)
        if role is None:
            raise RoleNotFound(
                f"Role '{name}' does not exist",
                name=name, business_id=business_id,
            )
        return role

    def roles_for_business(self, business_id: str):
        """Roles usable inside a business: its own plus all system roles."""
        return Role.objects.visible_to_business(str(business_id))

    def attach_permission(self, role_id, permission_id, actor=None) -> bool:
        """
        Attach a permission to a role (idempotent).

        Returns:
            True if the permission was newly attached, False if already present
        """
        with transaction.atomic():
            role = self.get(role_id)
            permission = self.catalog.get(permission_id)
            _, created = RolePermission.objects.grant_permission(role, permission)

            if created:
                AuditLog.log_action(
                    action='permission_attached',
                    target_type='Role',
                    target_id=role.id,
                    actor=actor,
                    business_id=role.business_id,
                    diff={'permission': str(permission), 'action': 'attached'},
                )
        return created

    def detach_permission(self, role_id, permission_id, actor=None) -> bool:
        """
        Detach a permission from a role.

        Detaching a permission the role does not have is a no-op.

        Returns:
            True if a permission was removed, False otherwise
        """
        with transaction.atomic():
            role = self.get(role_id)
            permission = self.catalog.get(permission_id)
            deleted_count, _ = RolePermission.objects.revoke_permission(role, permission)

            if deleted_count:
                AuditLog.log_action(
                    action='permission_detached',
                    target_type='Role',
                    target_id=role.id,
                    actor=actor,
                    business_id=role.business_id,
                    diff={'permission': str(permission), 'action': 'detached'},
                )
        return bool(deleted_count)

    def sync_permissions(self, role_id, permission_ids: Iterable, actor=None):
        """
        Make a role hold exactly the given permissions.

        Returns:
            (added, removed) counts
        """
        with transaction.atomic():
            role = self.get(role_id)
            current = {
                str(pid) for pid in
                RolePermission.objects.filter(role=role).values_list('permission_id', flat=True)
            }
            target = {str(pid) for pid in permission_ids}

            for permission_id in sorted(target - current):
                self.attach_permission(role.id, permission_id, actor=actor)
            for permission_id in sorted(current - target):
                self.detach_permission(role.id, permission_id, actor=actor)
        return len(target - current), len(current - target)

    def rename_role(self, role_id, new_name: str, acting_set: Optional[EffectivePermissionSet] = None,
                    actor=None) -> Role:
        """
        Rename a role.

        Args:
            acting_set: Effective set of the acting principal; a business-scoped
                actor may not rename protected system roles

        Raises:
            SystemRoleProtected, OutOfScopeError, DuplicateRole
        """
        new_name = (new_name or '').strip()
        if not new_name:
            raise ValueError("Role name must not be empty")

        with transaction.atomic():
            role = self.get(role_id)
            _check_actor(role, acting_set)
            if new_name == role.name:
                return role

            existing = Role.objects.by_name(new_name, role.business_id)
            if existing is not None:
                raise DuplicateRole(
                    f"Role '{new_name}' already exists",
                    name=new_name, business_id=role.business_id,
                )

            old_name = role.name
            role.name = new_name
            role.save(update_fields=['name', 'updated_at'])

            AuditLog.log_action(
                action='role_renamed',
                target_type='Role',
                target_id=role.id,
                actor=actor,
                business_id=role.business_id,
                diff={'name': {'before': old_name, 'after': new_name}},
            )
        return role

    def delete_role(self, role_id, acting_set: Optional[EffectivePermissionSet] = None,
                    actor=None) -> None:
        """
        Delete a role together with its permission links and assignments.

        Raises:
            RoleNotFound, SystemRoleProtected, OutOfScopeError
        """
        with transaction.atomic():
            role = self.get(role_id)
            _check_actor(role, acting_set)

            snapshot = {'name': role.name, 'scope': role.scope}
            business_id = role.business_id
            role.delete()

            AuditLog.log_action(
                action='role_deleted',
                target_type='Role',
                target_id=role_id,
                actor=actor,
                business_id=business_id,
                diff=snapshot,
            )
        logger.info(
            f"Deleted role {snapshot['name']}",
            extra={'role_id': str(role_id), 'business_id': business_id}
        )

    def load_role(self, role_id) -> RoleSnapshot:
        """
        Store hook for the engine.

        Raises:
            RoleNotFound: If no role has this id
            ResolutionUnavailable: If storage fails
        """
        try:
            role = Role.objects.get(id=role_id)
            permissions = frozenset(
                PermissionKey(resource, action)
                for resource, action in Permission.objects.filter(
                    role_permissions__role=role
                ).values_list('resource', 'action')
            )
        except (Role.DoesNotExist, ValidationError, ValueError):
            raise RoleNotFound(f"Role '{role_id}' does not exist", role_id=str(role_id))
        except DatabaseError as e:
            raise ResolutionUnavailable("Role storage unavailable") from e

        return RoleSnapshot(
            id=str(role.id),
            name=role.name,
            scope=RoleScope(role.scope),
            business_id=role.business_id,
            is_system_role=role.is_system_role,
            permissions=permissions,
        )

    def load_permission(self, permission_id) -> PermissionKey:
        return self.catalog.load_permission(permission_id)
