"""
Permission catalog: the set of (resource, action) pairs the system understands.
"""
import logging

from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction

from apps.authz.exceptions import DuplicatePermission, PermissionNotFound, ResolutionUnavailable
from apps.authz.models import AuditLog, Permission
from apps.authz.types import PermissionKey

logger = logging.getLogger(__name__)


def _normalize(value, field_name):
    value = (value or '').strip().lower()
    if not value:
        raise ValueError(f"Permission {field_name} must not be empty")
    return value


class PermissionCatalog:
    """
    Registry of permissions.

    Read-mostly: populated at deployment by `seed_permissions`, looked up
    on every resolution.
    """

    def register(self, resource: str, action: str, description: str = '',
                 actor=None) -> Permission:
        """
        Register a new permission.

        Args:
            resource: Resource name (e.g., 'order')
            action: Action name (e.g., 'read')
            description: Human-readable description
            actor: Principal performing the registration (for the audit trail)

        Returns:
            Permission instance

        Raises:
            DuplicatePermission: If the (resource, action) pair already exists
        """
        resource = _normalize(resource, 'resource')
        action = _normalize(action, 'action')

        if Permission.objects.filter(resource=resource, action=action).exists():
            raise DuplicatePermission(
                f"Permission '{resource}:{action}' already exists",
                resource=resource, action=action,
            )

        try:
            with transaction.atomic():
                permission = Permission.objects.create(
                    resource=resource,
                    action=action,
                    description=description,
                )
        except IntegrityError as e:
            # Lost a race with a concurrent registration of the same pair.
            raise DuplicatePermission(
                f"Permission '{resource}:{action}' already exists",
                resource=resource, action=action,
            ) from e

        AuditLog.log_action(
            action='permission_registered',
            target_type='Permission',
            target_id=permission.id,
            actor=actor,
            diff={'permission': str(permission)},
        )
        logger.info(
            f"Registered permission {permission}",
            extra={'permission_id': str(permission.id)}
        )
        return permission

    def lookup(self, resource: str, action: str) -> Permission:
        """
        Find a permission by pair.

        Raises:
            PermissionNotFound: If the pair is not registered
        """
        permission = Permission.objects.by_pair(
            (resource or '').strip().lower(),
            (action or '').strip().lower(),
        )
        if permission is None:
            raise PermissionNotFound(
                f"Permission '{resource}:{action}' does not exist",
                resource=resource, action=action,
            )
        return permission

    def get(self, permission_id) -> Permission:
        """
        Find a permission by id.

        Raises:
            PermissionNotFound: If no permission has this id
        """
        try:
            return Permission.objects.get(id=permission_id)
        except (Permission.DoesNotExist, ValidationError, ValueError):
            raise PermissionNotFound(
                f"Permission '{permission_id}' does not exist",
                permission_id=str(permission_id),
            )

    def all(self):
        return Permission.objects.all()

    def for_resource(self, resource: str):
        return Permission.objects.for_resource((resource or '').strip().lower())

    def delete(self, permission_id, actor=None) -> None:
        """
        Remove a permission from the catalog, and with it every role link and direct grant.

        Raises:
            PermissionNotFound: If no permission has this id
        """
        with transaction.atomic():
            permission = self.get(permission_id)
            label = str(permission)
            permission.delete()

            AuditLog.log_action(
                action='permission_deleted',
                target_type='Permission',
                target_id=permission_id,
                actor=actor,
                diff={'permission': label},
            )

    def load_permission(self, permission_id) -> PermissionKey:
        """
        Store hook for the engine.

        Raises:
            PermissionNotFound: If no permission has this id
            ResolutionUnavailable: If storage fails
        """
        try:
            resource, action = Permission.objects.filter(
                id=permission_id
            ).values_list('resource', 'action').get()
        except (Permission.DoesNotExist, ValidationError, ValueError):
            raise PermissionNotFound(
                f"Permission '{permission_id}' does not exist",
                permission_id=str(permission_id),
            )
        except DatabaseError as e:
            raise ResolutionUnavailable("Permission storage unavailable") from e
        return PermissionKey(resource, action)
