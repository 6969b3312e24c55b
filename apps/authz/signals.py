"""
Authorization signals for cache invalidation.

Every write that can change a principal's effective permissions drops the
affected cache entries from inside the writing transaction. A failed
invalidation raises ResolutionUnavailable, which rolls the write back.
"""
from django.apps import apps
from django.db.models.signals import m2m_changed, post_delete, post_save, pre_delete
from django.dispatch import receiver

from apps.authz.models import (
    DirectPermission, Permission, Principal, PrincipalRole, Role, RolePermission,
)


def _invalidator():
    return apps.get_app_config('authz').invalidator


@receiver(post_save, sender=Principal)
def invalidate_on_principal_save(sender, instance, created, **kwargs):
    """Activity, legacy role and business changes alter resolution."""
    if created:
        # Nothing can be cached for a principal that did not exist.
        return
    _invalidator().invalidate_principal(instance.pk)


@receiver(post_delete, sender=Principal)
def invalidate_on_principal_delete(sender, instance, **kwargs):
    _invalidator().invalidate_principal(instance.pk)


@receiver(post_save, sender=PrincipalRole)
@receiver(post_delete, sender=PrincipalRole)
def invalidate_on_assignment_change(sender, instance, **kwargs):
    _invalidator().invalidate_principal(instance.principal_id)


@receiver(post_save, sender=DirectPermission)
@receiver(post_delete, sender=DirectPermission)
def invalidate_on_direct_grant_change(sender, instance, **kwargs):
    _invalidator().invalidate_principal(instance.principal_id)


@receiver(post_save, sender=RolePermission)
@receiver(post_delete, sender=RolePermission)
def invalidate_on_role_permission_change(sender, instance, **kwargs):
    _invalidator().invalidate_role(instance.role_id)


@receiver(post_save, sender=Role)
def invalidate_on_role_save(sender, instance, created, **kwargs):
    """Renames and scope changes can change whether a role applies or elevates."""
    if created:
        return
    _invalidator().invalidate_role(instance.pk)


@receiver(pre_delete, sender=Role)
def invalidate_on_role_delete(sender, instance, **kwargs):
    # Holders must be read before the cascade removes their assignments.
    _invalidator().invalidate_role(instance.pk)


@receiver(pre_delete, sender=Permission)
def invalidate_on_permission_delete(sender, instance, **kwargs):
    _invalidator().invalidate_permission(instance.pk)


@receiver(m2m_changed, sender=Role.permissions.through)
def invalidate_on_role_permissions_m2m(sender, instance, action, reverse, pk_set, **kwargs):
    """
    Role.permissions.add()/remove()/clear() bulk-write the through table
    without post_save or post_delete.
    """
    if action not in ('post_add', 'post_remove', 'pre_clear'):
        return

    invalidator = _invalidator()
    if not reverse:
        invalidator.invalidate_role(instance.pk)
    elif action == 'pre_clear':
        invalidator.invalidate_permission(instance.pk)
    else:
        invalidator.invalidate_roles(pk_set or ())


@receiver(m2m_changed, sender=Principal.roles.through)
def invalidate_on_principal_roles_m2m(sender, instance, action, reverse, pk_set, **kwargs):
    if action not in ('post_add', 'post_remove', 'pre_clear'):
        return

    invalidator = _invalidator()
    if not reverse:
        invalidator.invalidate_principal(instance.pk)
    elif action == 'pre_clear':
        invalidator.invalidate_role(instance.pk)
    else:
        invalidator.invalidate_principals(pk_set or ())
