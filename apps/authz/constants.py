"""
Enumerations shared by the authorization models and the engine.
"""
from django.db import models


class LegacyRole(models.TextChoices):
    """
    Single role field kept on every principal for backward compatibility.

    Only the elevated roles change resolution (they grant global scope);
    the others are informational and contribute nothing by themselves.
    """
    SUPER_ADMIN = 'super_admin', 'Super Admin'
    SYSTEM_ADMIN = 'system_admin', 'System Admin'
    RESTAURANT_ADMIN = 'restaurant_admin', 'Restaurant Admin'
    MANAGER = 'manager', 'Manager'
    STAFF = 'staff', 'Staff'
    CUSTOMER = 'customer', 'Customer'

    @property
    def is_elevated(self):
        return self in ELEVATED_LEGACY_ROLES


ELEVATED_LEGACY_ROLES = frozenset({LegacyRole.SUPER_ADMIN, LegacyRole.SYSTEM_ADMIN})


class RoleScope(models.TextChoices):
    SYSTEM = 'system', 'System'
    BUSINESS = 'business', 'Business'


class ScopeKind(models.TextChoices):
    GLOBAL = 'global', 'Global'
    BUSINESS = 'business', 'Business'


class DenyReason(models.TextChoices):
    OUT_OF_SCOPE = 'out_of_scope', 'Out of scope'
    PERMISSION_MISSING = 'permission_missing', 'Permission missing'
    PRINCIPAL_NOT_FOUND = 'principal_not_found', 'Principal not found'
    PRINCIPAL_INACTIVE = 'principal_inactive', 'Principal inactive'
