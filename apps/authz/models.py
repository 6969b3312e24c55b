"""
Authorization models.

Implements:
- Permission (global catalog of resource/action pairs)
- Role (system-wide or business-scoped bundles of permissions)
- RolePermission (maps permissions to roles)
- Principal (authenticated actor with legacy role and home business)
- PrincipalRole (RBAC role assignments)
- DirectPermission (per-principal grants, optionally business-qualified)
- AuditLog (trail of administrative mutations)

Businesses are never modelled here: `business_id` is an opaque key owned
by the surrounding platform.
"""
import logging
from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.db.models import Q

from apps.core.models import BaseModel
from apps.authz.constants import LegacyRole, RoleScope

logger = logging.getLogger(__name__)

BUSINESS_ID_MAX_LENGTH = 64


class PermissionManager(models.Manager):
    """Manager for Permission queries."""

    def by_pair(self, resource, action):
        """Find permission by (resource, action)."""
        return self.filter(resource=resource, action=action).first()

    def for_resource(self, resource):
        """Get all permissions on a resource."""
        return self.filter(resource=resource)


class Permission(BaseModel):
    """
    Global permission definitions, shared across all businesses.

    Canonical permissions are seeded with `seed_permissions`; the pair
    (resource, action) is unique.
    """

    resource = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Resource name (e.g., 'order', 'menuitem')"
    )
    action = models.CharField(
        max_length=64,
        help_text="Action on the resource (e.g., 'read', 'update')"
    )
    description = models.TextField(
        blank=True,
        help_text="What this permission grants"
    )

    objects = PermissionManager()

    class Meta:
        db_table = 'authz_permissions'
        ordering = ['resource', 'action']
        constraints = [
            models.UniqueConstraint(
                fields=['resource', 'action'],
                name='authz_permission_unique_pair',
            ),
        ]

    def __str__(self):
        return f"{self.resource}:{self.action}"


class RoleManager(models.Manager):
    """Manager for Role queries with business scoping."""

    def system_roles(self):
        """Roles that apply across all businesses."""
        return self.filter(scope=RoleScope.SYSTEM)

    def for_business(self, business_id):
        """Roles owned by one business."""
        return self.filter(scope=RoleScope.BUSINESS, business_id=business_id)

    def visible_to_business(self, business_id):
        """The business's own roles plus every system role."""
        return self.system_roles() | self.for_business(business_id)

    def by_name(self, name, business_id=None):
        """
        Find role by name.

        Without a business id only system roles match; with one, only that
        business's roles match.
        """
        if business_id is None:
            return self.filter(scope=RoleScope.SYSTEM, name=name).first()
        return self.filter(scope=RoleScope.BUSINESS, business_id=business_id, name=name).first()


class Role(BaseModel):
    """
    Named bundle of permissions.

    System roles apply everywhere and have no business; business roles
    apply only to principals whose home business matches `business_id`.
    """

    name = models.CharField(
        max_length=100,
        help_text="Role name (unique within its scope)"
    )
    description = models.TextField(
        blank=True,
        help_text="Role description"
    )
    scope = models.CharField(
        max_length=16,
        choices=RoleScope.choices,
        default=RoleScope.BUSINESS,
        db_index=True,
        help_text="'system' applies across businesses, 'business' to one"
    )
    business_id = models.CharField(
        max_length=BUSINESS_ID_MAX_LENGTH,
        null=True,
        blank=True,
        db_index=True,
        help_text="Owning business (required iff scope is 'business')"
    )
    is_system_role = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Protected from deletion and renaming by business admins"
    )
    permissions = models.ManyToManyField(
        Permission,
        through='RolePermission',
        related_name='roles',
    )

    objects = RoleManager()

    class Meta:
        db_table = 'authz_roles'
        ordering = ['scope', 'business_id', 'name']
        constraints = [
            models.UniqueConstraint(
                fields=['name'],
                condition=Q(business_id__isnull=True),
                name='authz_role_unique_system_name',
            ),
            models.UniqueConstraint(
                fields=['business_id', 'name'],
                condition=Q(business_id__isnull=False),
                name='authz_role_unique_business_name',
            ),
        ]
        indexes = [
            models.Index(fields=['scope', 'is_system_role']),
        ]

    def __str__(self):
        if self.scope == RoleScope.SYSTEM:
            return f"{self.name} (system)"
        return f"{self.name} @ {self.business_id}"

    def clean(self):
        """Scope and business id must agree."""
        super().clean()
        if self.scope == RoleScope.BUSINESS and not self.business_id:
            raise ValidationError("Business-scoped roles require a business_id")
        if self.scope == RoleScope.SYSTEM and self.business_id:
            raise ValidationError("System roles must not carry a business_id")


class RolePermissionManager(models.Manager):
    """Manager for RolePermission queries."""

    def grant_permission(self, role, permission):
        """Grant permission to role (idempotent)."""
        return self.get_or_create(role=role, permission=permission)

    def revoke_permission(self, role, permission):
        """Revoke permission from role; revoking an absent permission is a no-op."""
        return self.filter(role=role, permission=permission).delete()


class RolePermission(BaseModel):
    """Maps permissions to roles."""

    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='role_permissions',
        help_text="Role that grants this permission"
    )
    permission = models.ForeignKey(
        Permission,
        on_delete=models.CASCADE,
        related_name='role_permissions',
        help_text="Permission being granted"
    )

    objects = RolePermissionManager()

    class Meta:
        db_table = 'authz_role_permissions'
        ordering = ['role', 'permission']
        constraints = [
            models.UniqueConstraint(
                fields=['role', 'permission'],
                name='authz_role_permission_unique',
            ),
        ]

    def __str__(self):
        return f"{self.role.name} -> {self.permission}"


class Principal(BaseModel):
    """
    An authenticated actor being authorized.

    Credentials live elsewhere; this record only carries what resolution
    needs. `legacy_role` predates RBAC and is still honoured.
    """

    display_name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Human-readable name for audit output"
    )
    legacy_role = models.CharField(
        max_length=32,
        choices=LegacyRole.choices,
        default=LegacyRole.CUSTOMER,
        db_index=True,
        help_text="Single role kept for backward compatibility"
    )
    business_id = models.CharField(
        max_length=BUSINESS_ID_MAX_LENGTH,
        null=True,
        blank=True,
        db_index=True,
        help_text="Home business; pins scope for non-elevated principals"
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Inactive principals resolve to the empty permission set"
    )
    roles = models.ManyToManyField(
        Role,
        through='PrincipalRole',
        through_fields=('principal', 'role'),
        related_name='principals',
    )

    class Meta:
        db_table = 'authz_principals'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['business_id', 'is_active']),
        ]

    def __str__(self):
        return self.display_name or str(self.id)


class PrincipalRole(BaseModel):
    """
    Maps roles to principals.

    Unlike role-to-permission links, an assignment does not check that a
    business role matches the principal's business: a mismatched
    assignment is ignored at resolution time instead.
    """

    principal = models.ForeignKey(
        Principal,
        on_delete=models.CASCADE,
        related_name='role_assignments',
        help_text="Principal holding the role"
    )
    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='assignments',
        help_text="Role assigned to the principal"
    )
    assigned_by = models.ForeignKey(
        Principal,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='role_assignments_made',
        help_text="Principal who assigned this role"
    )

    class Meta:
        db_table = 'authz_principal_roles'
        ordering = ['principal', 'role']
        constraints = [
            models.UniqueConstraint(
                fields=['principal', 'role'],
                name='authz_principal_role_unique',
            ),
        ]

    def __str__(self):
        return f"{self.principal} -> {self.role.name}"


class DirectPermission(BaseModel):
    """
    Permission attached straight to a principal.

    Unqualified grants (`business_id` empty) apply regardless of business;
    qualified grants apply only while the principal's home business matches.
    """

    principal = models.ForeignKey(
        Principal,
        on_delete=models.CASCADE,
        related_name='direct_permissions',
        help_text="Principal receiving the grant"
    )
    permission = models.ForeignKey(
        Permission,
        on_delete=models.CASCADE,
        related_name='direct_grants',
        help_text="Permission granted"
    )
    business_id = models.CharField(
        max_length=BUSINESS_ID_MAX_LENGTH,
        null=True,
        blank=True,
        help_text="Optional business qualifier"
    )
    reason = models.TextField(
        blank=True,
        help_text="Reason for this grant"
    )
    granted_by = models.ForeignKey(
        Principal,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='direct_grants_made',
        help_text="Principal who made this grant"
    )

    class Meta:
        db_table = 'authz_direct_permissions'
        ordering = ['principal', 'permission']
        constraints = [
            models.UniqueConstraint(
                fields=['principal', 'permission'],
                condition=Q(business_id__isnull=True),
                name='authz_direct_permission_unique_global',
            ),
            models.UniqueConstraint(
                fields=['principal', 'permission', 'business_id'],
                condition=Q(business_id__isnull=False),
                name='authz_direct_permission_unique_business',
            ),
        ]

    def __str__(self):
        qualifier = f" @ {self.business_id}" if self.business_id else ''
        return f"{self.permission} to {self.principal}{qualifier}"


class AuditLogManager(models.Manager):
    """Manager for AuditLog queries."""

    def by_action(self, action):
        return self.filter(action=action)


class AuditLog(BaseModel):
    """
    Trail of role, permission and assignment changes.
    """

    actor = models.ForeignKey(
        Principal,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs',
        help_text="Principal who performed the action (null for system actions)"
    )
    business_id = models.CharField(
        max_length=BUSINESS_ID_MAX_LENGTH,
        null=True,
        blank=True,
        db_index=True,
        help_text="Business this action belongs to (null for platform-level)"
    )
    action = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Action performed (e.g., 'role_created', 'permission_detached')"
    )
    target_type = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Type of target entity (e.g., 'Role', 'Principal')"
    )
    target_id = models.CharField(
        max_length=64,
        blank=True,
        db_index=True,
        help_text="ID of target entity"
    )
    diff = models.JSONField(
        default=dict,
        blank=True,
        help_text="Before/after changes"
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Additional context"
    )

    objects = AuditLogManager()

    class Meta:
        db_table = 'authz_audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['business_id', 'created_at']),
            models.Index(fields=['target_type', 'target_id']),
        ]

    def __str__(self):
        return f"{self.business_id or 'platform'} - {self.action}"

    @classmethod
    def log_action(cls, action, target_type, target_id=None, actor=None,
                   business_id=None, diff=None, metadata=None):
        """
        Create an audit log entry.

        Runs in its own savepoint so a failed insert does not poison the
        caller's transaction; failures are logged and swallowed.

        Returns:
            AuditLog instance, or None if the write failed
        """
        try:
            with transaction.atomic():
                return cls.objects.create(
                    action=action,
                    target_type=target_type,
                    target_id=str(target_id) if target_id else '',
                    actor=actor,
                    business_id=business_id,
                    diff=diff or {},
                    metadata=metadata or {},
                )
        except Exception as e:
            logger.error(
                f"Failed to create audit log: {str(e)}",
                extra={'action': action, 'business_id': business_id},
                exc_info=True
            )
            return None
