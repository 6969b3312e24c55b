"""
Management command to seed the canonical permission catalog.

Registers every (resource, action) pair the restaurant platform checks,
plus the protected `system_admin` system role holding all of them. This
command is idempotent and safe to re-run.
"""
from django.core.management.base import BaseCommand
from django.db import transaction

from apps.authz.catalog import PermissionCatalog
from apps.authz.constants import RoleScope
from apps.authz.exceptions import PermissionNotFound, RoleNotFound
from apps.authz.roles import RoleStore

# Resources that get the four standard actions.
CANONICAL_RESOURCES = [
    'business',
    'restaurant',
    'user',
    'role',
    'permission',
    'menu',
    'menuitem',
    'category',
    'subcategory',
    'modifier',
    'table',
    'venue',
    'zone',
    'order',
    'customer',
    'payment',
    'inventory',
    'invoice',
    'analytics',
    'report',
    'settings',
    'promotion',
    'kitchen',
    'cashier',
    'schedule',
    'loyalty',
]

STANDARD_ACTIONS = ['create', 'read', 'update', 'delete']

SPECIAL_PERMISSIONS = [
    ('restaurant', 'manage', 'Full management of restaurant'),
    ('order', 'process', 'Process and update order status'),
    ('loyalty', 'configure', 'Configure loyalty program settings'),
    ('analytics', 'view', 'View analytics and reports'),
    ('report', 'generate', 'Generate reports'),
    ('system', 'manage', 'Manage system settings'),
]

# System roles hold every permission in the catalog.
SYSTEM_ROLES = {
    'system_admin': {
        'description': 'System administrator with full access',
    },
}


def canonical_permissions():
    """All canonical (resource, action, description) triples."""
    permissions = [
        (resource, action, f'{action} {resource}')
        for resource in CANONICAL_RESOURCES
        for action in STANDARD_ACTIONS
    ]
    return permissions + SPECIAL_PERMISSIONS


class Command(BaseCommand):
    help = 'Seed canonical permissions and system roles (idempotent)'

    def handle(self, *args, **options):
        """Create missing permissions, then sync the system roles."""
        catalog = PermissionCatalog()
        store = RoleStore(catalog)

        created_count = 0
        existing_count = 0

        self.stdout.write('Seeding canonical permissions...\n')

        with transaction.atomic():
            for resource, action, description in canonical_permissions():
                try:
                    catalog.lookup(resource, action)
                    existing_count += 1
                except PermissionNotFound:
                    permission = catalog.register(resource, action, description)
                    created_count += 1
                    self.stdout.write(
                        self.style.SUCCESS(f'✓ Created: {permission}')
                    )

            self.stdout.write(
                self.style.SUCCESS(
                    f'\n✓ Permissions: {created_count} created, {existing_count} unchanged'
                )
            )

            all_permission_ids = list(catalog.all().values_list('id', flat=True))
            for role_name, role_config in SYSTEM_ROLES.items():
                try:
                    role = store.find_by_name(role_name)
                    self.stdout.write(self.style.HTTP_INFO(f'  Exists: {role_name}'))
                except RoleNotFound:
                    role = store.create_role(
                        name=role_name,
                        scope=RoleScope.SYSTEM,
                        description=role_config['description'],
                        is_system_role=True,
                    )
                    self.stdout.write(self.style.SUCCESS(f'✓ Created role: {role_name}'))

                added, removed = store.sync_permissions(role.id, all_permission_ids)
                if added or removed:
                    self.stdout.write(f'    Synced permissions: +{added} -{removed}')

        self.stdout.write(self.style.SUCCESS('\n✓ Seeding complete'))
