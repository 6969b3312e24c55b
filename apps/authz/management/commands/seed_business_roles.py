"""
Management command to seed the default roles of a business.

Creates restaurant_admin, manager, staff and customer as business-scoped
roles for the given business and syncs their permissions against the
catalog. Run `seed_permissions` first. Idempotent and safe to re-run.
"""
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from apps.authz.catalog import PermissionCatalog
from apps.authz.constants import RoleScope
from apps.authz.exceptions import RoleNotFound
from apps.authz.roles import RoleStore

# 'resource:*' expands to every action registered for the resource.
DEFAULT_ROLES = {
    'restaurant_admin': {
        'description': 'Restaurant administrator',
        'permissions': [
            'restaurant:*', 'business:read', 'business:update',
            'menu:*', 'menuitem:*', 'category:*', 'subcategory:*', 'modifier:*',
            'order:*', 'table:*', 'venue:*', 'zone:*', 'customer:*',
            'payment:*', 'inventory:*', 'invoice:*', 'analytics:*', 'report:*',
            'settings:*', 'promotion:*', 'kitchen:*', 'cashier:*', 'schedule:*',
            'loyalty:*',
            'user:read', 'user:create', 'user:update',
            'role:read',
        ],
    },
    'manager': {
        'description': 'Runs day-to-day restaurant operations',
        'permissions': [
            'restaurant:read', 'business:read',
            'menu:*', 'menuitem:*', 'category:*', 'modifier:*',
            'order:*', 'table:*', 'customer:read', 'payment:read',
            'inventory:*', 'analytics:view', 'analytics:read', 'report:read',
            'promotion:*', 'schedule:*', 'user:read',
        ],
    },
    'staff': {
        'description': 'Front-of-house and kitchen staff',
        'permissions': [
            'restaurant:read', 'menu:read', 'menuitem:read', 'category:read',
            'order:create', 'order:read', 'order:update', 'order:process',
            'table:read', 'table:update', 'kitchen:read', 'cashier:read',
        ],
    },
    'customer': {
        'description': 'Regular customer',
        'permissions': [
            'restaurant:read', 'menu:read', 'menuitem:read', 'category:read',
            'promotion:read', 'order:create', 'order:read',
        ],
    },
}


class Command(BaseCommand):
    help = 'Seed default roles for a business (idempotent)'

    def add_arguments(self, parser):
        parser.add_argument(
            'business_id',
            type=str,
            help='Business to seed roles for',
        )

    def handle(self, *args, **options):
        business_id = (options['business_id'] or '').strip()
        if not business_id:
            raise CommandError('business_id must not be empty')

        catalog = PermissionCatalog()
        if not catalog.all().exists():
            raise CommandError('The permission catalog is empty; run seed_permissions first')

        store = RoleStore(catalog)
        created_count = 0

        self.stdout.write(f'Seeding roles for business: {business_id}\n')

        with transaction.atomic():
            for role_name, role_config in DEFAULT_ROLES.items():
                try:
                    role = store.find_by_name(role_name, business_id)
                    self.stdout.write(self.style.HTTP_INFO(f'    Exists: {role_name}'))
                except RoleNotFound:
                    role = store.create_role(
                        name=role_name,
                        scope=RoleScope.BUSINESS,
                        business_id=business_id,
                        description=role_config['description'],
                    )
                    created_count += 1
                    self.stdout.write(self.style.SUCCESS(f'  ✓ Created role: {role_name}'))

                permission_ids = self._expand(catalog, role_config['permissions'])
                added, removed = store.sync_permissions(role.id, permission_ids)
                if added or removed:
                    self.stdout.write(f'      Synced permissions: +{added} -{removed}')

        self.stdout.write(
            self.style.SUCCESS(
                f'\n✓ Seeding complete: {created_count} roles created for {business_id}'
            )
        )

    def _expand(self, catalog, refs):
        """Resolve 'resource:action' and 'resource:*' references to permission ids."""
        permission_ids = set()
        for ref in refs:
            resource, _, action = ref.partition(':')
            if action == '*':
                permission_ids.update(
                    catalog.for_resource(resource).values_list('id', flat=True)
                )
                continue

            permission = catalog.all().filter(resource=resource, action=action).first()
            if permission is None:
                self.stdout.write(self.style.WARNING(f'  ⚠ Unknown permission skipped: {ref}'))
                continue
            permission_ids.add(permission.id)
        return permission_ids
