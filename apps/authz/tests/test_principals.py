"""
Tests for principal resolution and assignment administration.
"""
import pytest

from apps.authz.constants import LegacyRole, RoleScope
from apps.authz.exceptions import PermissionNotFound, PrincipalNotFound, RoleNotFound
from apps.authz.models import AuditLog, DirectPermission, PrincipalRole
from apps.authz.principals import PrincipalResolver
from apps.authz.types import DirectGrant


@pytest.fixture
def resolver():
    return PrincipalResolver()


@pytest.fixture
def staff_role(role_store, permissions):
    return role_store.create_role(
        'staff', RoleScope.BUSINESS, business_id='biz-1',
        permission_refs=[permissions['order:read'].id],
    )


@pytest.mark.django_db
class TestResolve:

    def test_resolve_raw_assignments(self, resolver, principal_store, staff_role, permissions):
        principal = principal_store.create_principal(
            LegacyRole.STAFF, business_id='biz-1', role_refs=[staff_role.id],
        )
        principal_store.grant_permission(principal.id, permissions['report:generate'].id)
        principal_store.grant_permission(principal.id, permissions['menu:update'].id, business_id='biz-1')

        context = resolver.resolve(principal.id)

        assert context.principal_id == str(principal.id)
        assert context.legacy_role == LegacyRole.STAFF
        assert context.role_refs == (str(staff_role.id),)
        assert set(context.direct_grants) == {
            DirectGrant(str(permissions['report:generate'].id), None),
            DirectGrant(str(permissions['menu:update'].id), 'biz-1'),
        }
        assert context.business_id == 'biz-1'
        assert context.is_active is True

    def test_unknown_principal(self, resolver, db):
        with pytest.raises(PrincipalNotFound):
            resolver.resolve('00000000-0000-0000-0000-000000000000')

    def test_malformed_id_is_not_found(self, resolver, db):
        with pytest.raises(PrincipalNotFound):
            resolver.resolve('u1')


@pytest.mark.django_db
class TestAssignments:

    def test_assign_role_idempotent(self, principal_store, staff_role):
        principal = principal_store.create_principal(LegacyRole.STAFF, business_id='biz-1')

        assert principal_store.assign_role(principal.id, staff_role.id) is True
        assert principal_store.assign_role(principal.id, staff_role.id) is False
        assert PrincipalRole.objects.filter(principal=principal).count() == 1
        assert AuditLog.objects.by_action('role_assigned').count() == 1

    def test_assign_records_actor(self, principal_store, staff_role):
        admin = principal_store.create_principal(LegacyRole.RESTAURANT_ADMIN, business_id='biz-1')
        principal = principal_store.create_principal(LegacyRole.STAFF, business_id='biz-1')

        principal_store.assign_role(principal.id, staff_role.id, actor=admin)

        assignment = PrincipalRole.objects.get(principal=principal)
        assert assignment.assigned_by == admin
        assert AuditLog.objects.by_action('role_assigned').get().actor == admin

    def test_assign_unknown_role(self, principal_store, db):
        principal = principal_store.create_principal()
        with pytest.raises(RoleNotFound):
            principal_store.assign_role(principal.id, '00000000-0000-0000-0000-000000000000')

    def test_remove_role(self, principal_store, staff_role):
        principal = principal_store.create_principal(
            LegacyRole.STAFF, business_id='biz-1', role_refs=[staff_role.id],
        )

        assert principal_store.remove_role(principal.id, staff_role.id) is True
        assert principal_store.remove_role(principal.id, staff_role.id) is False
        assert AuditLog.objects.by_action('role_removed').count() == 1

    def test_grant_and_revoke_permission(self, principal_store, permissions):
        principal = principal_store.create_principal(LegacyRole.STAFF, business_id='biz-1')
        permission_id = permissions['report:generate'].id

        assert principal_store.grant_permission(principal.id, permission_id) is True
        assert principal_store.grant_permission(principal.id, permission_id) is False
        assert principal_store.grant_permission(principal.id, permission_id, business_id='biz-1') is True
        assert DirectPermission.objects.filter(principal=principal).count() == 2

        assert principal_store.revoke_permission(principal.id, permission_id) is True
        assert principal_store.revoke_permission(principal.id, permission_id) is False
        assert DirectPermission.objects.get(principal=principal).business_id == 'biz-1'

    def test_grant_unknown_permission(self, principal_store, db):
        principal = principal_store.create_principal()
        with pytest.raises(PermissionNotFound):
            principal_store.grant_permission(principal.id, '00000000-0000-0000-0000-000000000000')

    def test_deactivate_and_activate(self, principal_store, db):
        principal = principal_store.create_principal(LegacyRole.MANAGER, business_id='biz-1')

        assert principal_store.deactivate(principal.id).is_active is False
        principal_store.deactivate(principal.id)
        assert AuditLog.objects.by_action('principal_deactivated').count() == 1

        assert principal_store.activate(principal.id).is_active is True

    def test_move_to_business(self, principal_store, db):
        principal = principal_store.create_principal(LegacyRole.MANAGER, business_id='biz-1')

        moved = principal_store.move_to_business(principal.id, 'biz-2')

        assert moved.business_id == 'biz-2'
        audit = AuditLog.objects.by_action('principal_moved').get()
        assert audit.diff == {'business_id': {'before': 'biz-1', 'after': 'biz-2'}}

    def test_set_legacy_role(self, principal_store, db):
        principal = principal_store.create_principal(LegacyRole.STAFF, business_id='biz-1')

        updated = principal_store.set_legacy_role(principal.id, 'manager')

        assert updated.legacy_role == LegacyRole.MANAGER
        with pytest.raises(ValueError):
            principal_store.set_legacy_role(principal.id, 'emperor')

    def test_unknown_principal(self, principal_store, db):
        with pytest.raises(PrincipalNotFound):
            principal_store.deactivate('00000000-0000-0000-0000-000000000000')
