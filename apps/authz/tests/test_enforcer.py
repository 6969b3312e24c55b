"""
Unit tests for the scope enforcer.
"""
import pytest

from apps.authz import enforcer
from apps.authz.constants import DenyReason, ScopeKind
from apps.authz.types import EffectivePermissionSet, PermissionKey, ScopeDescriptor


def business_set(business_id, *perms, is_active=True):
    return EffectivePermissionSet(
        permissions=frozenset(PermissionKey.parse(p) for p in perms),
        scope=ScopeDescriptor(ScopeKind.BUSINESS, business_id),
        is_active=is_active,
    )


def global_set(*perms):
    return EffectivePermissionSet(
        permissions=frozenset(PermissionKey.parse(p) for p in perms),
        scope=ScopeDescriptor(ScopeKind.GLOBAL, None),
    )


class TestAuthorize:

    def test_allow_in_own_business(self):
        decision = enforcer.authorize(business_set('biz-1', 'order:read'), 'order:read', 'biz-1')
        assert decision.allowed
        assert decision.reason is None

    def test_other_business_is_out_of_scope(self):
        decision = enforcer.authorize(business_set('biz-1', 'order:read'), 'order:read', 'biz-2')
        assert decision.reason == DenyReason.OUT_OF_SCOPE

    def test_scope_checked_before_membership(self):
        """A missing permission on another business still reports OUT_OF_SCOPE."""
        decision = enforcer.authorize(business_set('biz-1'), 'order:delete', 'biz-2')
        assert decision.reason == DenyReason.OUT_OF_SCOPE

    def test_missing_permission(self):
        decision = enforcer.authorize(business_set('biz-1', 'order:read'), 'order:update', 'biz-1')
        assert decision.reason == DenyReason.PERMISSION_MISSING

    def test_global_resource_needs_global_scope(self):
        decision = enforcer.authorize(business_set('biz-1', 'report:generate'), 'report:generate', None)
        assert decision.reason == DenyReason.OUT_OF_SCOPE

    def test_global_scope_reaches_any_business_and_global_resources(self):
        effective_set = global_set('order:read')
        assert enforcer.authorize(effective_set, 'order:read', 'biz-9').allowed
        assert enforcer.authorize(effective_set, 'order:read', None).allowed

    def test_global_scope_still_needs_the_permission(self):
        decision = enforcer.authorize(global_set('order:read'), 'order:delete', 'biz-1')
        assert decision.reason == DenyReason.PERMISSION_MISSING

    def test_inactive_denies_before_everything(self):
        decision = enforcer.authorize(
            business_set('biz-1', 'order:read', is_active=False), 'order:read', 'biz-2'
        )
        assert decision.reason == DenyReason.PRINCIPAL_INACTIVE

    def test_business_set_without_business_is_out_of_scope(self):
        decision = enforcer.authorize(business_set(None, 'order:read'), 'order:read', 'biz-1')
        assert decision.reason == DenyReason.OUT_OF_SCOPE

    @pytest.mark.parametrize('permission', [
        'order:read',
        ('order', 'read'),
        PermissionKey('order', 'read'),
        ' Order:READ ',
    ])
    def test_permission_forms(self, permission):
        assert enforcer.authorize(business_set('biz-1', 'order:read'), permission, 'biz-1').allowed

    def test_malformed_permission_string(self):
        with pytest.raises(ValueError):
            enforcer.authorize(business_set('biz-1'), 'order', 'biz-1')


class TestMultiPermission:

    def test_authorize_all(self):
        effective_set = business_set('biz-1', 'order:read', 'order:update')
        assert enforcer.authorize_all(effective_set, ['order:read', 'order:update'], 'biz-1').allowed

        decision = enforcer.authorize_all(effective_set, ['order:read', 'order:delete'], 'biz-1')
        assert decision.reason == DenyReason.PERMISSION_MISSING

    def test_authorize_all_empty_list_checks_scope(self):
        effective_set = business_set('biz-1')
        assert enforcer.authorize_all(effective_set, [], 'biz-1').allowed
        assert enforcer.authorize_all(effective_set, [], 'biz-2').reason == DenyReason.OUT_OF_SCOPE

    def test_authorize_any(self):
        effective_set = business_set('biz-1', 'order:read')
        assert enforcer.authorize_any(effective_set, ['order:delete', 'order:read'], 'biz-1').allowed

        decision = enforcer.authorize_any(effective_set, ['order:delete'], 'biz-1')
        assert decision.reason == DenyReason.PERMISSION_MISSING

        decision = enforcer.authorize_any(effective_set, ['order:read'], 'biz-2')
        assert decision.reason == DenyReason.OUT_OF_SCOPE
