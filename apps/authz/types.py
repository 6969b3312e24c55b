"""
Value types passed between the resolver, engine, enforcer and cache.

None of these touch the database. They are frozen so that a cached
EffectivePermissionSet cannot be mutated by a caller, and picklable so
they can live in a shared cache backend.
"""
from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Optional, Tuple, Union

from apps.authz.constants import DenyReason, LegacyRole, RoleScope, ScopeKind


@dataclass(frozen=True, order=True)
class PermissionKey:
    """A (resource, action) pair, e.g. ('order', 'read')."""
    resource: str
    action: str

    @classmethod
    def parse(cls, value: Union['PermissionKey', Mapping[str, str], Tuple[str, str], str]) -> 'PermissionKey':
        """
        Accept a PermissionKey, a {'resource', 'action'} mapping, a
        (resource, action) tuple, or 'resource:action'.

        Only the first colon splits, so 'report:generate:pdf' is resource
        'report' with action 'generate:pdf'.
        """
        if isinstance(value, PermissionKey):
            return value
        if isinstance(value, str):
            resource, sep, action = value.partition(':')
            if not sep:
                raise ValueError(f"Permission '{value}' is not in 'resource:action' form")
            return cls(resource.strip().lower(), action.strip().lower())
        if isinstance(value, Mapping):
            value = (value['resource'], value['action'])
        resource, action = value
        return cls(resource.strip().lower(), action.strip().lower())

    def __str__(self):
        return f"{self.resource}:{self.action}"


@dataclass(frozen=True)
class ScopeDescriptor:
    """Whether authority is global or pinned to one business."""
    kind: ScopeKind
    business_id: Optional[str] = None

    @property
    def is_global(self):
        return self.kind == ScopeKind.GLOBAL


@dataclass(frozen=True)
class EffectivePermissionSet:
    """Merged, deduplicated permissions of one principal plus its scope."""
    permissions: FrozenSet[PermissionKey]
    scope: ScopeDescriptor
    is_active: bool = True

    def __contains__(self, permission):
        return PermissionKey.parse(permission) in self.permissions

    @classmethod
    def empty(cls, is_active=False):
        """The deny-everything set: no permissions, business scope with no business."""
        return cls(
            permissions=frozenset(),
            scope=ScopeDescriptor(kind=ScopeKind.BUSINESS, business_id=None),
            is_active=is_active,
        )


@dataclass(frozen=True)
class RoleSnapshot:
    """Read-only view of a Role as the engine needs it."""
    id: str
    name: str
    scope: RoleScope
    business_id: Optional[str]
    is_system_role: bool
    permissions: FrozenSet[PermissionKey] = field(default_factory=frozenset)


@dataclass(frozen=True)
class DirectGrant:
    """A permission attached straight to a principal, optionally business-qualified."""
    permission_id: str
    business_id: Optional[str] = None


@dataclass(frozen=True)
class PrincipalContext:
    """Raw assignments of one principal, as loaded from storage."""
    principal_id: str
    legacy_role: LegacyRole
    role_refs: Tuple[str, ...] = ()
    direct_grants: Tuple[DirectGrant, ...] = ()
    business_id: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class Decision:
    """Outcome of an authorization check. `reason` is None when allowed."""
    allowed: bool
    reason: Optional[DenyReason] = None

    def __bool__(self):
        return self.allowed

    @classmethod
    def allow(cls):
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenyReason):
        return cls(allowed=False, reason=reason)
