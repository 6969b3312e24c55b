"""
Authorization errors.

Denials are not exceptions: `authorize` returns a Decision carrying a
DenyReason. The classes below cover administrative input errors, missing
records, and infrastructure failures that must never be mistaken for a
denial.
"""


class AuthzError(Exception):
    """Base class for all authorization core errors."""

    code = 'AUTHZ_ERROR'

    def __init__(self, message='', **context):
        super().__init__(message)
        self.message = message
        self.context = context


class DuplicatePermission(AuthzError):
    code = 'DUPLICATE_PERMISSION'


class DuplicateRole(AuthzError):
    code = 'DUPLICATE_ROLE'


class InvalidScope(AuthzError):
    """Role scope and business id disagree."""
    code = 'INVALID_SCOPE'


class PermissionNotFound(AuthzError):
    code = 'PERMISSION_NOT_FOUND'


class RoleNotFound(AuthzError):
    code = 'ROLE_NOT_FOUND'


class PrincipalNotFound(AuthzError):
    code = 'PRINCIPAL_NOT_FOUND'


class SystemRoleProtected(AuthzError):
    """A tenant admin tried to delete or rename a protected system role."""
    code = 'SYSTEM_ROLE_PROTECTED'


class OutOfScopeError(AuthzError):
    """An administrative actor tried to mutate another business's role."""
    code = 'OUT_OF_SCOPE'


class ResolutionUnavailable(AuthzError):
    """
    Permissions could not be determined because storage or the cache failed.

    Callers may fail closed, but must not record this as a denial.
    """
    code = 'RESOLUTION_UNAVAILABLE'
