"""
Authorization core for the multi-tenant restaurant platform.

Provides:
- Permission catalog and role store (system and business-scoped roles)
- Principal resolution (legacy role, RBAC roles, direct grants)
- Effective-permission computation and business-scope enforcement
- A resolution cache invalidated on every role/permission mutation
"""
