"""Default role -> permission table applied when a tenant has no override.

Permission naming: `<resource>.<action>`. Holding `<resource>.manage`
grants every action on that resource. The super-role has no entry:
the resolver allows it before this table is ever read.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping

from tenant_authz.auth.models import Role

MANAGE_ACTION = "manage"


def _table(entries: Mapping[Role, Iterable[str]]) -> Mapping[Role, frozenset[str]]:
    return MappingProxyType({role: frozenset(perms) for role, perms in entries.items()})


DEFAULT_PERMISSIONS: Mapping[Role, frozenset[str]] = _table(
    {
        Role.ASSISTANT_TEACHER: [
            "dashboard.view",
            "data.read",
            "view.access_main",
        ],
        Role.TEACHER: [
            "resource.create", "resource.read", "resource.update",
            "data.create", "data.read", "data.update",
            "dashboard.view",
            "feature1.access",
            "view.access_main",
        ],
        Role.ASSISTANT_DIRECTOR: [
            "resource.create", "resource.read", "resource.update", "resource.delete",
            "resource.approve", "resource.reject",
            "data.create", "data.read", "data.update",
            "dashboard.view",
            "settings.access",
            "feature1.access",
            "view.access_main", "view.access_tablet",
        ],
        Role.DIRECTOR: [
            "resource.manage",
            "data.manage",
            "user.read", "user.update",
            "audit.read",
            "dashboard.view",
            "settings.access",
            "feature1.access", "feature2.access",
            "view.access_main", "view.access_tablet",
        ],
        Role.ADMIN: [
            "resource.manage",
            "data.manage",
            "user.manage",
            "settings.manage",
            "audit.manage",
            "dashboard.view",
            "feature1.access", "feature2.access", "feature3.access",
            "view.access_main", "view.access_tablet", "view.access_parent",
        ],
    }
)


def resource_of(permission_name: str) -> str | None:
    """`data.delete` -> `data`; names without a `.` have no resource."""
    resource, sep, action = permission_name.rpartition(".")
    if not sep or not resource or not action:
        return None
    return resource


class StaticPermissionMatrix:
    def __init__(self, table: Mapping[Role, frozenset[str]] = DEFAULT_PERMISSIONS):
        self._table = MappingProxyType({role: frozenset(perms) for role, perms in table.items()})

    def permissions_for(self, role: Role) -> frozenset[str]:
        return self._table.get(role, frozenset())

    def grants(self, role: Role, permission_name: str) -> bool:
        perms = self.permissions_for(role)
        if permission_name in perms:
            return True
        resource = resource_of(permission_name)
        return resource is not None and f"{resource}.{MANAGE_ACTION}" in perms
