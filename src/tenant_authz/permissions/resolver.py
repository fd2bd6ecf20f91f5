from __future__ import annotations

from typing import Optional

from tenant_authz.auth.models import SUPER_ROLE, Principal
from tenant_authz.configs.logging_config import get_logger
from tenant_authz.domain.entities.decision import Decision
from tenant_authz.domain.entities.override import PermissionOverride
from tenant_authz.permissions.approval import evaluate_override
from tenant_authz.permissions.matrix import StaticPermissionMatrix
from tenant_authz.repositories.base import OverrideStore

log = get_logger(__name__)


def decide(
    principal: Principal,
    permission_name: str,
    override: Optional[PermissionOverride],
    matrix: StaticPermissionMatrix,
) -> Decision:
    """
    Decision for one principal and permission given the tenant's active
    override (or None). Order matters:

    1. super-role: always allowed, never needs approval
    2. active override: wins over the static matrix
    3. static matrix, including the `<resource>.manage` wildcard
    4. anything else is denied
    """
    if principal.role is SUPER_ROLE:
        return Decision.allow()

    if override is not None:
        if override.tenant_id != principal.tenant_id or not override.active:
            raise ValueError("override does not apply to this principal")
        return evaluate_override(override, principal.role)

    if matrix.grants(principal.role, permission_name):
        return Decision.allow()

    return Decision.deny(f"role {principal.role.value} does not have permission for {permission_name}")


class PermissionResolver:
    def __init__(self, overrides: OverrideStore, matrix: StaticPermissionMatrix):
        self._overrides = overrides
        self._matrix = matrix

    async def resolve(self, principal: Principal, permission_name: str) -> Decision:
        """
        Resolve `permission_name` for `principal` within its own tenant.

        StorageError from the override store propagates: a check that could
        not consult the tenant's overrides never produces an allow.
        """
        override = None
        if principal.role is not SUPER_ROLE and permission_name:
            override = await self._overrides.get_active(principal.tenant_id, permission_name)

        decision = decide(principal, permission_name, override, self._matrix)
        log.info(
            "authz.resolve tenant_id=%s user_id=%s role=%s permission=%s override=%s allowed=%s requires_approval=%s",
            principal.tenant_id,
            principal.user_id,
            principal.role.value,
            permission_name,
            override is not None,
            decision.allowed,
            decision.requires_approval,
        )
        return decision
