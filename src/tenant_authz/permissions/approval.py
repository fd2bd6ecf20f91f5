from __future__ import annotations

from tenant_authz.auth.models import Role
from tenant_authz.domain.entities.decision import Decision
from tenant_authz.domain.entities.override import PermissionOverride


def evaluate_override(override: PermissionOverride, role: Role) -> Decision:
    """
    Apply a tenant override to one role.

    `roles_required` may act but need sign-off; `auto_approve_roles` may act
    without it and are permitted even when absent from `roles_required`.
    Both flags come out of this one evaluation so a caller can never see
    requires_approval=True on a denied action.
    """
    auto_approve = set(override.auto_approve_roles)
    allowed_roles = set(override.roles_required) | auto_approve

    allowed = role in allowed_roles
    requires_approval = allowed and role not in auto_approve

    if not allowed:
        return Decision.deny(
            f"tenant override for {override.permission_name} does not permit role {role.value}"
        )
    if requires_approval:
        return Decision(
            allowed=True,
            requires_approval=True,
            reason=f"role {role.value} requires approval for {override.permission_name}",
        )
    return Decision.allow()
