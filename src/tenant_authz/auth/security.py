from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Request

from tenant_authz.auth.dependencies import get_principal
from tenant_authz.auth.models import Principal
from tenant_authz.configs.logging_config import get_logger
from tenant_authz.domain.entities.decision import Decision
from tenant_authz.errors import ForbiddenError
from tenant_authz.permissions.resolver import PermissionResolver

log = get_logger(__name__)


@dataclass(frozen=True)
class AuthorizedRequest:
    principal: Principal
    permission: str
    decision: Decision


def require_permission(permission_name: str):
    """
    Route dependency: authenticate, resolve `permission_name` and raise
    ForbiddenError (403) on deny. The decision, including
    `requires_approval`, is handed to the route.
    """

    async def dependency(
        request: Request,
        principal: Principal = Depends(get_principal),
    ) -> AuthorizedRequest:
        resolver: PermissionResolver = request.app.state.resolver
        decision = await resolver.resolve(principal, permission_name)
        if not decision.allowed:
            log.warning(
                "auth.forbidden tenant_id=%s user_id=%s role=%s permission=%s",
                principal.tenant_id,
                principal.user_id,
                principal.role.value,
                permission_name,
            )
            raise ForbiddenError(decision.reason or f"You don't have permission for {permission_name}")
        return AuthorizedRequest(principal=principal, permission=permission_name, decision=decision)

    return dependency
