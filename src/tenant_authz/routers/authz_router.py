from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from tenant_authz.auth.dependencies import get_principal
from tenant_authz.auth.models import Principal
from tenant_authz.configs.logging_config import get_logger
from tenant_authz.utils.response import success

log = get_logger(__name__)

router = APIRouter(prefix="/ext/authz", tags=["authz"])


class PermissionCheckRequest(BaseModel):
    permission: str = Field(min_length=1)


def principal_payload(principal: Principal) -> dict:
    return {
        "user_id": principal.user_id,
        "tenant_id": principal.tenant_id,
        "role": principal.role.value,
        "locations": sorted(principal.locations),
        "issued_at": principal.issued_at.isoformat(),
        "expires_at": principal.expires_at.isoformat(),
    }


@router.get("/me")
async def me(principal: Principal = Depends(get_principal)) -> dict:
    return success(principal_payload(principal))


@router.post("/check")
async def check_permission(
    request: Request,
    body: PermissionCheckRequest,
    principal: Principal = Depends(get_principal),
) -> dict:
    """Report the decision without enforcing it; a deny is still a 200."""
    decision = await request.app.state.resolver.resolve(principal, body.permission)
    return success({"permission": body.permission, **decision.to_dict()})
