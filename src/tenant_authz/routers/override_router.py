from fastapi import APIRouter, Depends, Query, Request

from tenant_authz.auth.dependencies import client_origin
from tenant_authz.auth.security import AuthorizedRequest, require_permission
from tenant_authz.configs.logging_config import get_logger
from tenant_authz.domain.entities.override import OverrideUpsertRequest
from tenant_authz.services.override_service import OverrideService
from tenant_authz.utils.response import success

log = get_logger(__name__)

router = APIRouter(prefix="/ext/overrides", tags=["overrides"])


def _service(request: Request) -> OverrideService:
    return request.app.state.override_service


@router.get("")
async def list_overrides(
    request: Request,
    include_inactive: bool = Query(default=True),
    auth: AuthorizedRequest = Depends(require_permission("settings.access")),
) -> dict:
    items = await _service(request).list(auth.principal, include_inactive=include_inactive)
    log.info(
        "override.list.done tenant_id=%s returned=%s",
        auth.principal.tenant_id,
        len(items),
    )
    return success([o.model_dump(mode="json") for o in items])


@router.get("/{permission_name}")
async def get_override(
    request: Request,
    permission_name: str,
    auth: AuthorizedRequest = Depends(require_permission("settings.access")),
) -> dict:
    override = await _service(request).get(auth.principal, permission_name)
    return success(override.model_dump(mode="json"))


@router.put("/{permission_name}")
async def upsert_override(
    request: Request,
    permission_name: str,
    body: OverrideUpsertRequest,
    auth: AuthorizedRequest = Depends(require_permission("settings.manage")),
) -> dict:
    log.info(
        "override.upsert.start tenant_id=%s user_id=%s permission=%s expected_version=%s",
        auth.principal.tenant_id,
        auth.principal.user_id,
        permission_name,
        body.expected_version,
    )
    ip, user_agent = client_origin(request)
    saved = await _service(request).upsert(
        auth.principal,
        permission_name,
        body,
        ip_address=ip,
        user_agent=user_agent,
    )
    return success(saved.model_dump(mode="json"), message="Override saved")


@router.delete("/{permission_name}")
async def deactivate_override(
    request: Request,
    permission_name: str,
    expected_version: int = Query(..., ge=1),
    auth: AuthorizedRequest = Depends(require_permission("settings.manage")),
) -> dict:
    log.info(
        "override.deactivate.start tenant_id=%s user_id=%s permission=%s expected_version=%s",
        auth.principal.tenant_id,
        auth.principal.user_id,
        permission_name,
        expected_version,
    )
    ip, user_agent = client_origin(request)
    saved = await _service(request).deactivate(
        auth.principal,
        permission_name,
        expected_version=expected_version,
        ip_address=ip,
        user_agent=user_agent,
    )
    return success(saved.model_dump(mode="json"), message="Override deactivated")
