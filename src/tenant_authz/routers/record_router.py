from fastapi import APIRouter, Depends, Request

from tenant_authz.auth.dependencies import client_origin, get_principal
from tenant_authz.auth.models import Principal
from tenant_authz.configs.logging_config import get_logger
from tenant_authz.domain.entities.record import RecordTransitionRequest
from tenant_authz.services.record_service import RecordService
from tenant_authz.utils.response import success

log = get_logger(__name__)

router = APIRouter(prefix="/ext/records", tags=["records"])


@router.post("/transition")
async def transition_record(
    request: Request,
    body: RecordTransitionRequest,
    principal: Principal = Depends(get_principal),
) -> dict:
    log.info(
        "record.transition.start tenant_id=%s user_id=%s resource=%s resource_id=%s action=%s",
        principal.tenant_id,
        principal.user_id,
        body.resource,
        body.resource_id,
        body.action.value,
    )
    svc: RecordService = request.app.state.record_service
    ip, user_agent = client_origin(request)
    result = await svc.transition(principal, body, ip_address=ip, user_agent=user_agent)
    return success(result.model_dump(mode="json"), message=f"Record moved to {result.to_status.value}")
