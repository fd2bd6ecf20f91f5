from fastapi import APIRouter, Depends, Request

from tenant_authz.auth.dependencies import client_origin
from tenant_authz.auth.security import AuthorizedRequest, require_permission
from tenant_authz.configs.logging_config import get_logger
from tenant_authz.domain.entities.audit import AuditAppendRequest, AuditFilters, AuditQueryRequest
from tenant_authz.services.audit_service import AuditRecorder, entry_for
from tenant_authz.utils.response import page, success

log = get_logger(__name__)

router = APIRouter(prefix="/ext/audit", tags=["audit"])


def _recorder(request: Request) -> AuditRecorder:
    return request.app.state.audit_recorder


@router.post("")
async def append_entry(
    request: Request,
    body: AuditAppendRequest,
    auth: AuthorizedRequest = Depends(require_permission("audit.manage")),
) -> dict:
    """Record an action the caller performed; who and where come from the token."""
    principal = auth.principal
    ip, user_agent = client_origin(request)
    stored = await _recorder(request).append(
        entry_for(
            principal,
            action=body.action,
            resource=body.resource,
            resource_id=body.resource_id,
            changes=body.changes,
            metadata=body.metadata,
            ip_address=ip,
            user_agent=user_agent,
        )
    )
    return success(stored.model_dump(mode="json"), message="Audit entry recorded")


@router.post("/query")
async def query_entries(
    request: Request,
    body: AuditQueryRequest,
    auth: AuthorizedRequest = Depends(require_permission("audit.read")),
) -> dict:
    tenant_id = auth.principal.tenant_id
    log.info(
        "audit.query.start tenant_id=%s user_id=%s limit=%s offset=%s",
        tenant_id,
        auth.principal.user_id,
        body.limit,
        body.offset,
    )
    limit = body.limit if body.limit is not None else request.app.state.settings.audit_default_limit
    filters = AuditFilters(user_id=body.user_id, resource=body.resource, action=body.action)
    entries, total = await _recorder(request).query(tenant_id, filters, limit=limit, offset=body.offset)
    return success(
        page([e.model_dump(mode="json") for e in entries], total, limit=limit, offset=body.offset),
        message="Request successful",
    )
