from __future__ import annotations

from typing import Optional

from tenant_authz.auth.models import Principal
from tenant_authz.configs.logging_config import get_logger
from tenant_authz.domain.entities.record import (
    TRANSITIONS,
    RecordAction,
    RecordStatus,
    RecordTransitionRequest,
    RecordTransitionResult,
)
from tenant_authz.errors import ConflictError, ForbiddenError
from tenant_authz.permissions.resolver import PermissionResolver
from tenant_authz.services.audit_service import AuditRecorder, entry_for

log = get_logger(__name__)


class RecordService:
    """
    Governs the lifecycle of business records kept by another service:

        draft -> {pending_approval, approved} -> archived

    The caller owns the record; this service decides whether the transition
    is allowed, what state it lands in, and writes the audit entry. A
    transition whose audit entry fails is reported as failed.
    """

    def __init__(self, resolver: PermissionResolver, recorder: AuditRecorder):
        self._resolver = resolver
        self._recorder = recorder

    async def transition(
        self,
        principal: Principal,
        req: RecordTransitionRequest,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> RecordTransitionResult:
        sources, permission_action = TRANSITIONS[req.action]
        if req.current_status not in sources:
            current = req.current_status.value if req.current_status else "new"
            log.info(
                "record.transition illegal tenant_id=%s resource=%s resource_id=%s action=%s status=%s",
                principal.tenant_id,
                req.resource,
                req.resource_id,
                req.action.value,
                current,
            )
            raise ConflictError(f"cannot {req.action.value} a record in state {current}")

        permission = f"{req.resource}.{permission_action}"
        decision = await self._resolver.resolve(principal, permission)
        if not decision.allowed:
            raise ForbiddenError(decision.reason or f"You don't have permission to {permission}")

        if req.action is RecordAction.SUBMIT:
            to_status = RecordStatus.PENDING_APPROVAL if decision.requires_approval else RecordStatus.APPROVED
        elif decision.requires_approval:
            # approve, reject and archive have no pending state of their own
            raise ForbiddenError(f"{permission} requires approval for role {principal.role.value}")
        elif req.action is RecordAction.APPROVE:
            to_status = RecordStatus.APPROVED
        elif req.action is RecordAction.REJECT:
            to_status = RecordStatus.DRAFT
        else:
            to_status = RecordStatus.ARCHIVED

        stored = await self._recorder.append(
            entry_for(
                principal,
                action=req.action.value.upper(),
                resource=req.resource,
                resource_id=req.resource_id,
                changes={
                    "status": {
                        "from": req.current_status.value if req.current_status else None,
                        "to": to_status.value,
                    }
                },
                metadata={"permission": permission, "requires_approval": decision.requires_approval},
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )
        log.info(
            "record.transition tenant_id=%s resource=%s resource_id=%s action=%s to=%s audit_id=%s",
            principal.tenant_id,
            req.resource,
            req.resource_id,
            req.action.value,
            to_status.value,
            stored.id,
        )
        return RecordTransitionResult(
            resource=req.resource,
            resource_id=req.resource_id,
            action=req.action,
            from_status=req.current_status,
            to_status=to_status,
            audit_id=stored.id,
        )
