from __future__ import annotations

from typing import Iterable, Optional

from tenant_authz.auth.models import Principal, Role
from tenant_authz.configs.logging_config import get_logger
from tenant_authz.domain.entities.override import (
    PERMISSION_NAME_RE,
    OverrideChange,
    OverrideUpsertRequest,
    PermissionOverride,
)
from tenant_authz.errors import NotFoundError, StorageError, ValidationError
from tenant_authz.repositories.base import OverrideStore
from tenant_authz.services.audit_service import AuditRecorder, entry_for
from tenant_authz.utils.time_utils import utc_now

log = get_logger(__name__)

AUDIT_RESOURCE = "permission_override"


def _roles(values: Iterable[str], field: str) -> tuple[Role, ...]:
    roles: list[Role] = []
    for value in values:
        try:
            role = Role.parse(value)
        except ValueError as e:
            raise ValidationError(f"{field}: unknown role '{value}'") from e
        if role not in roles:
            roles.append(role)
    return tuple(roles)


def build_change(
    *,
    tenant_id: str,
    permission_name: str,
    roles_required: Iterable[str],
    auto_approve_roles: Iterable[str],
    active: bool = True,
    expected_version: Optional[int] = None,
) -> OverrideChange:
    """Reject malformed override writes before they reach the store."""
    if not tenant_id or not tenant_id.strip():
        raise ValidationError("tenant_id is required")
    if not permission_name or not permission_name.strip():
        raise ValidationError("permission_name is required")
    if not PERMISSION_NAME_RE.match(permission_name):
        raise ValidationError("permission_name must look like '<resource>.<action>'")
    if expected_version is not None and expected_version < 1:
        raise ValidationError("expected_version must be a positive integer")

    return OverrideChange(
        tenant_id=tenant_id,
        permission_name=permission_name,
        roles_required=_roles(roles_required, "roles_required"),
        auto_approve_roles=_roles(auto_approve_roles, "auto_approve_roles"),
        active=active,
        expected_version=expected_version,
    )


def _snapshot(override: Optional[PermissionOverride]) -> Optional[dict]:
    if override is None:
        return None
    return override.model_dump(mode="json", include={"roles_required", "auto_approve_roles", "active", "version"})


class OverrideService:
    """
    Tenant administration of permission overrides.

    The tenant always comes from the acting principal. Every write is
    audited; if the audit entry cannot be written the write is reported as
    failed.
    """

    def __init__(self, store: OverrideStore, recorder: AuditRecorder, clock=utc_now):
        self._store = store
        self._recorder = recorder
        self._clock = clock

    async def list(self, principal: Principal, *, include_inactive: bool = True) -> list[PermissionOverride]:
        return await self._store.list_for_tenant(principal.tenant_id, include_inactive=include_inactive)

    async def get(self, principal: Principal, permission_name: str) -> PermissionOverride:
        override = await self._store.get(principal.tenant_id, permission_name)
        if override is None:
            raise NotFoundError("override not found")
        return override

    async def upsert(
        self,
        principal: Principal,
        permission_name: str,
        body: OverrideUpsertRequest,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> PermissionOverride:
        change = build_change(
            tenant_id=principal.tenant_id,
            permission_name=permission_name,
            roles_required=body.roles_required,
            auto_approve_roles=body.auto_approve_roles,
            active=body.active,
            expected_version=body.expected_version,
        )
        before = None
        if change.expected_version is not None:
            before = await self._store.get(change.tenant_id, change.permission_name)

        saved = await self._store.save(change, now=self._clock())
        log.info(
            "override.upsert tenant_id=%s permission=%s version=%s active=%s by=%s",
            saved.tenant_id,
            saved.permission_name,
            saved.version,
            saved.active,
            principal.user_id,
        )
        await self._audit(
            principal,
            action="CREATE" if change.expected_version is None else "UPDATE",
            before=before,
            after=saved,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return saved

    async def deactivate(
        self,
        principal: Principal,
        permission_name: str,
        *,
        expected_version: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> PermissionOverride:
        current = await self.get(principal, permission_name)
        change = build_change(
            tenant_id=principal.tenant_id,
            permission_name=permission_name,
            roles_required=[r.value for r in current.roles_required],
            auto_approve_roles=[r.value for r in current.auto_approve_roles],
            active=False,
            expected_version=expected_version,
        )
        saved = await self._store.save(change, now=self._clock())
        log.info(
            "override.deactivate tenant_id=%s permission=%s version=%s by=%s",
            saved.tenant_id,
            saved.permission_name,
            saved.version,
            principal.user_id,
        )
        await self._audit(
            principal,
            action="DEACTIVATE",
            before=current,
            after=saved,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return saved

    async def _audit(
        self,
        principal: Principal,
        *,
        action: str,
        before: Optional[PermissionOverride],
        after: PermissionOverride,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> None:
        try:
            await self._recorder.append(
                entry_for(
                    principal,
                    action=action,
                    resource=AUDIT_RESOURCE,
                    resource_id=after.permission_name,
                    changes={"before": _snapshot(before), "after": _snapshot(after)},
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            )
        except StorageError:
            log.error(
                "override.audit_failed tenant_id=%s permission=%s version=%s",
                after.tenant_id,
                after.permission_name,
                after.version,
            )
            raise
