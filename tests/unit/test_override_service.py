from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from tenant_authz.auth.models import Role
from tenant_authz.domain.entities.audit import AuditFilters
from tenant_authz.domain.entities.override import OverrideUpsertRequest
from tenant_authz.errors import ConflictError, NotFoundError, StorageError, ValidationError
from tenant_authz.services.audit_service import AuditRecorder
from tenant_authz.services.override_service import OverrideService, build_change

from conftest import NOW


@pytest.fixture
def service(override_store, recorder) -> OverrideService:
    return OverrideService(override_store, recorder, clock=lambda: NOW)


@pytest.fixture
def admin(make_principal):
    return make_principal(Role.ADMIN, user_id="admin-1")


@pytest.mark.asyncio
async def test_create_then_update_bumps_version(service, admin) -> None:
    created = await service.upsert(
        admin, "data.delete", OverrideUpsertRequest(roles_required=["director"], auto_approve_roles=["admin"])
    )
    assert created.version == 1
    assert created.tenant_id == "T1"
    assert created.roles_required == (Role.DIRECTOR,)

    updated = await service.upsert(
        admin,
        "data.delete",
        OverrideUpsertRequest(roles_required=["director", "assistant_director"], expected_version=1),
    )
    assert updated.version == 2
    assert updated.auto_approve_roles == ()
    assert updated.created_at == created.created_at


@pytest.mark.asyncio
async def test_writes_are_audited(service, admin, recorder) -> None:
    await service.upsert(admin, "data.delete", OverrideUpsertRequest(roles_required=["director"]))
    await service.upsert(admin, "data.delete", OverrideUpsertRequest(roles_required=["admin"], expected_version=1))

    entries, total = await recorder.query("T1", AuditFilters(resource="permission_override"))

    assert total == 2
    assert [e.action for e in entries] == ["UPDATE", "CREATE"]
    update = entries[0]
    assert update.user_id == "admin-1"
    assert update.role is Role.ADMIN
    assert update.resource_id == "data.delete"
    assert update.changes["before"]["roles_required"] == ["director"]
    assert update.changes["after"]["roles_required"] == ["admin"]


@pytest.mark.asyncio
async def test_second_create_conflicts(service, admin) -> None:
    await service.upsert(admin, "data.delete", OverrideUpsertRequest(roles_required=["director"]))
    with pytest.raises(ConflictError):
        await service.upsert(admin, "data.delete", OverrideUpsertRequest(roles_required=["teacher"]))


@pytest.mark.asyncio
async def test_concurrent_writers_cannot_silently_lose_an_update(service, admin, make_principal) -> None:
    await service.upsert(admin, "data.delete", OverrideUpsertRequest(roles_required=["director"]))
    other_admin = make_principal(Role.ADMIN, user_id="admin-2")

    # both read version 1
    await service.upsert(admin, "data.delete", OverrideUpsertRequest(roles_required=["teacher"], expected_version=1))
    with pytest.raises(ConflictError):
        await service.upsert(
            other_admin, "data.delete", OverrideUpsertRequest(roles_required=["admin"], expected_version=1)
        )

    current = await service.get(admin, "data.delete")
    assert current.roles_required == (Role.TEACHER,)
    assert current.version == 2


@pytest.mark.asyncio
async def test_update_of_missing_override_is_not_found(service, admin) -> None:
    with pytest.raises(NotFoundError):
        await service.upsert(admin, "data.delete", OverrideUpsertRequest(roles_required=["director"], expected_version=1))


@pytest.mark.asyncio
async def test_deactivate_keeps_history_and_restores_matrix(service, admin, resolver, make_principal) -> None:
    await service.upsert(admin, "dashboard.view", OverrideUpsertRequest(roles_required=["admin"]))
    teacher = make_principal(Role.TEACHER)
    assert (await resolver.resolve(teacher, "dashboard.view")).allowed is False

    deactivated = await service.deactivate(admin, "dashboard.view", expected_version=1)

    assert deactivated.active is False
    assert deactivated.version == 2
    assert deactivated.roles_required == (Role.ADMIN,)
    assert (await service.get(admin, "dashboard.view")).active is False
    assert (await resolver.resolve(teacher, "dashboard.view")).allowed is True


@pytest.mark.asyncio
async def test_upsert_can_reactivate(service, admin) -> None:
    await service.upsert(admin, "data.read", OverrideUpsertRequest(roles_required=["admin"]))
    await service.deactivate(admin, "data.read", expected_version=1)
    reactivated = await service.upsert(
        admin, "data.read", OverrideUpsertRequest(roles_required=["admin"], expected_version=2)
    )
    assert reactivated.active is True


@pytest.mark.asyncio
async def test_list_is_tenant_scoped(service, admin, make_principal) -> None:
    await service.upsert(admin, "data.read", OverrideUpsertRequest(roles_required=["admin"]))
    other_tenant_admin = make_principal(Role.ADMIN, tenant_id="T2", user_id="admin-9")

    assert [o.permission_name for o in await service.list(admin)] == ["data.read"]
    assert await service.list(other_tenant_admin) == []
    with pytest.raises(NotFoundError):
        await service.get(other_tenant_admin, "data.read")


@pytest.mark.asyncio
async def test_failed_audit_fails_the_write(override_store, admin, settings) -> None:
    sink = AsyncMock()
    sink.reserve.side_effect = StorageError("audit sink unavailable")
    service = OverrideService(override_store, AuditRecorder(sink, settings), clock=lambda: NOW)

    with pytest.raises(StorageError):
        await service.upsert(admin, "data.read", OverrideUpsertRequest(roles_required=["admin"]))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"tenant_id": ""},
        {"tenant_id": "   "},
        {"permission_name": ""},
        {"permission_name": "nodot"},
        {"permission_name": "data.delete; drop"},
        {"roles_required": ["janitor"]},
        {"auto_approve_roles": ["root"]},
        {"expected_version": 0},
    ],
)
def test_malformed_override_is_rejected(kwargs) -> None:
    base = {
        "tenant_id": "T1",
        "permission_name": "data.delete",
        "roles_required": ["director"],
        "auto_approve_roles": [],
    }
    base.update(kwargs)
    with pytest.raises(ValidationError):
        build_change(**base)


def test_build_change_deduplicates_roles() -> None:
    change = build_change(
        tenant_id="T1",
        permission_name="data.delete",
        roles_required=["Director", "director"],
        auto_approve_roles=["ADMIN"],
    )
    assert change.roles_required == (Role.DIRECTOR,)
    assert change.auto_approve_roles == (Role.ADMIN,)
