from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from tenant_authz.auth.models import Role
from tenant_authz.domain.entities.override import PermissionOverride
from tenant_authz.errors import StorageError
from tenant_authz.permissions.matrix import StaticPermissionMatrix
from tenant_authz.permissions.resolver import PermissionResolver
from tenant_authz.repositories.memory import InMemoryOverrideRepository
from tenant_authz.repositories.override_cache import CachedOverrideStore
from tenant_authz.services.override_service import build_change

from conftest import NOW

KEY = "authz:override:T1:data.delete"


def _override() -> PermissionOverride:
    return PermissionOverride(
        tenant_id="T1",
        permission_name="data.delete",
        roles_required=["director"],
        auto_approve_roles=["admin"],
        created_at=NOW,
        updated_at=NOW,
    )


@pytest.fixture
def backing() -> AsyncMock:
    store = AsyncMock()
    store.get_active.return_value = _override()
    return store


@pytest.fixture
def redis_mock() -> AsyncMock:
    client = AsyncMock()
    client.get.return_value = None
    return client


@pytest.fixture
def cached(backing, redis_mock) -> CachedOverrideStore:
    return CachedOverrideStore(backing, redis_mock, ttl_seconds=30)


@pytest.mark.asyncio
async def test_miss_reads_store_and_caches_with_ttl(cached, backing, redis_mock) -> None:
    result = await cached.get_active("T1", "data.delete")

    assert result == _override()
    backing.get_active.assert_awaited_once_with("T1", "data.delete")
    redis_mock.set.assert_awaited_once()
    args, kwargs = redis_mock.set.call_args
    assert args[0] == KEY
    assert kwargs["ex"] == 30


@pytest.mark.asyncio
async def test_hit_skips_store(cached, backing, redis_mock) -> None:
    redis_mock.get.return_value = _override().model_dump_json()

    result = await cached.get_active("T1", "data.delete")

    assert result == _override()
    backing.get_active.assert_not_awaited()


@pytest.mark.asyncio
async def test_absence_is_cached_too(cached, backing, redis_mock) -> None:
    backing.get_active.return_value = None
    assert await cached.get_active("T1", "data.delete") is None
    cached_value = redis_mock.set.call_args.args[1]

    redis_mock.get.return_value = cached_value
    backing.get_active.reset_mock()
    assert await cached.get_active("T1", "data.delete") is None
    backing.get_active.assert_not_awaited()


@pytest.mark.asyncio
async def test_redis_failure_falls_back_to_store(cached, backing, redis_mock) -> None:
    redis_mock.get.side_effect = RedisConnectionError("redis down")
    redis_mock.set.side_effect = RedisConnectionError("redis down")

    assert await cached.get_active("T1", "data.delete") == _override()
    backing.get_active.assert_awaited_once()


@pytest.mark.asyncio
async def test_store_failure_propagates(cached, backing) -> None:
    backing.get_active.side_effect = StorageError("override store unavailable")
    with pytest.raises(StorageError):
        await cached.get_active("T1", "data.delete")


@pytest.mark.asyncio
async def test_save_drops_cached_entry(cached, backing, redis_mock) -> None:
    backing.save.return_value = _override()
    change = build_change(
        tenant_id="T1",
        permission_name="data.delete",
        roles_required=["director"],
        auto_approve_roles=["admin"],
    )

    await cached.save(change, now=NOW)

    backing.save.assert_awaited_once()
    redis_mock.delete.assert_awaited_once_with(KEY)


@pytest.mark.asyncio
async def test_invalidate_tolerates_redis_failure(cached, redis_mock) -> None:
    redis_mock.delete.side_effect = RedisConnectionError("redis down")
    await cached.invalidate("T1", "data.delete")


@pytest.mark.asyncio
async def test_keys_are_tenant_scoped(cached, redis_mock) -> None:
    await cached.get_active("T2", "data.delete")
    assert redis_mock.get.call_args.args[0] == "authz:override:T2:data.delete"


@pytest.fixture
def dict_redis() -> AsyncMock:
    data: dict[str, str] = {}
    client = AsyncMock()
    client.get.side_effect = lambda key: data.get(key)
    client.set.side_effect = lambda key, value, ex=None: data.__setitem__(key, value)
    client.delete.side_effect = lambda key: data.pop(key, None)
    client.data = data
    return client


@pytest.mark.asyncio
async def test_colon_in_tenant_or_permission_cannot_share_a_key(dict_redis, make_principal) -> None:
    store = InMemoryOverrideRepository()
    await store.save(
        build_change(
            tenant_id="a:b",
            permission_name="data.read",
            roles_required=["teacher"],
            auto_approve_roles=[],
        ),
        now=NOW,
    )
    cached = CachedOverrideStore(store, dict_redis, ttl_seconds=30)
    resolver = PermissionResolver(cached, StaticPermissionMatrix())

    # tenant "a" looks up a name that would have spelled tenant "a:b"'s key
    await resolver.resolve(make_principal(Role.TEACHER, tenant_id="a"), "b:data.read")
    decision = await resolver.resolve(make_principal(Role.ADMIN, tenant_id="a:b"), "data.read")

    assert decision.allowed is False
    assert len(dict_redis.data) == 2
    assert "authz:override:a%3Ab:data.read" in dict_redis.data


@pytest.mark.asyncio
async def test_cached_override_is_never_served_to_another_tenant(dict_redis, make_principal) -> None:
    store = InMemoryOverrideRepository()
    await store.save(
        build_change(
            tenant_id="a:b",
            permission_name="data.read",
            roles_required=["director"],
            auto_approve_roles=[],
        ),
        now=NOW,
    )
    resolver = PermissionResolver(CachedOverrideStore(store, dict_redis, ttl_seconds=30), StaticPermissionMatrix())

    await resolver.resolve(make_principal(Role.DIRECTOR, tenant_id="a:b"), "data.read")
    decision = await resolver.resolve(make_principal(Role.TEACHER, tenant_id="a"), "b:data.read")

    assert decision.allowed is False
    assert decision.requires_approval is False
