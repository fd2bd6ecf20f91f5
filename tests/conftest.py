from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest
from jose import jwt

from tenant_authz.auth.models import Principal, Role
from tenant_authz.configs.settings import Settings
from tenant_authz.permissions.matrix import StaticPermissionMatrix
from tenant_authz.permissions.resolver import PermissionResolver
from tenant_authz.repositories.memory import InMemoryAuditRepository, InMemoryOverrideRepository
from tenant_authz.services.audit_service import AuditRecorder

SECRET = "test-secret-key-for-testing-only"
NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        storage_backend="memory",
        override_cache_enabled=False,
        jwt_secret=SECRET,
        jwt_alg="HS256",
    )


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Sign a token shaped like the identity provider's, relative to `now`."""

    def _make(
        *,
        secret: str = SECRET,
        now: datetime | float | None = None,
        ttl_seconds: int = 3600,
        **claims: Any,
    ) -> str:
        if now is None:
            issued = NOW.timestamp()
        elif isinstance(now, datetime):
            issued = now.timestamp()
        else:
            issued = now
        payload: dict[str, Any] = {
            "tenantId": "T1",
            "userId": "user-1",
            "userFirstName": "Test",
            "userLastName": "User",
            "username": "testuser@example.com",
            "role": "Teacher",
            "locations": ["Main Location"],
            "iat": int(issued) - 60,
            "exp": int(issued) + ttl_seconds,
        }
        payload.update(claims)
        return jwt.encode(payload, secret, algorithm="HS256")

    return _make


@pytest.fixture
def live_token(make_token) -> Callable[..., str]:
    """Token valid against the wall clock, for the HTTP tests."""

    def _make(**claims: Any) -> str:
        return make_token(now=time.time(), **claims)

    return _make


@pytest.fixture
def make_principal() -> Callable[..., Principal]:
    def _make(role: Role = Role.TEACHER, *, tenant_id: str = "T1", user_id: str = "user-1") -> Principal:
        return Principal(
            user_id=user_id,
            tenant_id=tenant_id,
            role=role,
            locations=frozenset({"Main Location"}),
            issued_at=NOW - timedelta(minutes=1),
            expires_at=NOW + timedelta(hours=1),
        )

    return _make


@pytest.fixture
def override_store() -> InMemoryOverrideRepository:
    return InMemoryOverrideRepository()


@pytest.fixture
def audit_sink() -> InMemoryAuditRepository:
    return InMemoryAuditRepository()


@pytest.fixture
def resolver(override_store) -> PermissionResolver:
    return PermissionResolver(override_store, StaticPermissionMatrix())


@pytest.fixture
def recorder(audit_sink, settings) -> AuditRecorder:
    return AuditRecorder(audit_sink, settings, clock=lambda: NOW)
