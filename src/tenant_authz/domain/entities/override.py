from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tenant_authz.auth.models import Role
from tenant_authz.utils.time_utils import as_utc

PERMISSION_NAME_RE = re.compile(r"^[A-Za-z0-9_\-]+(\.[A-Za-z0-9_\-]+)+$")


def _parse_roles(value: Any) -> tuple[Role, ...]:
    if value is None:
        return ()
    if isinstance(value, (str, Role)):
        value = [value]
    roles: list[Role] = []
    for item in value:
        role = Role.parse(item)
        if role not in roles:
            roles.append(role)
    return tuple(roles)


class PermissionOverride(BaseModel):
    """
    Stored tenant rule for one permission name.

    `version` starts at 1 and is bumped by every successful write; writers
    must present the version they read.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: str = Field(min_length=1)
    permission_name: str = Field(min_length=1)
    roles_required: tuple[Role, ...] = ()
    auto_approve_roles: tuple[Role, ...] = ()
    active: bool = True
    version: int = 1
    created_at: datetime
    updated_at: datetime

    @field_validator("roles_required", "auto_approve_roles", mode="before")
    @classmethod
    def normalize_roles(cls, v):
        return _parse_roles(v)

    @field_validator("created_at", "updated_at", mode="after")
    @classmethod
    def timestamps_utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    def to_document(self) -> dict[str, Any]:
        doc = self.model_dump()
        doc["roles_required"] = [r.value for r in self.roles_required]
        doc["auto_approve_roles"] = [r.value for r in self.auto_approve_roles]
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> PermissionOverride:
        data = {k: v for k, v in doc.items() if k != "_id"}
        return cls(**data)


class OverrideUpsertRequest(BaseModel):
    roles_required: list[str] = Field(default_factory=list)
    auto_approve_roles: list[str] = Field(default_factory=list)
    active: bool = True
    # None means "create"; updating an existing override requires its current version
    expected_version: int | None = None


class OverrideChange(BaseModel):
    """Validated administrative write, ready for the repository."""

    tenant_id: str
    permission_name: str
    roles_required: tuple[Role, ...]
    auto_approve_roles: tuple[Role, ...]
    active: bool
    expected_version: int | None = None
