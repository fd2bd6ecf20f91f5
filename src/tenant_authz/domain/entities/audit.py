from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tenant_authz.auth.models import Role
from tenant_authz.utils.time_utils import as_utc


class AuditLogEntryCreate(BaseModel):
    """
    What a caller hands to the recorder.

    Has no `id` or `timestamp` field and rejects extra keys: both are
    assigned by the recorder at write time.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    tenant_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    role: Optional[Role] = None
    action: str = Field(min_length=1)
    resource: str = Field(min_length=1)
    resource_id: Optional[str] = None
    changes: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v):
        if v is None:
            return v
        return Role.parse(v)


class AuditLogEntry(BaseModel):
    """Stored, immutable audit record."""

    model_config = ConfigDict(frozen=True)

    id: str
    tenant_id: str
    seq: int
    user_id: str
    role: Optional[Role] = None
    action: str
    resource: str
    resource_id: Optional[str] = None
    changes: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime

    @field_validator("timestamp", mode="after")
    @classmethod
    def timestamp_utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    def to_document(self) -> dict[str, Any]:
        doc = self.model_dump()
        doc["role"] = self.role.value if self.role else None
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> AuditLogEntry:
        data = {k: v for k, v in doc.items() if k != "_id"}
        return cls(**data)


class AuditFilters(BaseModel):
    user_id: Optional[str] = None
    resource: Optional[str] = None
    action: Optional[str] = None

    def as_query(self, tenant_id: str) -> dict[str, Any]:
        q: dict[str, Any] = {"tenant_id": tenant_id}
        for field in ("user_id", "resource", "action"):
            value = getattr(self, field)
            if value:
                q[field] = value
        return q


class AuditAppendRequest(BaseModel):
    action: str = Field(min_length=1)
    resource: str = Field(min_length=1)
    resource_id: Optional[str] = None
    changes: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None


class AuditQueryRequest(AuditFilters):
    limit: Optional[int] = None
    offset: int = 0
