from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RecordStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    ARCHIVED = "archived"


class RecordAction(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    ARCHIVE = "archive"


# action -> (allowed source states, permission action checked on the resource)
TRANSITIONS: dict[RecordAction, tuple[frozenset[Optional[RecordStatus]], str]] = {
    RecordAction.SUBMIT: (frozenset({None, RecordStatus.DRAFT}), "create"),
    RecordAction.APPROVE: (frozenset({RecordStatus.PENDING_APPROVAL}), "approve"),
    RecordAction.REJECT: (frozenset({RecordStatus.PENDING_APPROVAL}), "reject"),
    RecordAction.ARCHIVE: (frozenset({RecordStatus.PENDING_APPROVAL, RecordStatus.APPROVED}), "delete"),
}


class RecordTransitionRequest(BaseModel):
    resource: str = Field(min_length=1, pattern=r"^[A-Za-z0-9_\-]+(\.[A-Za-z0-9_\-]+)*$")
    resource_id: str = Field(min_length=1)
    action: RecordAction
    # None for a record that does not exist yet (submit)
    current_status: Optional[RecordStatus] = None


class RecordTransitionResult(BaseModel):
    resource: str
    resource_id: str
    action: RecordAction
    from_status: Optional[RecordStatus] = None
    to_status: RecordStatus
    audit_id: str
