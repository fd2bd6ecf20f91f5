from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class Decision:
    allowed: bool
    requires_approval: bool = False
    reason: str | None = None

    @classmethod
    def allow(cls) -> Decision:
        return cls(allowed=True, requires_approval=False)

    @classmethod
    def deny(cls, reason: str) -> Decision:
        return cls(allowed=False, requires_approval=False, reason=reason)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
