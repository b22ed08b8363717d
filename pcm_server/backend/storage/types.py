"""Shared session record type."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class SessionRecord:
    """Session metadata as seen through the registry."""

    session_id: str
    source_ids: List[str]
    created_at: float
    internal_id: Optional[str] = None
    last_accessed_at: float = 0.0

    def age(self, now: float) -> float:
        return now - self.created_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "internal_id": self.internal_id,
            "source_ids": list(self.source_ids),
            "created_at": self.created_at,
            "last_accessed_at": self.last_accessed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionRecord":
        created_at = float(data["created_at"])
        return cls(
            session_id=str(data["session_id"]),
            source_ids=[str(item) for item in data.get("source_ids") or []],
            created_at=created_at,
            internal_id=data.get("internal_id"),
            last_accessed_at=float(data.get("last_accessed_at") or created_at),
        )
