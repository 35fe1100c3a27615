"""SessionRecord dataclass, the persisted per-session payload."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .items import ConversationItem, item_from_dict, items_to_wire


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SessionRecord:
    """Session 持久化数据"""

    session_id: str
    items: List[ConversationItem] = field(default_factory=list)
    ttl: Optional[int] = None
    updated_at: str = field(default_factory=_utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"items": items_to_wire(self.items), "updated_at": self.updated_at}
        if self.ttl:
            data["ttl"] = self.ttl
        return data

    @classmethod
    def from_stored(cls, session_id: str, raw: Any) -> "SessionRecord":
        """Parse a stored value.

        Accepts the record object and the legacy bare item list. Raises
        ``ValueError`` when the value or any item is malformed.
        """
        if raw is None:
            return cls(session_id=session_id)
        if isinstance(raw, list):
            # Legacy shape: bare item array
            return cls(session_id=session_id, items=[item_from_dict(x) for x in raw], updated_at="")
        if not isinstance(raw, dict):
            raise ValueError(f"Unexpected session record type: {type(raw).__name__}")
        items = raw.get("items") or []
        if not isinstance(items, list):
            raise ValueError("Session record 'items' must be a list")
        return cls(
            session_id=session_id,
            items=[item_from_dict(x) for x in items],
            ttl=raw.get("ttl"),
            updated_at=str(raw.get("updated_at") or ""),
        )
