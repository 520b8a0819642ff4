"""Chat message data model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

from ..rendering.markdown import RenderContext


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ChatMessage:
    """Represents a single message of the active chat.

    ``mes`` holds the raw (unrendered) text. ``swipes`` holds alternate raw
    variants; ``swipe_id`` points at the one currently shown.
    """

    mes: str
    name: str = ""
    is_user: bool = False
    is_system: bool = False
    swipes: list[str] = field(default_factory=list)
    swipe_id: int | None = None
    send_date: datetime = field(default_factory=_utcnow)
    extra: Dict[str, Any] = field(default_factory=dict)

    def has_swipe(self, index: int | None) -> bool:
        return index is not None and 0 <= index < len(self.swipes)

    def render_context(self, message_id: str | None = None) -> RenderContext:
        return RenderContext(
            message_id=message_id,
            character_name=self.name or None,
            is_user=self.is_user,
            is_system=self.is_system,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the message for persistence."""

        payload: Dict[str, Any] = {
            "mes": self.mes,
            "name": self.name,
            "is_user": self.is_user,
            "is_system": self.is_system,
            "send_date": self.send_date.isoformat(),
        }
        if self.swipes:
            payload["swipes"] = list(self.swipes)
        if self.swipe_id is not None:
            payload["swipe_id"] = self.swipe_id
        if self.extra:
            payload["extra"] = dict(self.extra)
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ChatMessage:
        send_date = payload.get("send_date")
        parsed_date = _utcnow()
        if isinstance(send_date, str):
            try:
                parsed_date = datetime.fromisoformat(send_date)
            except ValueError:
                pass
        swipe_id = payload.get("swipe_id")
        return cls(
            mes=str(payload.get("mes") or ""),
            name=str(payload.get("name") or ""),
            is_user=bool(payload.get("is_user", False)),
            is_system=bool(payload.get("is_system", False)),
            swipes=[str(item) for item in payload.get("swipes") or []],
            swipe_id=int(swipe_id) if swipe_id is not None else None,
            send_date=parsed_date,
            extra=dict(payload.get("extra") or {}),
        )


__all__ = ["ChatMessage"]
