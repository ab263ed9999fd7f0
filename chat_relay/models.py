"""
Data models for the dialog chat relay
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Tuple


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def encode_frame(payload: Dict[str, Any]) -> str:
    """Serialize an outbound frame keeping non-ASCII text readable"""
    return json.dumps(payload, ensure_ascii=False)


@dataclass(eq=False)
class ClientConnection:
    """Live transport endpoint, compared and hashed by identity"""
    websocket: Any
    ip_address: str = "unknown"
    connection_id: str = field(default_factory=lambda: f"ws_{uuid.uuid4().hex[:12]}")
    connected_at: datetime = field(default_factory=_utcnow)

    async def send_json(self, payload: Dict[str, Any]):
        await self.websocket.send_text(encode_frame(payload))

    async def close(self, code: int = 1000, reason: str = ""):
        await self.websocket.close(code=code, reason=reason)


@dataclass
class Session:
    """Authenticated session record resolved from the session store"""
    user_id: Any
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Session as attached to outbound messages under `from`"""
        return {**self.data, "user_id": self.user_id}


@dataclass(frozen=True)
class DialogInfo:
    """Cached membership of a dialog"""
    dialog_id: Any
    members: Tuple[Any, ...]
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)
    loaded_at: datetime = field(default_factory=_utcnow, compare=False)

    def has_member(self, user_id: Any) -> bool:
        return user_id in self.members


@dataclass
class ChatMessage:
    """
    Inbound chat message enriched with its sender and sanitized text

    `fields` keeps every original inbound field so the outbound frame
    carries them through unchanged.
    """
    dialog_id: Any
    text: str
    sender: Session
    fields: Dict[str, Any] = field(default_factory=dict)
    message_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            **self.fields,
            "from": self.sender.to_dict(),
            "text": self.text,
        }


@dataclass
class ErrorNotification:
    """System notification sent to the audience of a ChatError"""
    text: str
    type: str = "error"
    sender: str = "system"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "type": self.type,
            "from": self.sender,
        }
