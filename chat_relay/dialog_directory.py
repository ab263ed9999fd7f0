"""
Read-through cache of dialog membership
"""

import asyncio
import json
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol

from .constants import DIALOG_CACHE_TTL_SECONDS, DIALOG_MEMBERS_FIELD
from .exceptions import DialogDecodeError
from .logger import get_logger
from .models import DialogInfo
from .validators import normalize_id

logger = get_logger()


class DialogRepository(Protocol):
    async def lookup_dialog(self, dialog_id: Any) -> Optional[Mapping[str, Any]]:
        ...


def decode_dialog_row(dialog_id: Any, row: Mapping[str, Any]) -> DialogInfo:
    """
    Build a DialogInfo from a persistence row whose member list is serialized JSON

    Raises:
        DialogDecodeError: member list is missing or not a JSON list
    """
    encoded = row.get(DIALOG_MEMBERS_FIELD)
    try:
        members = json.loads(encoded) if isinstance(encoded, (str, bytes)) else encoded
    except json.JSONDecodeError as e:
        raise DialogDecodeError(f"dialog {dialog_id}: invalid member list") from e

    if not isinstance(members, list):
        raise DialogDecodeError(f"dialog {dialog_id}: member list is not a list")

    unique = []
    for member in members:
        member_id = normalize_id(member)
        if member_id is not None and member_id not in unique:
            unique.append(member_id)

    extra = {key: value for key, value in row.items() if key != DIALOG_MEMBERS_FIELD}
    return DialogInfo(dialog_id=dialog_id, members=tuple(unique), extra=extra)


@dataclass
class _LoadSlot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class DialogDirectory:
    """
    Lazily loads dialog membership and keeps it for the life of the process.

    Entries are immutable once cached; only the first load of a dialog id is
    serialized, and its lock is released once no caller waits on it.
    `invalidate` and an optional TTL allow membership changes made elsewhere
    to be picked up; a load that overlaps an invalidation is returned to its
    caller but not cached.
    """

    def __init__(self, repository: DialogRepository, ttl_seconds: float = DIALOG_CACHE_TTL_SECONDS):
        self.repository = repository
        self.ttl_seconds = ttl_seconds
        self._dialogs: Dict[Any, DialogInfo] = {}
        self._load_locks: Dict[Any, _LoadSlot] = {}
        self._generation = 0

    def _fresh(self, info: Optional[DialogInfo]) -> bool:
        if info is None:
            return False
        if not self.ttl_seconds:
            return True
        age = (datetime.now(timezone.utc) - info.loaded_at).total_seconds()
        return age < self.ttl_seconds

    def cached_info(self, dialog_id: Any) -> Optional[DialogInfo]:
        info = self._dialogs.get(dialog_id)
        return info if self._fresh(info) else None

    async def info_for(self, dialog_id: Any) -> Optional[DialogInfo]:
        """
        Get membership for a dialog, loading it on first use

        Returns:
            DialogInfo, or None when the dialog does not exist (not cached)
        """
        info = self.cached_info(dialog_id)
        if info is not None:
            return info

        slot = self._load_locks.get(dialog_id)
        if slot is None:
            slot = self._load_locks[dialog_id] = _LoadSlot()
        slot.users += 1
        try:
            async with slot.lock:
                info = self.cached_info(dialog_id)
                if info is not None:
                    return info

                generation = self._generation
                row = await self.repository.lookup_dialog(dialog_id)
                if not row:
                    logger.info(f"Dialog not found: {dialog_id}")
                    return None

                info = decode_dialog_row(dialog_id, row)
                if generation != self._generation:
                    logger.info(f"Dialog {dialog_id} invalidated while loading, not cached")
                    return info

                self._dialogs[dialog_id] = info
                logger.info(f"Dialog cached: {dialog_id} with {len(info.members)} members")
                return info
        finally:
            slot.users -= 1
            if not slot.users and self._load_locks.get(dialog_id) is slot:
                del self._load_locks[dialog_id]

    def invalidate(self, dialog_id: Any) -> bool:
        """Drop one cached dialog so the next lookup reloads it"""
        self._generation += 1
        return self._dialogs.pop(dialog_id, None) is not None

    def clear(self):
        self._generation += 1
        self._dialogs.clear()

    def get_dialog_stats(self) -> Dict[str, Any]:
        return {
            "cached_dialogs": len(self._dialogs),
            "loading_dialogs": len(self._load_locks),
            "cache_ttl_seconds": self.ttl_seconds,
        }
