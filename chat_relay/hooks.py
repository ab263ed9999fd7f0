"""
Persistence and send hooks injected into the message router
"""

import inspect
from typing import Any, Callable, List, Optional, Protocol

from .models import ChatMessage


class PersistenceSink(Protocol):
    async def plain_save(self, message: ChatMessage) -> None:
        """Store a message every dialog member received live"""

    async def unread_save(self, message: ChatMessage, unread_user_ids: List[Any]) -> None:
        """Store a message along with the members who were offline"""


class SendObserver(Protocol):
    async def before_send(self, message: ChatMessage) -> None:
        """Runs once before delivery and may modify the message"""

    async def after_send(self, message: ChatMessage) -> None:
        """Runs once after persistence"""


class NullPersistenceSink:
    async def plain_save(self, message: ChatMessage) -> None:
        return None

    async def unread_save(self, message: ChatMessage, unread_user_ids: List[Any]) -> None:
        return None


class NullSendObserver:
    async def before_send(self, message: ChatMessage) -> None:
        return None

    async def after_send(self, message: ChatMessage) -> None:
        return None


async def _call(callback: Optional[Callable], *args):
    if callback is None:
        return None
    result = callback(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class CallbackPersistenceSink:
    """Adapts plain sync or async callables to PersistenceSink"""

    def __init__(self, plain_save: Optional[Callable] = None, unread_save: Optional[Callable] = None):
        self._plain_save = plain_save
        self._unread_save = unread_save

    async def plain_save(self, message: ChatMessage) -> None:
        await _call(self._plain_save, message)

    async def unread_save(self, message: ChatMessage, unread_user_ids: List[Any]) -> None:
        await _call(self._unread_save, message, unread_user_ids)


class CallbackSendObserver:
    """Adapts plain sync or async callables to SendObserver"""

    def __init__(self, before_send: Optional[Callable] = None, after_send: Optional[Callable] = None):
        self._before_send = before_send
        self._after_send = after_send

    async def before_send(self, message: ChatMessage) -> None:
        await _call(self._before_send, message)

    async def after_send(self, message: ChatMessage) -> None:
        await _call(self._after_send, message)
