import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from gymchat.errors import GymChatError
from gymchat.repositories.backend import MessageBackend


logger = logging.getLogger(__name__)

ReadCallback = Callable[[], Union[None, Awaitable[None]]]


class ReadStateUpdater:
    """Best-effort ``is_read`` flip for an opened conversation."""

    def __init__(self, backend: MessageBackend, on_messages_read: Optional[ReadCallback] = None) -> None:
        self._backend = backend
        self._on_messages_read = on_messages_read

    async def mark_read(self, my_id: str, peer_id: str) -> int:
        if not my_id or not peer_id:
            return 0
        updated = 0
        try:
            updated = await self._backend.mark_read(my_id, peer_id)
        except GymChatError:
            logger.exception("Marking messages from %s as read failed", peer_id)
        try:
            if self._on_messages_read is not None:
                result = self._on_messages_read()
                if inspect.isawaitable(result):
                    await result
        except Exception:
            logger.exception("Unread badge refresh after mark_read failed")
        return updated
