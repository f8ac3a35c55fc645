import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from gymchat.errors import MalformedResponse
from gymchat.repositories.backend import MessageBackend
from gymchat.schemas.message import Message


logger = logging.getLogger(__name__)


class RealtimeSubscriber:
    """Delivers messages inserted with ``receiver_id == my_id`` while alive.

    Deciding whether a row belongs to the open conversation is left to
    ``on_message``.
    """

    def __init__(self, backend: MessageBackend, my_id: str, on_message: Callable[[Message], Awaitable[None]]) -> None:
        self._backend = backend
        self._my_id = my_id
        self._on_message = on_message
        self._alive = False
        self._subscription = None
        self._task: Optional[asyncio.Task] = None

    @property
    def alive(self) -> bool:
        return self._alive

    async def start(self) -> None:
        if self._alive:
            return
        self._subscription = await self._backend.subscribe(self._my_id, self._handle_row)
        self._alive = True
        self._task = asyncio.create_task(self._subscription.run())

    async def _handle_row(self, row: Dict[str, Any]) -> None:
        if not self._alive:
            return
        try:
            message = Message.from_row(row)
        except MalformedResponse:
            logger.exception("Dropping malformed realtime row for %s", self._my_id)
            return
        if message.receiver_id != self._my_id:
            return
        await self._on_message(message)

    async def close(self) -> None:
        self._alive = False
        subscription, self._subscription = self._subscription, None
        task, self._task = self._task, None
        if subscription is not None:
            await subscription.cancel()
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
