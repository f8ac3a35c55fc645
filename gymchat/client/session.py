import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from gymchat.client.cache import LocalCache
from gymchat.client.composer import AudioClip, MessageComposer
from gymchat.client.fetcher import ConversationFetcher, FetchResult
from gymchat.client.mutator import MessageMutator
from gymchat.client.read_state import ReadCallback, ReadStateUpdater
from gymchat.client.state import ConversationState
from gymchat.client.subscriber import RealtimeSubscriber
from gymchat.config import get_settings
from gymchat.errors import GymChatError
from gymchat.repositories.backend import MessageBackend
from gymchat.schemas.message import Message


logger = logging.getLogger(__name__)


class ChatSession:
    """Direct-message panel between ``my_id`` and one selected peer.

    ``mount`` renders the cached conversation, attaches the realtime
    subscriber, reconciles with the backend and marks the peer's messages as
    read. Every reconciliation pass is numbered: a pass that finishes after a
    newer one started is dropped, and pushes that land while a pass is in
    flight are re-applied on top of its result.
    """

    def __init__(
        self,
        backend: MessageBackend,
        cache: Optional[LocalCache],
        my_id: str,
        peer_id: Optional[str],
        on_messages_read: Optional[ReadCallback] = None,
        on_foreign_message: Optional[Callable[[Message], Awaitable[None]]] = None,
        fetch_limit: Optional[int] = None,
    ) -> None:
        self._backend = backend
        self._cache = cache
        self.my_id = my_id
        self.peer_id = peer_id
        self._on_foreign_message = on_foreign_message
        self.state = ConversationState()
        self.is_loading = False
        self.is_refreshing = False
        self._mounted = False
        self._fetcher = ConversationFetcher(backend, cache, limit=fetch_limit or get_settings().message_fetch_limit)
        self._read_state = ReadStateUpdater(backend, on_messages_read)
        self._subscriber: Optional[RealtimeSubscriber] = None
        self._composer = MessageComposer(backend, self.state, my_id, peer_id)
        self._mutator = MessageMutator(backend, self.state, my_id)
        self._started_seq = 0
        self._inflight = 0
        self._buffered_pushes: List[Message] = []

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def messages(self) -> List[Message]:
        return self.state.messages

    def visible_messages(self) -> List[Message]:
        return [m for m in self.state.messages if not m.hidden_for(self.my_id)]

    async def mount(self) -> None:
        self._mounted = True
        cached = self._cache.load(self.peer_id) if self._cache is not None and self.peer_id else None
        self.state.reset(cached.messages if cached else [])
        self.is_loading = bool(self.peer_id) and cached is None
        if not self.peer_id:
            return

        self._subscriber = RealtimeSubscriber(self._backend, self.my_id, self._on_push)
        try:
            await self._subscriber.start()
        except GymChatError:
            logger.exception("Realtime subscription for %s failed; showing fetched data only", self.my_id)

        await asyncio.gather(self.refresh(), self.mark_read())

    async def unmount(self) -> None:
        self._mounted = False
        self.is_loading = False
        self.is_refreshing = False
        subscriber, self._subscriber = self._subscriber, None
        if subscriber is not None:
            await subscriber.close()

    async def select_peer(self, peer_id: Optional[str]) -> None:
        await self.unmount()
        self.peer_id = peer_id
        self.state = ConversationState()
        self._composer = MessageComposer(self._backend, self.state, self.my_id, peer_id)
        self._mutator = MessageMutator(self._backend, self.state, self.my_id)
        self._buffered_pushes = []
        await self.mount()

    async def refresh(self) -> Optional[FetchResult]:
        if not self.peer_id:
            return None
        self._started_seq += 1
        seq = self._started_seq
        peer_id = self.peer_id
        state = self.state
        if len(state):
            self.is_refreshing = True
        else:
            self.is_loading = True
        self._inflight += 1
        try:
            result = await self._fetcher.fetch(self.my_id, peer_id)
        finally:
            self._inflight -= 1

        if not self._mounted or peer_id != self.peer_id or state is not self.state or seq < self._started_seq:
            logger.debug("Discarding stale fetch %s for %s", seq, peer_id)
            return None

        self.is_loading = False
        self.is_refreshing = False
        if result.ok:
            pending = [m for m in state.messages if m.pending]
            buffered, self._buffered_pushes = self._buffered_pushes, []
            state.reset(result.messages)
            for message in pending + buffered:
                state.append(message)
        elif result.from_cache and not len(state):
            state.reset(result.messages)
        return result

    async def mark_read(self) -> int:
        if not self.peer_id:
            return 0
        return await self._read_state.mark_read(self.my_id, self.peer_id)

    async def _on_push(self, message: Message) -> None:
        if not self._mounted:
            return
        if message.sender_id != self.peer_id:
            if self._on_foreign_message is not None:
                await self._on_foreign_message(message)
            return
        self.state.append(message)
        if self._inflight:
            self._buffered_pushes.append(message)
        await self.mark_read()

    async def send(
        self,
        text: Optional[str] = None,
        image_data_uri: Optional[str] = None,
        audio: Optional[AudioClip] = None,
    ) -> Optional[Message]:
        return await self._composer.compose(text=text, image_data_uri=image_data_uri, audio=audio)

    async def edit(self, message_id: str, new_text: str) -> Optional[Message]:
        return await self._mutator.edit(message_id, new_text)

    async def delete(self, message_id: str, for_everyone: bool) -> None:
        await self._mutator.delete(message_id, for_everyone)

    async def clear_conversation(self) -> bool:
        if not self.peer_id:
            return False
        try:
            await self._backend.delete_conversation(self.my_id, self.peer_id)
        except GymChatError:
            logger.exception("Clearing conversation with %s failed", self.peer_id)
            return False
        self.state.reset([])
        if self._cache is not None:
            self._cache.clear(self.peer_id)
        return True
