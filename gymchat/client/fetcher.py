import logging
from dataclasses import dataclass, field
from typing import List, Optional

from gymchat.client.cache import LocalCache
from gymchat.errors import BackendError, MalformedResponse
from gymchat.repositories.backend import MessageBackend
from gymchat.schemas.message import Message, select_conversation


logger = logging.getLogger(__name__)

FETCH_LIMIT = 100


@dataclass
class FetchResult:
    messages: List[Message] = field(default_factory=list)
    ok: bool = True
    from_cache: bool = False


class ConversationFetcher:

    def __init__(self, backend: MessageBackend, cache: Optional[LocalCache] = None, limit: int = FETCH_LIMIT) -> None:
        self._backend = backend
        self._cache = cache
        self._limit = limit

    async def fetch(self, my_id: str, peer_id: str) -> FetchResult:
        """Load the latest messages of the (my_id, peer_id) conversation.

        Rows are requested by ``my_id`` alone and narrowed to the pair here.
        On success the cache entry for ``peer_id`` is replaced; on failure the
        cached list (possibly empty) is returned with ``ok=False``.
        """
        try:
            rows = await self._backend.fetch_messages(my_id, limit=self._limit)
            messages = select_conversation(rows, my_id, peer_id)
        except (BackendError, MalformedResponse):
            logger.exception("Fetching conversation %s <-> %s failed", my_id, peer_id)
            cached = self._cache.load(peer_id) if self._cache else None
            return FetchResult(messages=cached.messages if cached else [], ok=False, from_cache=cached is not None)
        if self._cache is not None:
            self._cache.save(peer_id, messages)
        return FetchResult(messages=messages)
