from typing import Any, Iterable, List, Optional

from gymchat.schemas.message import Message


class ConversationState:
    """Ordered in-memory message list of the open conversation.

    Appends are deduplicated by server id and by ``client_message_id``; a
    confirmed row arriving for a pending optimistic entry replaces it in place.
    """

    def __init__(self, messages: Optional[Iterable[Message]] = None) -> None:
        self._messages: List[Message] = list(messages or [])

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def reset(self, messages: Iterable[Message]) -> None:
        self._messages = list(messages)

    def index_of(self, message_id: str) -> Optional[int]:
        for idx, message in enumerate(self._messages):
            if message.id == message_id:
                return idx
        return None

    def get(self, message_id: str) -> Optional[Message]:
        idx = self.index_of(message_id)
        return self._messages[idx] if idx is not None else None

    def append(self, message: Message) -> bool:
        if self.index_of(message.id) is not None:
            return False
        if message.client_message_id:
            for idx, existing in enumerate(self._messages):
                if existing.client_message_id == message.client_message_id:
                    if existing.pending:
                        self._messages[idx] = message
                    return False
        self._messages.append(message)
        return True

    def replace(self, message_id: str, message: Message) -> bool:
        idx = self.index_of(message_id)
        if idx is None:
            return False
        if message.id != message_id and self.index_of(message.id) is not None:
            # the confirmed row already landed through another path
            del self._messages[idx]
            return True
        self._messages[idx] = message
        return True

    def remove(self, message_id: str) -> bool:
        idx = self.index_of(message_id)
        if idx is None:
            return False
        del self._messages[idx]
        return True

    def update(self, message_id: str, **fields: Any) -> Optional[Message]:
        idx = self.index_of(message_id)
        if idx is None:
            return None
        updated = self._messages[idx].model_copy(update=fields)
        self._messages[idx] = updated
        return updated
