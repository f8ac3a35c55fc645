from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Protocol


RowHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class Subscription(Protocol):

    async def run(self) -> None: ...

    async def cancel(self) -> None: ...


class MessageBackend(Protocol):
    """Operations the messaging client needs from the hosted backend.

    Rows are plain dicts keyed by the ``messages`` column names. Client code
    depends on this interface only, so tests can substitute an in-memory
    implementation.
    """

    async def fetch_messages(self, user_id: str, limit: int = 100) -> List[Dict[str, Any]]: ...

    async def insert_message(
        self,
        sender_id: str,
        receiver_id: str,
        text: str,
        image_url: Optional[str] = None,
        audio_url: Optional[str] = None,
        client_message_id: Optional[str] = None,
    ) -> Dict[str, Any]: ...

    async def update_message(self, message_id: str, fields: Dict[str, Any]) -> Dict[str, Any]: ...

    async def mark_read(self, receiver_id: str, sender_id: str) -> int: ...

    async def count_unread(self, receiver_id: str, sender_id: Optional[str] = None) -> int: ...

    async def count_unread_by_sender(self, receiver_id: str, sender_ids: Iterable[str]) -> Dict[str, int]: ...

    async def edit_message(self, caller_id: str, message_id: str, new_text: str) -> Dict[str, Any]: ...

    async def delete_message_for_everyone(self, caller_id: str, message_id: str) -> Dict[str, Any]: ...

    async def delete_message_for_me(self, caller_id: str, message_id: str) -> Dict[str, Any]: ...

    async def delete_conversation(self, user_a: str, user_b: str) -> int: ...

    async def subscribe(self, receiver_id: str, on_insert: RowHandler) -> Subscription: ...

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        """Store ``data`` and return its public URL."""
        ...

    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]: ...

    async def list_athletes_for_coach(self, coach_id: str) -> List[Dict[str, Any]]: ...
