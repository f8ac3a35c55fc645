import logging
from datetime import datetime, timezone
from typing import Optional

from gymchat.client.state import ConversationState
from gymchat.errors import GymChatError, MessageNotEditable, MutationFailed
from gymchat.repositories.backend import MessageBackend
from gymchat.schemas.message import Message


logger = logging.getLogger(__name__)


class MessageMutator:
    """Edit and delete the caller's messages through the backend RPCs."""

    def __init__(self, backend: MessageBackend, state: ConversationState, my_id: str) -> None:
        self._backend = backend
        self._state = state
        self._my_id = my_id

    async def edit(self, message_id: str, new_text: str) -> Optional[Message]:
        new_text = (new_text or "").strip()
        if not new_text:
            return None
        current = self._state.get(message_id)
        if current is not None and (current.sender_id != self._my_id or current.is_deleted):
            raise MessageNotEditable(f"Message {message_id} cannot be edited")
        try:
            await self._backend.edit_message(self._my_id, message_id, new_text)
        except MessageNotEditable:
            raise
        except GymChatError as exc:
            logger.exception("Editing message %s failed", message_id)
            raise MutationFailed("Failed to edit message") from exc
        if current is None:
            return None
        return self._state.update(
            message_id,
            edited_text=current.edited_text if current.edited_text is not None else current.text,
            text=new_text,
            edited_at=datetime.now(timezone.utc),
        )

    async def delete(self, message_id: str, for_everyone: bool) -> None:
        try:
            if for_everyone:
                await self._backend.delete_message_for_everyone(self._my_id, message_id)
            else:
                await self._backend.delete_message_for_me(self._my_id, message_id)
        except GymChatError as exc:
            logger.exception("Deleting message %s failed", message_id)
            raise MutationFailed("Failed to delete message") from exc
        if for_everyone:
            self._state.update(
                message_id,
                is_deleted=True,
                deleted_at=datetime.now(timezone.utc),
                text="",
                image_url=None,
                audio_url=None,
                edited_text=None,
            )
        else:
            self._state.remove(message_id)
