import base64
import binascii
import functools
import json
import logging
import time
from typing import Any, Dict, Iterable, List, Optional

from fastapi.encoders import jsonable_encoder
from pymongo.errors import PyMongoError
from redis.exceptions import RedisError

from gymchat.errors import BackendError
from gymchat.repositories.message_repository import MessageRepository
from gymchat.repositories.profile_repository import ProfileRepository
from gymchat.schemas.message import MessageCreate
from gymchat.utils.object_storage import AUDIO_BUCKET, ObjectStorage
from gymchat.utils.realtime_bus import insert_channel


logger = logging.getLogger(__name__)


def _backend_call(func):
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except PyMongoError as exc:
            raise BackendError(f"{func.__name__} failed: {exc}") from exc
    return wrapper


class ChatService:
    """MongoDB/GridFS/bus implementation of the messaging backend."""

    def __init__(
        self,
        message_repo: MessageRepository,
        profile_repo: ProfileRepository,
        storage: ObjectStorage,
        bus,
    ) -> None:
        self._message_repo = message_repo
        self._profile_repo = profile_repo
        self._storage = storage
        self._bus = bus

    @_backend_call
    async def fetch_messages(self, user_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        return await self._message_repo.fetch_for_user(user_id, limit=limit)

    @_backend_call
    async def insert_message(
        self,
        sender_id: str,
        receiver_id: str,
        text: str,
        image_url: Optional[str] = None,
        audio_url: Optional[str] = None,
        client_message_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        row = await self._message_repo.insert(
            sender_id=sender_id,
            receiver_id=receiver_id,
            text=text,
            image_url=image_url,
            audio_url=audio_url,
            client_message_id=client_message_id,
        )
        await self._publish_insert(row)
        return row

    async def _publish_insert(self, row: Dict[str, Any]) -> None:
        payload = json.dumps({"event": "INSERT", "table": "messages", "new": jsonable_encoder(row)})
        try:
            await self._bus.publish(insert_channel(row["receiver_id"]), payload)
        except RedisError:
            # the row is stored; receivers pick it up on their next fetch
            logger.exception("Failed to publish message %s", row["id"])

    @_backend_call
    async def update_message(self, message_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._message_repo.update(message_id, fields)

    @_backend_call
    async def mark_read(self, receiver_id: str, sender_id: str) -> int:
        return await self._message_repo.mark_read(receiver_id, sender_id)

    @_backend_call
    async def count_unread(self, receiver_id: str, sender_id: Optional[str] = None) -> int:
        return await self._message_repo.count_unread(receiver_id, sender_id)

    @_backend_call
    async def count_unread_by_sender(self, receiver_id: str, sender_ids: Iterable[str]) -> Dict[str, int]:
        return await self._message_repo.count_unread_by_sender(receiver_id, sender_ids)

    @_backend_call
    async def edit_message(self, caller_id: str, message_id: str, new_text: str) -> Dict[str, Any]:
        return await self._message_repo.edit_message(caller_id, message_id, new_text)

    @_backend_call
    async def delete_message_for_everyone(self, caller_id: str, message_id: str) -> Dict[str, Any]:
        return await self._message_repo.delete_message_for_everyone(caller_id, message_id)

    @_backend_call
    async def delete_message_for_me(self, caller_id: str, message_id: str) -> Dict[str, Any]:
        return await self._message_repo.delete_message_for_me(caller_id, message_id)

    @_backend_call
    async def delete_conversation(self, user_a: str, user_b: str) -> int:
        return await self._message_repo.delete_conversation(user_a, user_b)

    async def subscribe(self, receiver_id: str, on_insert):
        async def _on_message(raw: str) -> None:
            event = json.loads(raw)
            if event.get("event") == "INSERT":
                await on_insert(event.get("new"))

        try:
            return await self._bus.subscribe(insert_channel(receiver_id), _on_message)
        except RedisError as exc:
            raise BackendError(f"Could not subscribe to messages for {receiver_id}") from exc

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        return await self._storage.upload(bucket, path, data, content_type)

    @_backend_call
    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self._profile_repo.get(user_id)

    @_backend_call
    async def list_athletes_for_coach(self, coach_id: str) -> List[Dict[str, Any]]:
        return await self._profile_repo.list_athletes_for_coach(coach_id)

    async def send_message(self, sender_id: str, payload: MessageCreate) -> Dict[str, Any]:
        """Server-side send: upload the optional audio clip, then write the row."""
        text = payload.text.strip()
        if not text and not payload.image_url and not payload.audio_base64:
            raise ValueError("Message content cannot be empty")
        audio_url = None
        if payload.audio_base64:
            try:
                clip = base64.b64decode(payload.audio_base64, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise ValueError("audio_base64 is not valid base64") from exc
            path = f"{sender_id}/{int(time.time() * 1000)}.webm"
            audio_url = await self.upload(AUDIO_BUCKET, path, clip, payload.audio_content_type)
        return await self.insert_message(
            sender_id=sender_id,
            receiver_id=payload.receiver_id,
            text=text,
            image_url=payload.image_url,
            audio_url=audio_url,
            client_message_id=payload.client_message_id,
        )
