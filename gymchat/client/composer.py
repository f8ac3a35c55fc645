import base64
import binascii
import hashlib
import logging
import re
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

from gymchat.client.state import ConversationState
from gymchat.errors import AttachmentUploadError, GymChatError, SendFailed
from gymchat.repositories.backend import MessageBackend
from gymchat.schemas.message import Message
from gymchat.utils.object_storage import AUDIO_BUCKET, UPLOADS_BUCKET


logger = logging.getLogger(__name__)

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w-]+=[^;,]*)*;base64,(?P<data>.*)$", re.DOTALL)


@dataclass
class AudioClip:
    data: bytes
    content_type: str = "audio/webm"
    # local object URL used to play the clip back before the upload finishes
    preview_url: Optional[str] = None


def decode_data_uri(data_uri: str) -> Tuple[bytes, str]:
    match = _DATA_URI.match(data_uri)
    if not match:
        raise AttachmentUploadError("Image is not a base64 data URI")
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AttachmentUploadError("Image data URI is not valid base64") from exc
    return data, match.group("mime") or "application/octet-stream"


def fingerprint(
    sender_id: str,
    receiver_id: str,
    text: str,
    image: Optional[str],
    audio: Optional[AudioClip],
    ts_ms: int,
    nonce: str = "",
) -> str:
    digest = hashlib.sha1()
    for part in (sender_id, receiver_id, text, image or "", str(len(audio.data)) if audio else "", str(ts_ms), nonce):
        digest.update(part.encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()


def _extension(content_type: str) -> str:
    subtype = content_type.split("/", 1)[-1]
    return subtype.split("+", 1)[0] or "bin"


class MessageComposer:

    def __init__(
        self,
        backend: MessageBackend,
        state: ConversationState,
        my_id: Optional[str],
        peer_id: Optional[str],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self._state = state
        self._my_id = my_id
        self._peer_id = peer_id
        self._clock = clock
        # fingerprint -> temporary id of the optimistic entry
        self.pending: Dict[str, str] = {}

    async def compose(
        self,
        text: Optional[str] = None,
        image_data_uri: Optional[str] = None,
        audio: Optional[AudioClip] = None,
    ) -> Optional[Message]:
        """Send one message, showing it locally before the backend confirms.

        Returns the confirmed message, or None when there is nothing to send.
        Raises ``AttachmentUploadError`` or ``SendFailed`` after removing the
        optimistic entry.
        """
        text = text or ""
        if audio is not None and not audio.data:
            audio = None
        if (not text.strip() and not image_data_uri and audio is None) or not self._my_id or not self._peer_id:
            return None

        ts_ms = int(self._clock() * 1000)
        # two sends in the same millisecond still get distinct ids
        client_message_id = fingerprint(self._my_id, self._peer_id, text, image_data_uri, audio, ts_ms, uuid.uuid4().hex)
        temp_id = f"temp-{client_message_id}"
        optimistic = Message(
            id=temp_id,
            sender_id=self._my_id,
            receiver_id=self._peer_id,
            text=text,
            image_url=image_data_uri,
            audio_url=audio.preview_url if audio else None,
            created_at=datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc),
            client_message_id=client_message_id,
            pending=True,
        )
        self._state.append(optimistic)
        self.pending[client_message_id] = temp_id

        try:
            image_url = await self._upload_image(image_data_uri, ts_ms) if image_data_uri else None
            audio_url = await self._upload_audio(audio, ts_ms) if audio else None
        except AttachmentUploadError:
            self._rollback(client_message_id, temp_id)
            raise

        try:
            row = await self._backend.insert_message(
                sender_id=self._my_id,
                receiver_id=self._peer_id,
                text=text,
                image_url=image_url,
                audio_url=audio_url,
                client_message_id=client_message_id,
            )
            confirmed = Message.from_row(row)
        except GymChatError as exc:
            logger.exception("Sending message to %s failed", self._peer_id)
            self._rollback(client_message_id, temp_id)
            raise SendFailed(f"Failed to send message: {exc}") from exc

        self.pending.pop(client_message_id, None)
        if not self._state.replace(temp_id, confirmed):
            # the optimistic entry was already swapped for the realtime echo
            self._state.append(confirmed)
        return confirmed

    def _rollback(self, client_message_id: str, temp_id: str) -> None:
        self.pending.pop(client_message_id, None)
        self._state.remove(temp_id)

    async def _upload_audio(self, audio: AudioClip, ts_ms: int) -> str:
        path = f"{self._my_id}/{ts_ms}.{_extension(audio.content_type)}"
        try:
            return await self._backend.upload(AUDIO_BUCKET, path, audio.data, audio.content_type)
        except AttachmentUploadError:
            raise
        except GymChatError as exc:
            raise AttachmentUploadError(f"Audio upload failed: {exc}") from exc

    async def _upload_image(self, data_uri: str, ts_ms: int) -> str:
        data, content_type = decode_data_uri(data_uri)
        path = f"{self._my_id}/chat/{ts_ms}.{_extension(content_type)}"
        try:
            return await self._backend.upload(UPLOADS_BUCKET, path, data, content_type)
        except AttachmentUploadError:
            raise
        except GymChatError as exc:
            raise AttachmentUploadError(f"Image upload failed: {exc}") from exc
