from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gymchat.errors import MalformedResponse


DELETED_PLACEHOLDER = "This message was deleted"


class Message(BaseModel):

    model_config = ConfigDict(extra="ignore")

    id: str
    sender_id: str
    receiver_id: str
    text: str = ""
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    created_at: datetime
    is_read: bool = False
    edited_at: Optional[datetime] = None
    edited_text: Optional[str] = None
    is_deleted: bool = False
    deleted_for_sender: bool = False
    deleted_for_receiver: bool = False
    deleted_at: Optional[datetime] = None
    client_message_id: Optional[str] = None
    # local only: optimistic entry not yet confirmed by the backend
    pending: bool = False

    @field_validator("text", mode="before")
    @classmethod
    def _null_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @classmethod
    def from_row(cls, row: Any) -> "Message":
        """Parse a raw ``messages`` row, raising MalformedResponse on any shape mismatch."""
        if not isinstance(row, Mapping):
            raise MalformedResponse(f"Expected a message row, got {type(row).__name__}")
        try:
            return cls.model_validate(dict(row))
        except ValidationError as exc:
            raise MalformedResponse(f"Unrecognized message row: {exc.errors()}") from exc

    def belongs_to(self, user_a: str, user_b: str) -> bool:
        return (self.sender_id == user_a and self.receiver_id == user_b) or (
            self.sender_id == user_b and self.receiver_id == user_a
        )

    def hidden_for(self, viewer_id: str) -> bool:
        if viewer_id == self.sender_id:
            return self.deleted_for_sender
        if viewer_id == self.receiver_id:
            return self.deleted_for_receiver
        return False

    @property
    def is_edited(self) -> bool:
        return self.edited_at is not None

    @property
    def display_text(self) -> str:
        return DELETED_PLACEHOLDER if self.is_deleted else self.text


class MessageCreate(BaseModel):

    receiver_id: str
    text: str = ""
    image_url: Optional[str] = None
    # base64 encoded clip, uploaded to the audio bucket before the row is written
    audio_base64: Optional[str] = None
    audio_content_type: str = "audio/webm"
    client_message_id: Optional[str] = None


class MessageEdit(BaseModel):

    new_text: str = Field(min_length=1)


class MarkReadRequest(BaseModel):

    from_user_id: str


class UnreadCount(BaseModel):

    count: int


def select_conversation(rows: Iterable[Any], my_id: str, peer_id: str) -> List[Message]:
    """Parse rows, keep only the (my_id, peer_id) pair visible to my_id, oldest first."""
    messages = [Message.from_row(row) for row in rows]
    selected = [m for m in messages if m.belongs_to(my_id, peer_id) and not m.hidden_for(my_id)]
    selected.sort(key=lambda m: (m.created_at, m.id))
    return selected
