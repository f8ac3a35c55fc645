from datetime import datetime
from typing import Optional, TypedDict


class MessageDocument(TypedDict, total=False):
    id: str
    sender_id: str
    receiver_id: str
    text: str
    image_url: Optional[str]
    audio_url: Optional[str]
    created_at: datetime
    is_read: bool
    # edit trail
    edited_at: Optional[datetime]
    edited_text: Optional[str]
    # soft delete
    is_deleted: bool
    deleted_for_sender: bool
    deleted_for_receiver: bool
    deleted_at: Optional[datetime]
    # optimistic send fingerprint
    client_message_id: Optional[str]
