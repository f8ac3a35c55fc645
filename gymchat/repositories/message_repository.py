from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from gymchat.errors import MessageNotEditable, MessageNotFound, PermissionDenied
from gymchat.models.message import MessageDocument


def _to_object_id(message_id: str) -> ObjectId:
    try:
        return ObjectId(message_id)
    except (InvalidId, TypeError) as exc:
        raise MessageNotFound(message_id) from exc


def _normalize(doc: Dict[str, Any]) -> MessageDocument:
    row = dict(doc)
    row["id"] = str(row.pop("_id"))
    return row


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("sender_id", ASCENDING), ("created_at", DESCENDING)])
        await self.collection.create_index([("receiver_id", ASCENDING), ("created_at", DESCENDING)])
        await self.collection.create_index([("receiver_id", ASCENDING), ("sender_id", ASCENDING), ("is_read", ASCENDING)])

    async def fetch_for_user(self, user_id: str, limit: int = 100) -> List[MessageDocument]:
        # The pair filter is applied by the caller; one participant is enough to use the indexes.
        query = {"$or": [{"sender_id": user_id}, {"receiver_id": user_id}]}
        cur = self.collection.find(query).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(limit)
        items = await cur.to_list(length=limit)
        return [_normalize(it) for it in items]

    async def get(self, message_id: str) -> Optional[MessageDocument]:
        doc = await self.collection.find_one({"_id": _to_object_id(message_id)})
        return _normalize(doc) if doc else None

    async def insert(
        self,
        sender_id: str,
        receiver_id: str,
        text: str,
        image_url: Optional[str] = None,
        audio_url: Optional[str] = None,
        client_message_id: Optional[str] = None,
    ) -> MessageDocument:
        doc: Dict[str, Any] = {
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "text": text,
            "image_url": image_url,
            "audio_url": audio_url,
            "created_at": datetime.now(timezone.utc),
            "is_read": False,
            "edited_at": None,
            "edited_text": None,
            "is_deleted": False,
            "deleted_for_sender": False,
            "deleted_for_receiver": False,
            "deleted_at": None,
            "client_message_id": client_message_id,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return _normalize(doc)

    async def update(self, message_id: str, fields: Dict[str, Any]) -> MessageDocument:
        doc = await self.collection.find_one_and_update(
            {"_id": _to_object_id(message_id)},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise MessageNotFound(message_id)
        return _normalize(doc)

    async def mark_read(self, receiver_id: str, sender_id: str) -> int:
        result = await self.collection.update_many(
            {"receiver_id": receiver_id, "sender_id": sender_id, "is_read": False},
            {"$set": {"is_read": True}},
        )
        return result.modified_count or 0

    async def count_unread(self, receiver_id: str, sender_id: Optional[str] = None) -> int:
        query: Dict[str, Any] = {"receiver_id": receiver_id, "is_read": False}
        if sender_id:
            query["sender_id"] = sender_id
        return await self.collection.count_documents(query)

    async def count_unread_by_sender(self, receiver_id: str, sender_ids: Iterable[str]) -> Dict[str, int]:
        senders = list(sender_ids)
        counts = {sender: 0 for sender in senders}
        if not senders:
            return counts
        pipeline = [
            {"$match": {"receiver_id": receiver_id, "is_read": False, "sender_id": {"$in": senders}}},
            {"$group": {"_id": "$sender_id", "count": {"$sum": 1}}},
        ]
        async for row in self.collection.aggregate(pipeline):
            counts[row["_id"]] = row["count"]
        return counts

    async def edit_message(self, caller_id: str, message_id: str, new_text: str) -> MessageDocument:
        oid = _to_object_id(message_id)
        doc = await self.collection.find_one_and_update(
            {"_id": oid, "sender_id": caller_id, "is_deleted": False},
            [
                {
                    "$set": {
                        # only the first edit records the original
                        "edited_text": {"$ifNull": ["$edited_text", "$text"]},
                        "text": {"$literal": new_text},
                        "edited_at": datetime.now(timezone.utc),
                    }
                }
            ],
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            await self._raise_for_rejected_write(oid, caller_id, editing=True)
        return _normalize(doc)

    async def delete_message_for_everyone(self, caller_id: str, message_id: str) -> MessageDocument:
        oid = _to_object_id(message_id)
        doc = await self.collection.find_one_and_update(
            {"_id": oid, "sender_id": caller_id},
            {
                "$set": {
                    "is_deleted": True,
                    "deleted_at": datetime.now(timezone.utc),
                    "text": "",
                    "image_url": None,
                    "audio_url": None,
                    "edited_text": None,
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            await self._raise_for_rejected_write(oid, caller_id)
        return _normalize(doc)

    async def delete_message_for_me(self, caller_id: str, message_id: str) -> MessageDocument:
        oid = _to_object_id(message_id)
        existing = await self.collection.find_one({"_id": oid})
        if existing is None:
            raise MessageNotFound(message_id)
        if existing["sender_id"] == caller_id:
            flag = "deleted_for_sender"
        elif existing["receiver_id"] == caller_id:
            flag = "deleted_for_receiver"
        else:
            raise PermissionDenied(f"{caller_id} is not a participant of message {message_id}")
        doc = await self.collection.find_one_and_update(
            {"_id": oid},
            {"$set": {flag: True}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise MessageNotFound(message_id)
        return _normalize(doc)

    async def delete_conversation(self, user_a: str, user_b: str) -> int:
        result = await self.collection.delete_many(
            {
                "$or": [
                    {"sender_id": user_a, "receiver_id": user_b},
                    {"sender_id": user_b, "receiver_id": user_a},
                ]
            }
        )
        return result.deleted_count or 0

    async def _raise_for_rejected_write(self, oid: ObjectId, caller_id: str, editing: bool = False) -> None:
        existing = await self.collection.find_one({"_id": oid}, {"sender_id": 1, "is_deleted": 1})
        if existing is None:
            raise MessageNotFound(str(oid))
        if existing["sender_id"] != caller_id:
            raise PermissionDenied(f"{caller_id} is not the sender of message {oid}")
        if editing and existing.get("is_deleted"):
            raise MessageNotEditable(f"Message {oid} was deleted for everyone")
        raise MessageNotFound(str(oid))
