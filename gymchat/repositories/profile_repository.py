from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from gymchat.models.profile import ProfileDocument


def _normalize(doc: Dict[str, Any]) -> ProfileDocument:
    row = dict(doc)
    row["id"] = str(row.pop("_id"))
    return row


class ProfileRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        # keyed by the auth user id, not an ObjectId
        self._collection = db.get_collection("profiles")

    async def get(self, user_id: str) -> Optional[ProfileDocument]:
        doc = await self._collection.find_one({"_id": user_id})
        return _normalize(doc) if doc else None

    async def list_athletes_for_coach(self, coach_id: str) -> List[ProfileDocument]:
        cur = self._collection.find({"role": "ATHLETE", "selected_coach_id": coach_id}).sort("name", 1)
        items = await cur.to_list(length=500)
        return [_normalize(it) for it in items]
