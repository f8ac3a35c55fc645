import logging
from typing import List, Optional

from gymchat.errors import GymChatError
from gymchat.repositories.backend import MessageBackend
from gymchat.schemas.message import UnreadCount
from gymchat.schemas.profile import AthleteUnread, Profile


logger = logging.getLogger(__name__)

CHAT_VIEW = "chat"


class UnreadBadge:
    """Navigation badge count for the signed-in user.

    Coaches count every unread message addressed to them; athletes count only
    unread messages from their selected coach. While the chat view is active
    the visible count is zero regardless of the stored ``is_read`` flags.
    """

    def __init__(self, backend: MessageBackend, profile: Profile) -> None:
        self._backend = backend
        self._profile = profile
        self._count = 0
        self._active_view: Optional[str] = None

    @property
    def count(self) -> int:
        if self._active_view == CHAT_VIEW:
            return 0
        return self._count

    def set_active_view(self, view: str) -> None:
        self._active_view = view

    async def refresh(self) -> int:
        try:
            count = await self._query()
        except GymChatError:
            logger.exception("Refreshing unread badge for %s failed", self._profile.id)
            return self.count
        if count is not None:
            self._count = count
        return self.count

    async def _query(self) -> Optional[int]:
        if self._profile.role == "COACH":
            return await self._backend.count_unread(self._profile.id)
        if self._profile.role == "ATHLETE":
            if not self._profile.selected_coach_id:
                return None
            return await self._backend.count_unread(self._profile.id, self._profile.selected_coach_id)
        return 0

    def snapshot(self) -> UnreadCount:
        return UnreadCount(count=self.count)


async def athletes_with_unread(backend: MessageBackend, coach_id: str) -> List[AthleteUnread]:
    """Coach's athletes, most unread first, then by name."""
    athletes = [Profile.from_row(row) for row in await backend.list_athletes_for_coach(coach_id)]
    counts = await backend.count_unread_by_sender(coach_id, [a.id for a in athletes])
    items = [
        AthleteUnread(id=a.id, name=a.name, avatar_url=a.avatar_url, unread_count=counts.get(a.id, 0))
        for a in athletes
    ]
    items.sort(key=lambda a: (-a.unread_count, a.name.lower()))
    return items
