from typing import Any, Mapping, Optional

from pydantic import BaseModel, EmailStr, ValidationError

from gymchat.errors import MalformedResponse
from gymchat.models.profile import UserRole


class ProfileBase(BaseModel):

    email: EmailStr


class Profile(ProfileBase):

    id: str
    name: str
    role: UserRole
    avatar_url: Optional[str] = None
    selected_coach_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "Profile":
        if not isinstance(row, Mapping):
            raise MalformedResponse(f"Expected a profile row, got {type(row).__name__}")
        try:
            return cls.model_validate(dict(row))
        except ValidationError as exc:
            raise MalformedResponse(f"Unrecognized profile row: {exc.errors()}") from exc

    @property
    def is_coach(self) -> bool:
        return self.role == "COACH"


class AthleteUnread(BaseModel):

    id: str
    name: str
    avatar_url: Optional[str] = None
    unread_count: int = 0
