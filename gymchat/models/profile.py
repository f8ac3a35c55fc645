from typing import Literal, Optional, TypedDict


UserRole = Literal["ATHLETE", "COACH", "ADMIN"]


class ProfileDocument(TypedDict, total=False):

    id: str
    name: str
    email: str
    role: UserRole
    avatar_url: Optional[str]
    selected_coach_id: Optional[str]
