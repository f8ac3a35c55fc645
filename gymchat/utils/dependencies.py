import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gymchat.database.connection import mongo_db_dependency
from gymchat.errors import MalformedResponse
from gymchat.repositories.message_repository import MessageRepository
from gymchat.repositories.profile_repository import ProfileRepository
from gymchat.schemas.profile import Profile
from gymchat.services.chat_service import ChatService
from gymchat.utils.object_storage import ObjectStorage
from gymchat.utils.realtime_bus import get_bus
from gymchat.utils.security import decode_access_token


bearer_scheme = HTTPBearer(auto_error=False)


async def get_chat_service(db=Depends(mongo_db_dependency)) -> ChatService:
    return ChatService(MessageRepository(db), ProfileRepository(db), ObjectStorage(db), await get_bus())


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    service: ChatService = Depends(get_chat_service),
) -> Profile:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    row = await service.get_profile(payload["sub"])
    if row is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Profile not found")
    try:
        return Profile.from_row(row)
    except MalformedResponse:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Profile is malformed")
