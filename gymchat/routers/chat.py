import json
import logging
from typing import List, Optional

import jwt
from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from gymchat.client.fetcher import ConversationFetcher
from gymchat.client.subscriber import RealtimeSubscriber
from gymchat.client.unread import UnreadBadge, athletes_with_unread
from gymchat.config import get_settings
from gymchat.errors import BackendError
from gymchat.schemas.message import MarkReadRequest, Message, MessageCreate, MessageEdit, UnreadCount
from gymchat.schemas.profile import AthleteUnread, Profile
from gymchat.services.chat_service import ChatService
from gymchat.utils.dependencies import get_chat_service, get_current_user
from gymchat.utils.security import decode_access_token


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["chat"])


@router.websocket("/ws/{user_id}")
async def chat_socket(websocket: WebSocket, user_id: str, service: ChatService = Depends(get_chat_service)):
    # hosted-auth JWT passed as ?token=...
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4401)
        return
    try:
        payload = decode_access_token(token)
    except jwt.InvalidTokenError:
        await websocket.close(code=4401)
        return
    if payload.get("sub") != user_id:
        await websocket.close(code=4403)
        return

    async def _forward(message: Message) -> None:
        await websocket.send_text(json.dumps({"event": "INSERT", "new": message.model_dump(mode="json")}))

    # subscribe before accepting so nothing inserted after the handshake is missed
    subscriber = RealtimeSubscriber(service, user_id, _forward)
    try:
        await subscriber.start()
    except BackendError:
        logger.exception("Realtime subscription for %s failed", user_id)
        await websocket.close(code=1011)
        return
    await websocket.accept()
    try:
        while True:
            # inbound frames are keep-alives only
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await subscriber.close()


@router.get("/unread", response_model=UnreadCount)
async def get_unread(from_user_id: Optional[str] = None, current_user: Profile = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    count = await service.count_unread(current_user.id, from_user_id)
    return UnreadCount(count=count)


@router.get("/badge", response_model=UnreadCount)
async def get_badge(current_user: Profile = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    badge = UnreadBadge(service, current_user)
    await badge.refresh()
    return badge.snapshot()


@router.get("/athletes", response_model=List[AthleteUnread])
async def list_athletes(current_user: Profile = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    if not current_user.is_coach:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only coaches have athletes")
    return await athletes_with_unread(service, current_user.id)


@router.post("/mark_read")
async def mark_read(body: MarkReadRequest, current_user: Profile = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    count = await service.mark_read(current_user.id, body.from_user_id)
    return {"updated": count}


@router.delete("/conversation/{peer_id}")
async def clear_conversation(peer_id: str, current_user: Profile = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    deleted = await service.delete_conversation(current_user.id, peer_id)
    return {"deleted": deleted}


@router.get("/{peer_id}", response_model=List[Message])
async def get_conversation(peer_id: str, current_user: Profile = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    fetcher = ConversationFetcher(service, limit=get_settings().message_fetch_limit)
    result = await fetcher.fetch(current_user.id, peer_id)
    if not result.ok:
        raise BackendError(f"Could not load conversation with {peer_id}")
    return result.messages


@router.post("", response_model=Message, status_code=status.HTTP_201_CREATED)
async def send_message(body: MessageCreate, current_user: Profile = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    try:
        row = await service.send_message(current_user.id, body)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return Message.from_row(row)


@router.patch("/{message_id}", response_model=Message)
async def edit_message(message_id: str, body: MessageEdit, current_user: Profile = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    new_text = body.new_text.strip()
    if not new_text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message text cannot be empty")
    row = await service.edit_message(current_user.id, message_id, new_text)
    return Message.from_row(row)


@router.delete("/{message_id}", response_model=Message)
async def delete_message(message_id: str, for_everyone: bool = Query(False), current_user: Profile = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    if for_everyone:
        row = await service.delete_message_for_everyone(current_user.id, message_id)
    else:
        row = await service.delete_message_for_me(current_user.id, message_id)
    return Message.from_row(row)
