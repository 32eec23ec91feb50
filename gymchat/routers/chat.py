import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from jose import JWTError

from gymchat.core.errors import ChatError
from gymchat.database.connection import mongo_db_dependency
from gymchat.repositories.member_repository import MemberRepository
from gymchat.repositories.message_store import MessageStoreRepository
from gymchat.schemas.chat import MessageDraft, MessagePublic, PinResponse
from gymchat.schemas.user import CurrentUser
from gymchat.services.chat_service import ChatService
from gymchat.utils.dependencies import get_current_user
from gymchat.utils.realtime_bus import get_bus
from gymchat.utils.security import decode_access_token


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["chat"])


async def get_chat_service(db=Depends(mongo_db_dependency), bus=Depends(get_bus)) -> ChatService:
    return ChatService(MessageStoreRepository(db, bus), MemberRepository(db))


@router.post("", status_code=status.HTTP_201_CREATED)
async def send_message(draft: MessageDraft, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    message = await service.send_message(draft, current_user.email)
    return {"msg": "Message sent successfully", "message": MessagePublic.model_validate(message)}


@router.delete("/{message_id}")
async def delete_message(message_id: str, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    await service.delete_message(message_id, current_user.email)
    return {"msg": "Message deleted"}


@router.post("/{message_id}/pin", response_model=PinResponse)
async def toggle_pin(message_id: str, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    _, pinned = await service.toggle_pin(message_id, current_user.email)
    return PinResponse(msg="Message pinned" if pinned else "Message unpinned", message_id=message_id, pinned=pinned)


@router.websocket("/ws")
async def conversations_socket(websocket: WebSocket, service: ChatService = Depends(get_chat_service)):
    # JWT via query: ?token=...
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4401)
        return
    try:
        user_id = decode_access_token(token)["sub"]
    except JWTError:
        await websocket.close(code=4401)
        return

    await websocket.accept()

    async def push_conversations(_notification: str = "") -> None:
        items, unread = await service.list_conversations(user_id)
        await websocket.send_json({
            "type": "conversations",
            "items": [c.model_dump() for c in items],
            "total_unread": unread,
        })

    subscriber = await service.subscribe(push_conversations)
    sub_task = asyncio.create_task(subscriber.run())
    try:
        await push_conversations()
        while True:
            try:
                msg = await websocket.receive_json()
            except ValueError:
                msg = None
            if not isinstance(msg, dict):
                await websocket.send_json({"type": "error", "detail": "Invalid message payload"})
                continue
            # {"type": "open", "conversation_id": str} marks the conversation read
            try:
                if msg.get("type") == "open" and msg.get("conversation_id"):
                    await service.open_conversation(msg["conversation_id"], user_id)
                elif msg.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})
                else:
                    await websocket.send_json({"type": "error", "detail": "Invalid message payload"})
            except ChatError as exc:
                await websocket.send_json({"type": "error", "detail": exc.message})
    except WebSocketDisconnect:
        logger.debug("WebSocket closed for %s", user_id)
    finally:
        await subscriber.cancel()
        sub_task.cancel()
