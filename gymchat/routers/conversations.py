from fastapi import APIRouter, Depends

from gymchat.routers.chat import get_chat_service
from gymchat.schemas.chat import MessagePublic, ReadReceiptResponse
from gymchat.schemas.user import CurrentUser
from gymchat.services.chat_service import ChatService
from gymchat.utils.dependencies import get_current_user


router = APIRouter(prefix="/conversations", tags=["chat"])


@router.get("")
async def list_conversations(current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    items, total_unread = await service.list_conversations(current_user.email)
    return {"items": items, "total_unread": total_unread}


@router.get("/{conversation_id}/messages")
async def list_messages(conversation_id: str, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    messages = await service.history(conversation_id, current_user.email)
    return {"items": [MessagePublic.model_validate(m) for m in messages]}


@router.get("/{conversation_id}/pinned")
async def list_pinned(conversation_id: str, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    pinned = await service.pinned_for(conversation_id, current_user.email)
    return {"items": [MessagePublic.model_validate(m) for m in pinned]}


@router.post("/{conversation_id}/read", response_model=ReadReceiptResponse)
async def mark_read(conversation_id: str, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    updated = await service.open_conversation(conversation_id, current_user.email)
    return ReadReceiptResponse(conversation_id=conversation_id, updated=updated)
