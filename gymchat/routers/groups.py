from fastapi import APIRouter, Depends, status

from gymchat.routers.chat import get_chat_service
from gymchat.schemas.chat import CreateGroupRequest, Group
from gymchat.schemas.user import CurrentUser
from gymchat.services.chat_service import ChatService
from gymchat.utils.dependencies import get_current_user
from gymchat.utils.identity import group_conversation_id


router = APIRouter(prefix="/groups", tags=["chat"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=Group)
async def create_group(body: CreateGroupRequest, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    group = await service.create_group(body.name, body.members, current_user.email)
    return Group(**group, conversation_id=group_conversation_id(group["group_id"]))
