from fastapi import APIRouter, Depends

from gymchat.database.connection import mongo_db_dependency
from gymchat.repositories.member_repository import MemberRepository
from gymchat.schemas.user import CurrentUser, MemberPublic
from gymchat.utils.dependencies import get_current_user


router = APIRouter(prefix="/members", tags=["members"])


def get_member_repository(db=Depends(mongo_db_dependency)) -> MemberRepository:
    return MemberRepository(db)


@router.get("")
async def list_members(current_user: CurrentUser = Depends(get_current_user), repo: MemberRepository = Depends(get_member_repository)):
    # everyone the current user can start a chat with, admin included
    members = await repo.list_members(exclude=current_user.email)
    return {"members": [MemberPublic(**m) for m in members]}
