from typing import Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from gymchat.core.config import get_settings
from gymchat.core.errors import StoreUnavailableError
from gymchat.models.member import MemberDocument


class MemberRepository:
    """Read-only view of the gym's member directory."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        settings = get_settings()
        self._collection = db.get_collection(settings.members_collection)
        self._admin_identity = settings.admin_identity
        self._admin_name = settings.admin_display_name
        self._default_name = settings.default_display_name

    async def get_member(self, email: str) -> Optional[MemberDocument]:
        if email == self._admin_identity:
            return MemberDocument(email=email, first_name=self._admin_name)
        try:
            member = await self._collection.find_one({"email": email})
        except PyMongoError as exc:
            raise StoreUnavailableError("Failed to fetch user data") from exc
        if member:
            member["_id"] = str(member["_id"])
        return member

    async def list_members(self, exclude: Optional[str] = None) -> List[dict]:
        members: List[dict] = []
        try:
            async for doc in self._collection.find({}, {"email": 1, "first_name": 1}):
                email = doc.get("email") or "Unknown"
                if email == exclude:
                    continue
                members.append({"email": email, "first_name": doc.get("first_name") or self._default_name})
        except PyMongoError as exc:
            raise StoreUnavailableError("Failed to fetch users") from exc
        if exclude != self._admin_identity:
            members.append({"email": self._admin_identity, "first_name": self._admin_name})
        return members

    async def directory(self) -> Dict[str, str]:
        """identity -> display name, admin included."""
        return {m["email"]: m["first_name"] for m in await self.list_members()}
