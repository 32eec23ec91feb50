import copy
import json
import os
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("SECRET_KEY", "test-secret")

from gymchat.core.errors import ConcurrentUpdateError
from gymchat.main import app
from gymchat.repositories.message_store import CHANGES_CHANNEL
from gymchat.routers.chat import get_chat_service
from gymchat.routers.members import get_member_repository
from gymchat.services.chat_service import ChatService
from gymchat.utils.realtime_bus import LocalBus
from gymchat.utils.security import create_access_token


ALICE = "a@x.com"
BOB = "b@x.com"
CAROL = "c@x.com"


class InMemoryMessageStore:
    """Same primitives as MessageStoreRepository, backed by a dict."""

    def __init__(self, bus: Optional[LocalBus] = None) -> None:
        self.doc: Optional[Dict[str, Any]] = None
        self.bus = bus or LocalBus()
        self.writes = 0

    async def get_document(self):
        return copy.deepcopy(self.doc)

    async def set_document(self, value: Mapping[str, Any]) -> int:
        revision = (self.doc or {}).get("revision", 0) + 1
        self.doc = {"messages": [], "pinned_messages": [], "groups": {}, **copy.deepcopy(dict(value)), "revision": revision}
        return await self._written()

    async def update_document(self, partial: Mapping[str, Any], expected_revision: Optional[int] = None) -> int:
        if expected_revision is not None and (self.doc is None or self.doc.get("revision", 0) != expected_revision):
            raise ConcurrentUpdateError("Messages changed meanwhile, please try again")
        if self.doc is None:
            self.doc = {"messages": [], "pinned_messages": [], "groups": {}, "revision": 0}
        for path, value in partial.items():
            target = self.doc
            *parents, leaf = path.split(".")
            for part in parents:
                target = target.setdefault(part, {})
            target[leaf] = copy.deepcopy(value)
        return await self._written()

    async def append_to_array_field(self, field: str, value: Mapping[str, Any]) -> int:
        if self.doc is None:
            self.doc = {"messages": [], "pinned_messages": [], "groups": {}, "revision": 0}
        self.doc.setdefault(field, []).append(copy.deepcopy(dict(value)))
        return await self._written()

    async def remove_from_array_field(self, field: str, match: Mapping[str, Any], also: Iterable[str] = ()) -> int:
        if self.doc is None:
            return 0
        for name in (field, *also):
            self.doc[name] = [
                item for item in self.doc.get(name, [])
                if not all(item.get(k) == v for k, v in match.items())
            ]
        return await self._written()

    async def subscribe(self, on_change):
        return await self.bus.subscribe(CHANGES_CHANNEL, on_change)

    async def _written(self) -> int:
        self.writes += 1
        self.doc["revision"] = self.doc.get("revision", 0) + 1
        await self.bus.publish(CHANGES_CHANNEL, json.dumps({"type": "changed", "revision": self.doc["revision"]}))
        return self.doc["revision"]


class InMemoryMembers:

    def __init__(self, members: Optional[List[dict]] = None) -> None:
        self.members = members if members is not None else [
            {"email": ALICE, "first_name": "Alice"},
            {"email": BOB, "first_name": "Bob"},
            {"email": CAROL, "first_name": "Carol"},
        ]

    async def get_member(self, email: str):
        if email == "admin":
            return {"email": "admin", "first_name": "Admin"}
        return next((m for m in self.members if m["email"] == email), None)

    async def list_members(self, exclude: Optional[str] = None):
        found = [m for m in self.members if m["email"] != exclude]
        if exclude != "admin":
            found.append({"email": "admin", "first_name": "Admin"})
        return found

    async def directory(self):
        return {m["email"]: m["first_name"] for m in await self.list_members()}


def make_message(
    sender: str,
    receiver: str,
    timestamp: str,
    read: bool = False,
    message_id: Optional[str] = None,
    content: str = "hello",
    group_id: str = "",
    conversation_id: Optional[str] = None,
    is_pinned: bool = False,
    sender_name: Optional[str] = None,
) -> Dict[str, Any]:
    from gymchat.utils.identity import conversation_id as private_id, group_conversation_id

    return {
        "message_id": message_id if message_id is not None else f"id-{timestamp}",
        "content": content,
        "sender_email": sender,
        "sender_name": sender_name or sender.split("@")[0].title(),
        "receiver": receiver,
        "timestamp": timestamp,
        "read": read,
        "conversation_id": conversation_id or (group_conversation_id(group_id) if group_id else private_id(sender, receiver)),
        "group_id": group_id,
        "is_pinned": is_pinned,
        "reply_to_id": None,
        "kind": "text",
    }


@pytest.fixture()
def store() -> InMemoryMessageStore:
    return InMemoryMessageStore()


@pytest.fixture()
def members() -> InMemoryMembers:
    return InMemoryMembers()


@pytest.fixture()
def service(store, members) -> ChatService:
    return ChatService(store, members)


@pytest.fixture()
def client(service, members):
    app.dependency_overrides[get_chat_service] = lambda: service
    app.dependency_overrides[get_member_repository] = lambda: members
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    def _headers(email: str = ALICE, name: Optional[str] = None) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(email, name=name)}"}
    return _headers
