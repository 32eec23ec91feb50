import json
import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from gymchat.core.config import get_settings
from gymchat.core.errors import ConcurrentUpdateError, StoreUnavailableError
from gymchat.models.message import SharedMessagesDocument


logger = logging.getLogger(__name__)

CHANGES_CHANNEL = "public_messages:changed"

_EMPTY_FIELDS: Dict[str, Any] = {"messages": [], "pinned_messages": [], "groups": {}}


def _revision_filter(doc_id: str, expected_revision: int) -> Dict[str, Any]:
    if expected_revision == 0:
        # documents created before revisions existed count as revision 0
        return {"_id": doc_id, "$or": [{"revision": 0}, {"revision": {"$exists": False}}]}
    return {"_id": doc_id, "revision": expected_revision}


class MessageStoreRepository:
    """The single shared messages document plus its change notifications.

    Every write bumps ``revision`` and publishes it on ``CHANGES_CHANNEL``.
    """

    def __init__(self, db: AsyncIOMotorDatabase, bus, document_id: Optional[str] = None) -> None:
        settings = get_settings()
        self._db = db
        self._bus = bus
        self._collection_name = settings.messages_collection
        self.document_id = document_id or settings.shared_document_id

    @property
    def collection(self):
        return self._db[self._collection_name]

    async def get_document(self) -> Optional[SharedMessagesDocument]:
        try:
            doc = await self.collection.find_one({"_id": self.document_id})
        except PyMongoError as exc:
            raise StoreUnavailableError("Failed to fetch messages") from exc
        if doc is None:
            return None
        for field, empty in _EMPTY_FIELDS.items():
            doc.setdefault(field, type(empty)())
        doc.setdefault("revision", 0)
        return doc

    async def set_document(self, value: Mapping[str, Any]) -> int:
        body = {**_EMPTY_FIELDS, **{k: v for k, v in value.items() if k != "_id"}}
        current = await self.get_document()
        body["revision"] = (current["revision"] + 1) if current else 1
        try:
            await self.collection.replace_one({"_id": self.document_id}, body, upsert=True)
        except PyMongoError as exc:
            raise StoreUnavailableError("Failed to save messages") from exc
        await self._notify(body["revision"])
        return body["revision"]

    async def update_document(self, partial: Mapping[str, Any], expected_revision: Optional[int] = None) -> int:
        """``$set`` the given fields.

        With ``expected_revision`` the write only applies if nobody else wrote
        since that revision was read; otherwise ConcurrentUpdateError.
        """
        update: Dict[str, Any] = {"$set": dict(partial), "$inc": {"revision": 1}}
        if expected_revision is None:
            query: Dict[str, Any] = {"_id": self.document_id}
            on_insert = {k: v for k, v in _EMPTY_FIELDS.items() if not any(p == k or p.startswith(k + ".") for p in partial)}
            if on_insert:
                update["$setOnInsert"] = on_insert
            upsert = True
        else:
            query = _revision_filter(self.document_id, expected_revision)
            upsert = False
        doc = await self._write(query, update, upsert=upsert)
        if doc is None:
            logger.warning("Revision conflict on %s (expected %s)", self.document_id, expected_revision)
            raise ConcurrentUpdateError("Messages changed meanwhile, please try again")
        return await self._notify(doc.get("revision", 0))

    async def append_to_array_field(self, field: str, value: Mapping[str, Any]) -> int:
        # create-if-absent: the first append initializes the other fields empty
        update: Dict[str, Any] = {
            "$push": {field: dict(value)},
            "$inc": {"revision": 1},
            "$setOnInsert": {k: v for k, v in _EMPTY_FIELDS.items() if k != field},
        }
        doc = await self._write({"_id": self.document_id}, update, upsert=True)
        return await self._notify(doc.get("revision", 0) if doc else 0)

    async def remove_from_array_field(self, field: str, match: Mapping[str, Any], also: Iterable[str] = ()) -> int:
        pull = {name: dict(match) for name in (field, *also)}
        doc = await self._write({"_id": self.document_id}, {"$pull": pull, "$inc": {"revision": 1}}, upsert=False)
        return await self._notify(doc.get("revision", 0) if doc else 0)

    async def subscribe(self, on_change):
        return await self._bus.subscribe(CHANGES_CHANNEL, on_change)

    async def _write(self, query: Dict[str, Any], update: Dict[str, Any], upsert: bool) -> Optional[Dict[str, Any]]:
        try:
            return await self.collection.find_one_and_update(
                query,
                update,
                upsert=upsert,
                projection={"revision": 1},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as exc:
            logger.exception("Write to %s failed", self.document_id)
            raise StoreUnavailableError("Failed to save messages") from exc

    async def _notify(self, revision: int) -> int:
        await self._bus.publish(CHANGES_CHANNEL, json.dumps({"type": "changed", "revision": revision}))
        return revision
