import json

import pytest
from pymongo.errors import PyMongoError

from gymchat.core.errors import ConcurrentUpdateError, StoreUnavailableError
from gymchat.repositories.message_store import CHANGES_CHANNEL, MessageStoreRepository


@pytest.fixture()
def collection(mocker):
    return mocker.MagicMock()


@pytest.fixture()
def bus(mocker):
    return mocker.AsyncMock()


@pytest.fixture()
def repo(collection, bus):
    db = {"public_messages": collection}
    return MessageStoreRepository(db, bus)


@pytest.mark.asyncio
async def test_append_creates_document_if_absent(repo, collection, bus, mocker):
    collection.find_one_and_update = mocker.AsyncMock(return_value={"_id": "all_messages", "revision": 1})

    revision = await repo.append_to_array_field("messages", {"message_id": "m1"})

    query, update = collection.find_one_and_update.call_args.args
    assert query == {"_id": "all_messages"}
    assert update["$push"] == {"messages": {"message_id": "m1"}}
    assert update["$setOnInsert"] == {"pinned_messages": [], "groups": {}}
    assert collection.find_one_and_update.call_args.kwargs["upsert"] is True
    assert revision == 1
    bus.publish.assert_awaited_once_with(CHANGES_CHANNEL, json.dumps({"type": "changed", "revision": 1}))


@pytest.mark.asyncio
async def test_conditional_update_conflict(repo, collection, bus, mocker):
    collection.find_one_and_update = mocker.AsyncMock(return_value=None)

    with pytest.raises(ConcurrentUpdateError):
        await repo.update_document({"messages": []}, expected_revision=4)

    query = collection.find_one_and_update.call_args.args[0]
    assert query == {"_id": "all_messages", "revision": 4}
    bus.publish.assert_not_awaited()


@pytest.mark.asyncio
async def test_revision_zero_matches_legacy_documents(repo, collection, mocker):
    collection.find_one_and_update = mocker.AsyncMock(return_value={"revision": 1})

    await repo.update_document({"messages": []}, expected_revision=0)

    query = collection.find_one_and_update.call_args.args[0]
    assert query["$or"] == [{"revision": 0}, {"revision": {"$exists": False}}]


@pytest.mark.asyncio
async def test_unconditional_group_update_keeps_groups_out_of_insert_defaults(repo, collection, mocker):
    collection.find_one_and_update = mocker.AsyncMock(return_value={"revision": 3})

    await repo.update_document({"groups.group_1": {"name": "Yoga"}})

    update = collection.find_one_and_update.call_args.args[1]
    assert update["$setOnInsert"] == {"messages": [], "pinned_messages": []}


@pytest.mark.asyncio
async def test_remove_pulls_from_every_field(repo, collection, mocker):
    collection.find_one_and_update = mocker.AsyncMock(return_value={"revision": 2})

    await repo.remove_from_array_field("messages", {"message_id": "m1"}, also=("pinned_messages",))

    update = collection.find_one_and_update.call_args.args[1]
    assert update["$pull"] == {"messages": {"message_id": "m1"}, "pinned_messages": {"message_id": "m1"}}


@pytest.mark.asyncio
async def test_get_document_defaults_missing_fields(repo, collection, mocker):
    collection.find_one = mocker.AsyncMock(return_value={"_id": "all_messages", "messages": [{"content": "x"}]})

    doc = await repo.get_document()

    assert doc["pinned_messages"] == []
    assert doc["groups"] == {}
    assert doc["revision"] == 0


@pytest.mark.asyncio
async def test_driver_errors_become_store_unavailable(repo, collection, mocker):
    collection.find_one = mocker.AsyncMock(side_effect=PyMongoError("down"))
    collection.find_one_and_update = mocker.AsyncMock(side_effect=PyMongoError("down"))

    with pytest.raises(StoreUnavailableError):
        await repo.get_document()
    with pytest.raises(StoreUnavailableError):
        await repo.append_to_array_field("messages", {})


@pytest.mark.asyncio
async def test_set_document_replaces_and_bumps_revision(repo, collection, bus, mocker):
    collection.find_one = mocker.AsyncMock(return_value={"_id": "all_messages", "revision": 7})
    collection.replace_one = mocker.AsyncMock()

    revision = await repo.set_document({"messages": [{"message_id": "m1"}]})

    query, body = collection.replace_one.call_args.args
    assert query == {"_id": "all_messages"}
    assert body == {"messages": [{"message_id": "m1"}], "pinned_messages": [], "groups": {}, "revision": 8}
    assert revision == 8
    bus.publish.assert_awaited_once()
