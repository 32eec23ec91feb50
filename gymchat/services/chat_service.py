import logging
from typing import Any, Dict, List, Optional, Tuple

from gymchat.core.config import Settings, get_settings
from gymchat.core.errors import MessageNotFoundError, MessageValidationError, PermissionDeniedError
from gymchat.models.message import GroupDocument, MessageDocument, SharedMessagesDocument
from gymchat.repositories.member_repository import MemberRepository
from gymchat.repositories.message_store import MessageStoreRepository
from gymchat.schemas.chat import Conversation, MessageDraft
from gymchat.services import aggregator, composer, pins, receipts
from gymchat.utils.identity import GROUP_PREFIX, is_group_conversation, new_group_id


logger = logging.getLogger(__name__)


class ChatService:

    def __init__(self, store: MessageStoreRepository, members: MemberRepository, settings: Optional[Settings] = None) -> None:
        self._store = store
        self._members = members
        self._settings = settings or get_settings()

    async def _snapshot(self) -> SharedMessagesDocument:
        doc = await self._store.get_document()
        if doc is None:
            return SharedMessagesDocument(messages=[], pinned_messages=[], groups={}, revision=0)
        return doc

    async def _display_name(self, user: str) -> str:
        member = await self._members.get_member(user)
        if member and member.get("first_name"):
            return member["first_name"]
        return aggregator.display_name_for(
            user,
            admin_identity=self._settings.admin_identity,
            default_name=self._settings.default_display_name,
            admin_name=self._settings.admin_display_name,
        )

    def _normalized(self, doc: SharedMessagesDocument) -> List[MessageDocument]:
        return aggregator.sort_messages(doc.get("messages") or [], self._settings.admin_identity, self._settings.default_display_name)

    def _can_view(self, message: Dict[str, Any], user: str, groups: Dict[str, GroupDocument]) -> bool:
        normalized = aggregator.normalize_message(message, self._settings.admin_identity, self._settings.default_display_name)
        return aggregator.is_visible(normalized, user, groups)

    def _check_conversation_access(self, doc: SharedMessagesDocument, conv_id: str, user: str) -> None:
        groups = doc.get("groups") or {}
        if is_group_conversation(conv_id):
            group_id = conv_id[len(GROUP_PREFIX):]
            if not aggregator.can_view_group(groups.get(group_id), user):
                raise PermissionDeniedError("You are not a member of this group")
            return
        for msg in self._normalized(doc):
            if msg["conversation_id"] == conv_id and not aggregator.is_visible(msg, user, groups):
                raise PermissionDeniedError("You are not part of this conversation")

    async def list_conversations(self, user: str) -> Tuple[List[Conversation], int]:
        doc = await self._snapshot()
        directory = await self._members.directory()
        items = aggregator.aggregate(
            doc.get("messages") or [],
            user,
            directory=directory,
            groups=doc.get("groups") or {},
            admin_identity=self._settings.admin_identity,
            preview_length=self._settings.preview_length,
            default_name=self._settings.default_display_name,
        )
        return items, aggregator.total_unread(items)

    async def history(self, conversation_id: str, user: str) -> List[MessageDocument]:
        doc = await self._snapshot()
        self._check_conversation_access(doc, conversation_id, user)
        return aggregator.conversation_messages(
            doc.get("messages") or [], conversation_id, self._settings.admin_identity, self._settings.default_display_name
        )

    async def pinned_for(self, conversation_id: str, user: str) -> List[MessageDocument]:
        doc = await self._snapshot()
        self._check_conversation_access(doc, conversation_id, user)
        return pins.pinned_in_conversation(doc.get("pinned_messages") or [], conversation_id)

    async def send_message(self, draft: MessageDraft, user: str) -> MessageDocument:
        if not draft.content or not draft.content.strip():
            raise MessageValidationError("Message cannot be empty")
        doc = await self._snapshot()
        messages = self._normalized(doc)
        reply_to = pins.find_message(messages, draft.reply_to_id) if draft.reply_to_id else None
        message = composer.compose(
            draft,
            sender_email=user,
            sender_name=await self._display_name(user),
            reply_to=reply_to,
            messages=messages,
            admin_identity=self._settings.admin_identity,
            default_name=self._settings.default_display_name,
        )
        if message["group_id"]:
            group = (doc.get("groups") or {}).get(message["group_id"])
            if not aggregator.can_view_group(group, user):
                raise PermissionDeniedError("You are not a member of this group")
        await self._store.append_to_array_field("messages", message)
        logger.info("Message %s sent by %s to %s", message["message_id"], user, message["conversation_id"])
        return message

    async def open_conversation(self, conversation_id: str, user: str) -> int:
        """Read receipt: mark what ``user`` received in the conversation as read."""
        doc = await self._snapshot()
        self._check_conversation_access(doc, conversation_id, user)
        updated, changed = receipts.mark_read(doc.get("messages") or [], conversation_id, user)
        if not changed:
            return 0
        await self._store.update_document({"messages": updated}, expected_revision=doc.get("revision", 0))
        logger.info("Marked %d messages read for %s in %s", changed, user, conversation_id)
        return changed

    async def toggle_pin(self, message_key: str, user: str) -> Tuple[MessageDocument, bool]:
        doc = await self._snapshot()
        messages = doc.get("messages") or []
        target = pins.find_message(messages, message_key)
        if not self._can_view(target, user, doc.get("groups") or {}):
            raise MessageNotFoundError("Message not found")
        result = pins.toggle_pin(messages, doc.get("pinned_messages") or [], message_key)
        await self._store.update_document(
            {"messages": result.messages, "pinned_messages": result.pinned},
            expected_revision=doc.get("revision", 0),
        )
        logger.info("Message %s %s by %s", message_key, "pinned" if result.pinned_now else "unpinned", user)
        return target, result.pinned_now

    async def delete_message(self, message_key: str, user: str) -> MessageDocument:
        doc = await self._snapshot()
        target = pins.find_message(doc.get("messages") or [], message_key)
        if target.get("sender_email") != user:
            raise PermissionDeniedError("You can only delete your own messages")
        match = {"message_id": target["message_id"]} if target.get("message_id") else {"timestamp": target.get("timestamp")}
        await self._store.remove_from_array_field("messages", match, also=("pinned_messages",))
        logger.info("Message %s deleted by %s", message_key, user)
        return target

    async def create_group(self, name: str, members: List[str], user: str) -> GroupDocument:
        if not name or not name.strip() or not members:
            raise MessageValidationError("Group name and at least one user are required")
        group_id = new_group_id()
        creator_name = await self._display_name(user)
        announcement = composer.compose_group_created(
            group_id, name.strip(), user, creator_name, default_name=self._settings.default_display_name
        )
        group = GroupDocument(
            group_id=group_id,
            name=name.strip(),
            members=sorted({*members, user}),
            created_by=user,
            created_at=announcement["timestamp"],
        )
        await self._store.update_document({f"groups.{group_id}": group})
        await self._store.append_to_array_field("messages", announcement)
        logger.info("Group %s (%s) created by %s", group_id, group["name"], user)
        return group

    async def subscribe(self, on_change):
        """Calls ``on_change`` with the raw notification on every store write."""
        return await self._store.subscribe(on_change)
