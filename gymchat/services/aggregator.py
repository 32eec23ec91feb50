"""Derives the conversation list of one user from the shared message array.

Conversations are never stored. They are recomputed from the full message list
whenever the shared document changes, so everything here is a pure function of
its inputs.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

from gymchat.models.message import GroupDocument, MessageDocument
from gymchat.schemas.chat import Conversation, OtherUser
from gymchat.utils.identity import conversation_id, group_conversation_id


ADMIN_IDENTITY = "admin"
ADMIN_NAME = "Admin"
DEFAULT_NAME = "User"
PREVIEW_LENGTH = 200


def conversation_of(message: Mapping[str, Any]) -> str:
    """Stored conversation id, or the one derived from the endpoints for old records."""
    return normalize_message(message)["conversation_id"]


def message_key(message: Mapping[str, Any]) -> str:
    # Records written before message ids existed are keyed by timestamp.
    return message.get("message_id") or message.get("timestamp") or ""


def display_name_for(
    identity: str,
    directory: Optional[Mapping[str, str]] = None,
    admin_identity: str = ADMIN_IDENTITY,
    default_name: str = DEFAULT_NAME,
    admin_name: str = ADMIN_NAME,
) -> str:
    if directory and directory.get(identity):
        return directory[identity]
    return admin_name if identity == admin_identity else default_name


def normalize_message(raw: Mapping[str, Any], admin_identity: str = ADMIN_IDENTITY, default_name: str = DEFAULT_NAME) -> MessageDocument:
    """Fill in defaults for a stored record. Never raises on missing fields."""
    sender = raw.get("sender_email") or ""
    receiver = raw.get("receiver") or ""
    group_id = raw.get("group_id") or ""
    conv_id = raw.get("conversation_id") or ""
    if not conv_id:
        try:
            conv_id = group_conversation_id(group_id) if group_id else conversation_id(sender, receiver)
        except ValueError:
            conv_id = ""
    return MessageDocument(
        message_id=raw.get("message_id") or "",
        content=raw.get("content") or "",
        sender_email=sender,
        sender_name=raw.get("sender_name") or display_name_for(sender, admin_identity=admin_identity, default_name=default_name),
        receiver=receiver,
        timestamp=raw.get("timestamp") or "",
        read=bool(raw.get("read", False)),
        conversation_id=conv_id,
        group_id=group_id,
        is_pinned=bool(raw.get("is_pinned", False)),
        reply_to_id=raw.get("reply_to_id"),
        kind=raw.get("kind") or "text",
    )


def sort_messages(
    messages: Iterable[Mapping[str, Any]],
    admin_identity: str = ADMIN_IDENTITY,
    default_name: str = DEFAULT_NAME,
) -> List[MessageDocument]:
    normalized = [normalize_message(m, admin_identity, default_name) for m in messages]
    # ISO-8601 strings from one clock format compare correctly as text
    normalized.sort(key=lambda m: m["timestamp"])
    return normalized


def can_view_group(group: Optional[GroupDocument], user: str) -> bool:
    """Groups without a registry entry are open to everyone."""
    if not group:
        return True
    return user in (group.get("members") or []) or user == group.get("created_by")


def group_name_for(group_id: str, groups: Optional[Mapping[str, GroupDocument]] = None) -> str:
    group = (groups or {}).get(group_id) or {}
    return group.get("name") or f"Group {group_id}"


def is_visible(message: MessageDocument, current_user: str, groups: Optional[Mapping[str, GroupDocument]] = None) -> bool:
    if message["group_id"]:
        return can_view_group((groups or {}).get(message["group_id"]), current_user)
    return current_user in (message["sender_email"], message["receiver"])


def aggregate(
    messages: Iterable[Mapping[str, Any]],
    current_user: str,
    directory: Optional[Mapping[str, str]] = None,
    groups: Optional[Mapping[str, GroupDocument]] = None,
    admin_identity: str = ADMIN_IDENTITY,
    preview_length: int = PREVIEW_LENGTH,
    default_name: str = DEFAULT_NAME,
) -> List[Conversation]:
    """Build ``current_user``'s conversations, most recent first.

    One pass over the chronologically sorted messages groups them by
    ``conversation_id``; ties in the final ordering keep encounter order.
    """
    conversations: Dict[str, Conversation] = {}
    for msg in sort_messages(messages, admin_identity, default_name):
        if not msg["conversation_id"] or not is_visible(msg, current_user, groups):
            continue
        conv = conversations.get(msg["conversation_id"])
        if conv is None:
            conv = _start_conversation(msg, current_user, directory, groups, admin_identity, default_name)
            conversations[msg["conversation_id"]] = conv
        conv.last_message = msg["content"][:preview_length]
        conv.last_message_time = msg["timestamp"]
        if msg["receiver"] == current_user and not msg["read"]:
            conv.unread_count += 1
        if msg["is_pinned"]:
            conv.pinned_count += 1
    return sorted(conversations.values(), key=lambda c: c.last_message_time, reverse=True)


def _start_conversation(
    msg: MessageDocument,
    current_user: str,
    directory: Optional[Mapping[str, str]],
    groups: Optional[Mapping[str, GroupDocument]],
    admin_identity: str,
    default_name: str,
) -> Conversation:
    if msg["group_id"]:
        return Conversation(
            conversation_id=msg["conversation_id"],
            is_group=True,
            group_id=msg["group_id"],
            group_name=group_name_for(msg["group_id"], groups),
        )
    # first seen endpoint wins; a self-message resolves to a self-chat
    other = msg["receiver"] if msg["sender_email"] == current_user else msg["sender_email"]
    return Conversation(
        conversation_id=msg["conversation_id"],
        other_user=OtherUser(email=other, first_name=display_name_for(other, directory, admin_identity, default_name)),
    )


def conversation_messages(
    messages: Iterable[Mapping[str, Any]],
    conv_id: str,
    admin_identity: str = ADMIN_IDENTITY,
    default_name: str = DEFAULT_NAME,
) -> List[MessageDocument]:
    return [m for m in sort_messages(messages, admin_identity, default_name) if m["conversation_id"] == conv_id]


def total_unread(conversations: Iterable[Conversation]) -> int:
    return sum(c.unread_count for c in conversations)
