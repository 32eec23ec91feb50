import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from gymchat.core.errors import MessageValidationError
from gymchat.models.message import MessageDocument
from gymchat.schemas.chat import MessageDraft, Recipient
from gymchat.services.aggregator import ADMIN_IDENTITY, ADMIN_NAME, DEFAULT_NAME, message_key
from gymchat.utils.identity import GROUP_PREFIX, conversation_id, group_conversation_id, is_group_conversation


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 with millisecond precision and a ``Z`` suffix."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_message_id() -> str:
    return uuid.uuid4().hex


def quote_reply(reply_to: Mapping[str, Any], content: str, default_name: str = DEFAULT_NAME) -> str:
    sender = reply_to.get("sender_name") or default_name
    return f"> {sender}: {reply_to.get('content') or ''}\n\n{content}"


def resolve_recipient(
    draft: MessageDraft,
    sender_email: str,
    messages: Iterable[Mapping[str, Any]] = (),
    admin_identity: str = ADMIN_IDENTITY,
) -> Recipient:
    """Explicit recipient first, then the open conversation, then the admin."""
    if draft.recipient is not None:
        if not draft.recipient.value or not draft.recipient.value.strip():
            raise MessageValidationError("Recipient cannot be empty")
        return draft.recipient
    if draft.conversation_id:
        if is_group_conversation(draft.conversation_id):
            return Recipient(type="group", value=draft.conversation_id[len(GROUP_PREFIX):])
        for msg in messages:
            if msg.get("conversation_id") != draft.conversation_id:
                continue
            if msg.get("sender_email") == sender_email:
                return Recipient(type="user", value=msg.get("receiver") or "")
            return Recipient(type="user", value=msg.get("sender_email") or "")
        raise MessageValidationError("Unknown conversation")
    return Recipient(type="user", value=admin_identity, name=ADMIN_NAME)


def compose(
    draft: MessageDraft,
    sender_email: str,
    sender_name: str,
    reply_to: Optional[Mapping[str, Any]] = None,
    messages: Iterable[Mapping[str, Any]] = (),
    admin_identity: str = ADMIN_IDENTITY,
    now: Optional[datetime] = None,
    default_name: str = DEFAULT_NAME,
) -> MessageDocument:
    """Build an outgoing message record. Raises MessageValidationError."""
    if not draft.content or not draft.content.strip():
        raise MessageValidationError("Message cannot be empty")
    recipient = resolve_recipient(draft, sender_email, messages, admin_identity)
    is_group = recipient.type == "group"
    try:
        conv_id = group_conversation_id(recipient.value) if is_group else conversation_id(sender_email, recipient.value)
    except ValueError as exc:
        raise MessageValidationError(str(exc)) from exc

    content = draft.content
    reply_to_id = None
    if reply_to is not None:
        content = quote_reply(reply_to, content, default_name)
        reply_to_id = message_key(reply_to)

    return MessageDocument(
        message_id=new_message_id(),
        content=content,
        sender_email=sender_email,
        sender_name=sender_name or default_name,
        receiver=recipient.value,
        timestamp=utc_timestamp(now),
        # the admin inbox is pre-marked read
        read=not is_group and recipient.value == admin_identity,
        conversation_id=conv_id,
        group_id=recipient.value if is_group else "",
        is_pinned=False,
        reply_to_id=reply_to_id,
        kind="text",
    )


def compose_group_created(
    group_id: str,
    group_name: str,
    sender_email: str,
    sender_name: str,
    now: Optional[datetime] = None,
    default_name: str = DEFAULT_NAME,
) -> MessageDocument:
    sender_name = sender_name or default_name
    return MessageDocument(
        message_id=new_message_id(),
        content=f'{sender_name} created group "{group_name}"',
        sender_email=sender_email,
        sender_name=sender_name,
        receiver=group_id,
        timestamp=utc_timestamp(now),
        read=False,
        conversation_id=group_conversation_id(group_id),
        group_id=group_id,
        is_pinned=False,
        reply_to_id=None,
        kind="group_created",
    )
