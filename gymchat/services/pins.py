from typing import Any, List, Mapping, NamedTuple, Sequence

from gymchat.core.errors import MessageNotFoundError
from gymchat.models.message import MessageDocument
from gymchat.services.aggregator import conversation_of, message_key


class PinResult(NamedTuple):
    messages: List[MessageDocument]
    pinned: List[MessageDocument]
    pinned_now: bool


def find_message(messages: Sequence[Mapping[str, Any]], key: str) -> MessageDocument:
    for msg in messages:
        if message_key(msg) == key:
            return msg  # type: ignore[return-value]
    raise MessageNotFoundError("Message not found")


def toggle_pin(messages: Sequence[Mapping[str, Any]], pinned: Sequence[Mapping[str, Any]], key: str) -> PinResult:
    """Flip the pinned flag of one message and mirror it into the pinned list.

    Returns new lists; the inputs are left untouched.
    """
    target = find_message(messages, key)
    pinned_now = not target.get("is_pinned", False)

    new_messages: List[MessageDocument] = []
    for msg in messages:
        if message_key(msg) == key:
            msg = {**msg, "is_pinned": pinned_now}
        new_messages.append(msg)  # type: ignore[arg-type]

    new_pinned = [dict(p) for p in pinned if message_key(p) != key]
    if pinned_now:
        new_pinned.append({**target, "is_pinned": True})
    return PinResult(new_messages, new_pinned, pinned_now)  # type: ignore[arg-type]


def pinned_in_conversation(pinned: Sequence[Mapping[str, Any]], conv_id: str) -> List[MessageDocument]:
    return [p for p in pinned if conversation_of(p) == conv_id]  # type: ignore[misc]
