from typing import Any, List, Mapping, Sequence, Tuple

from gymchat.models.message import MessageDocument
from gymchat.services.aggregator import conversation_of


def mark_read(messages: Sequence[Mapping[str, Any]], conv_id: str, current_user: str) -> Tuple[List[MessageDocument], int]:
    """Mark messages addressed to ``current_user`` in one conversation as read.

    Old records without a stored ``conversation_id`` are matched on the id
    derived from their endpoints, the same way the conversation list groups
    them. Only ``read`` changes on a rewritten record.

    Returns the rewritten list and how many records changed; callers skip the
    write when nothing changed.
    """
    changed = 0
    updated: List[MessageDocument] = []
    for msg in messages:
        if msg.get("receiver") == current_user and not msg.get("read") and conversation_of(msg) == conv_id:
            msg = {**msg, "read": True}
            changed += 1
        updated.append(msg)  # type: ignore[arg-type]
    return updated, changed
