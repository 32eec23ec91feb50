from typing import Dict, List, Literal, Optional, TypedDict


MessageKind = Literal["text", "group_created"]


class MessageDocument(TypedDict, total=False):
    message_id: str
    content: str
    sender_email: str
    # display name cached at send time
    sender_name: str
    # other user's identity, or the group id for group messages
    receiver: str
    timestamp: str
    read: bool
    conversation_id: str
    group_id: str
    is_pinned: bool
    reply_to_id: Optional[str]
    kind: MessageKind


class GroupDocument(TypedDict, total=False):
    group_id: str
    name: str
    members: List[str]
    created_by: str
    created_at: str


class SharedMessagesDocument(TypedDict, total=False):
    _id: str
    messages: List[MessageDocument]
    pinned_messages: List[MessageDocument]
    groups: Dict[str, GroupDocument]
    # bumped on every write, guards full-array rewrites
    revision: int
