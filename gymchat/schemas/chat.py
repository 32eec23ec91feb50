from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class OtherUser(BaseModel):

    email: str
    first_name: str


class Conversation(BaseModel):
    """Derived view of one private chat or group chat. Never persisted."""

    conversation_id: str
    is_group: bool = False
    other_user: Optional[OtherUser] = None
    group_id: Optional[str] = None
    group_name: Optional[str] = None
    last_message: str = ""
    last_message_time: str = ""
    unread_count: int = 0
    pinned_count: int = 0


class Recipient(BaseModel):

    type: Literal["user", "group"] = "user"
    value: str
    name: Optional[str] = None


class MessageDraft(BaseModel):

    content: str
    recipient: Optional[Recipient] = None
    # conversation currently open in the client, used when no recipient is given
    conversation_id: Optional[str] = None
    reply_to_id: Optional[str] = None


class MessagePublic(BaseModel):

    message_id: str
    content: str
    sender_email: str
    sender_name: str
    receiver: str
    timestamp: str
    read: bool = False
    conversation_id: str
    group_id: str = ""
    is_pinned: bool = False
    reply_to_id: Optional[str] = None
    kind: str = "text"


class CreateGroupRequest(BaseModel):

    name: str
    members: List[str] = Field(default_factory=list)


class Group(BaseModel):

    group_id: str
    name: str
    members: List[str]
    created_by: str
    created_at: str
    conversation_id: str


class PinResponse(BaseModel):

    msg: str
    message_id: str
    pinned: bool


class ReadReceiptResponse(BaseModel):

    conversation_id: str
    updated: int
