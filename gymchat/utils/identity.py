import time
from typing import Optional


PRIVATE_PREFIX = "private_"
GROUP_PREFIX = "group_"

_UNSAFE_CHARS = ("@", ".")


def sanitize_identity(identity: str) -> str:
    if not identity or not identity.strip():
        raise ValueError("Identity cannot be empty")
    cleaned = identity.strip()
    for ch in _UNSAFE_CHARS:
        cleaned = cleaned.replace(ch, "_")
    return cleaned


def conversation_id(user_a: str, user_b: str) -> str:
    """Canonical id of the private chat between two identities.

    Order independent: conversation_id(a, b) == conversation_id(b, a).
    """
    first, second = sorted([sanitize_identity(user_a), sanitize_identity(user_b)])
    return f"{PRIVATE_PREFIX}{first}_{second}"


def group_conversation_id(group_id: str) -> str:
    if not group_id or not group_id.strip():
        raise ValueError("Group id cannot be empty")
    return f"{GROUP_PREFIX}{group_id.strip()}"


def is_group_conversation(conv_id: Optional[str]) -> bool:
    return bool(conv_id) and conv_id.startswith(GROUP_PREFIX)


def new_group_id(now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{GROUP_PREFIX}{now_ms}"
