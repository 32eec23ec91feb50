from typing import Optional, TypedDict


class MemberDocument(TypedDict, total=False):

    _id: str
    email: str
    first_name: Optional[str]
