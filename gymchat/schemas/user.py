from typing import Optional

from pydantic import BaseModel


class MemberPublic(BaseModel):

    email: str
    first_name: str


class CurrentUser(BaseModel):

    email: str
    first_name: Optional[str] = None


class TokenPayload(BaseModel):

    sub: str
    exp: int
    name: Optional[str] = None
