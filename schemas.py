# backend/schemas.py

from pydantic import AfterValidator, BaseModel
from datetime import datetime, timezone
from typing import Annotated, List, Optional


def as_utc(value: datetime) -> datetime:
    # Stored timestamps are naive UTC; serialize them with an explicit offset
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UTCDateTime = Annotated[datetime, AfterValidator(as_utc)]

# ---------- User-related schemas ----------

class UserOut(BaseModel):
    id: str
    email: Optional[str] = None
    created_at: Optional[UTCDateTime] = None


class TokenVerifyRequest(BaseModel):
    token: Optional[str] = None


class TokenVerifyOut(BaseModel):
    user: UserOut
    valid: bool = True


class ProfileOut(BaseModel):
    user: UserOut


# ---------- Chat-related schemas ----------

class ChatTitle(BaseModel):
    title: Optional[str] = None


class ChatOut(BaseModel):
    id: str
    user_id: str
    title: str
    created_at: UTCDateTime
    updated_at: UTCDateTime

    class Config:
        from_attributes = True


class ChatList(BaseModel):
    chats: List[ChatOut]
    count: int


class ChatResult(BaseModel):
    chat: ChatOut
    message: str


# ---------- Chat message schemas ----------

class MessageCreate(BaseModel):
    message: Optional[str] = None


class MessageOut(BaseModel):
    id: str
    chat_id: str
    role: str  # "user" or "assistant"
    content: str
    created_at: UTCDateTime

    class Config:
        from_attributes = True


class ChatHistory(BaseModel):
    messages: List[MessageOut]
    count: int


class ChatDetail(ChatHistory):
    chat: ChatOut


class ExchangeOut(BaseModel):
    userMessage: MessageOut
    assistantMessage: MessageOut
    message: str


class StatusMessage(BaseModel):
    message: str
