# backend/models.py

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from db import Base  # absolute import

ROLES = ("user", "assistant")


def utcnow() -> datetime:
    # Naive UTC, as stored by the database
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class Chat(Base):
    __tablename__ = "chats"

    id = Column(String(36), primary_key=True, default=new_id)
    # Owner id comes from the identity provider; there is no local users table
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    # One-to-many: deleting the chat goes through ConversationStore.delete
    messages = relationship("Message", back_populates="chat", passive_deletes=True)


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint("role IN ('user', 'assistant')", name="ck_messages_role"),
        Index("ix_messages_chat_seq", "chat_id", "seq"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(16), nullable=False)    # "user" or "assistant"
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    # Per-chat insertion counter; breaks created_at ties
    seq = Column(Integer, nullable=False)

    chat = relationship("Chat", back_populates="messages")
