# backend/store.py

import logging
from typing import List, Optional

from fastapi import Request
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from errors import InvalidInput, NotFound, StoreError
from models import ROLES, Chat, Message, new_id, utcnow

logger = logging.getLogger(__name__)


class ConversationStore:
    """Owner-scoped persistence for chats and their messages.

    Every chat query filters on ``(id, user_id)`` so a chat owned by someone
    else looks exactly like a chat that does not exist. Persistence failures
    are logged and re-raised as ``StoreError``.
    """

    def __init__(self, session_factory):
        self._sessions = session_factory

    def _failed(self, action: str, exc: Exception) -> StoreError:
        logger.error("Error %s: %s", action, exc)
        return StoreError(f"Failed to {action}: {exc}")

    @staticmethod
    def _owned(db, chat_id: str, owner_id: str) -> Optional[Chat]:
        return db.execute(
            select(Chat).where(Chat.id == chat_id, Chat.user_id == owner_id)
        ).scalar_one_or_none()

    def create(self, owner_id: str, title: str) -> Chat:
        now = utcnow()
        chat = Chat(id=new_id(), user_id=owner_id, title=title, created_at=now, updated_at=now)
        try:
            with self._sessions() as db:
                db.add(chat)
                db.commit()
        except SQLAlchemyError as e:
            raise self._failed("create chat", e)
        return chat

    def list(self, owner_id: str) -> List[Chat]:
        try:
            with self._sessions() as db:
                return list(
                    db.execute(
                        select(Chat)
                        .where(Chat.user_id == owner_id)
                        .order_by(Chat.updated_at.desc(), Chat.created_at.desc())
                    ).scalars()
                )
        except SQLAlchemyError as e:
            raise self._failed("fetch chats", e)

    def get(self, chat_id: str, owner_id: str) -> Optional[Chat]:
        try:
            with self._sessions() as db:
                return self._owned(db, chat_id, owner_id)
        except SQLAlchemyError as e:
            raise self._failed("fetch chat", e)

    def rename(self, chat_id: str, owner_id: str, title: str) -> Chat:
        try:
            with self._sessions() as db:
                chat = self._owned(db, chat_id, owner_id)
                if chat is None:
                    raise NotFound("Chat not found")
                chat.title = title
                chat.updated_at = utcnow()
                db.commit()
                return chat
        except SQLAlchemyError as e:
            raise self._failed("update chat", e)

    def delete(self, chat_id: str, owner_id: str) -> None:
        """Delete the chat's messages, then the chat, as one transaction.

        A failure on either step rolls back both, so a chat is never left
        behind with its messages gone.
        """
        try:
            with self._sessions() as db:
                chat = self._owned(db, chat_id, owner_id)
                if chat is None:
                    raise NotFound("Chat not found")
                db.query(Message).filter(Message.chat_id == chat_id).delete(
                    synchronize_session=False
                )
                db.delete(chat)
                db.commit()
        except SQLAlchemyError as e:
            raise self._failed("delete chat", e)

    def append_message(self, chat_id: str, role: str, content: str) -> Message:
        """Persist a message in ``chat_id``.

        The caller must already have checked that the chat belongs to the
        requesting user; ownership is not re-checked here.
        """
        if role not in ROLES:
            raise InvalidInput(f"Invalid message role: {role}")
        try:
            with self._sessions() as db:
                last_seq = db.execute(
                    select(func.coalesce(func.max(Message.seq), 0)).where(Message.chat_id == chat_id)
                ).scalar_one()
                msg = Message(
                    id=new_id(),
                    chat_id=chat_id,
                    role=role,
                    content=content,
                    created_at=utcnow(),
                    seq=last_seq + 1,
                )
                db.add(msg)
                db.commit()
                return msg
        except SQLAlchemyError as e:
            raise self._failed("create message", e)

    def list_messages(self, chat_id: str, owner_id: str) -> List[Message]:
        try:
            with self._sessions() as db:
                if self._owned(db, chat_id, owner_id) is None:
                    raise NotFound("Chat not found")
                return list(
                    db.execute(
                        select(Message)
                        .where(Message.chat_id == chat_id)
                        .order_by(Message.created_at.asc(), Message.seq.asc())
                    ).scalars()
                )
        except SQLAlchemyError as e:
            raise self._failed("fetch messages", e)

    def latest_message(self, chat_id: str, owner_id: str) -> Optional[Message]:
        try:
            with self._sessions() as db:
                if self._owned(db, chat_id, owner_id) is None:
                    raise NotFound("Chat not found")
                return db.execute(
                    select(Message)
                    .where(Message.chat_id == chat_id)
                    .order_by(Message.created_at.desc(), Message.seq.desc())
                    .limit(1)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._failed("fetch latest message", e)

    def touch(self, chat_id: str, owner_id: str) -> None:
        try:
            with self._sessions() as db:
                db.query(Chat).filter(Chat.id == chat_id, Chat.user_id == owner_id).update(
                    {Chat.updated_at: utcnow()}, synchronize_session=False
                )
                db.commit()
        except SQLAlchemyError as e:
            raise self._failed("update chat timestamp", e)


# Dependency for FastAPI routes
def get_store(request: Request) -> ConversationStore:
    return request.app.state.store
