# backend/service.py

"""Chat orchestration: creating/renaming chats and the message exchange.

``send_message`` runs its steps one after another and persists each result
immediately, so a failure part way through leaves a visible trail (for
example a user message with no reply) instead of losing the input.
"""
import logging
import threading
import weakref
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from contextlib import contextmanager
from typing import Tuple

from fastapi import Request

from errors import InvalidInput, NotFound, UpstreamTimeout
from models import Chat, Message

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 10
TITLE_MAX_LENGTH = 50
TITLE_ELLIPSIS = "..."


def derive_title(text: str) -> str:
    """Title for a chat named after its first message."""
    if len(text) > TITLE_MAX_LENGTH:
        return text[:TITLE_MAX_LENGTH] + TITLE_ELLIPSIS
    return text


class _ChatLock:
    def __init__(self):
        self.lock = threading.Lock()


class ConversationLocks:
    """One lock per chat id, dropped once nobody holds a reference to it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = weakref.WeakValueDictionary()

    @contextmanager
    def hold(self, chat_id: str):
        with self._guard:
            entry = self._locks.get(chat_id)
            if entry is None:
                entry = _ChatLock()
                self._locks[chat_id] = entry
        with entry.lock:
            yield


class ConversationService:
    def __init__(self, store, generator, generator_timeout: float = 30.0,
                 history_limit: int = HISTORY_LIMIT, workers: int = 4):
        self.store = store
        self.generator = generator
        self.generator_timeout = generator_timeout
        self.history_limit = history_limit
        self.locks = ConversationLocks()
        self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="generator")

    def close(self):
        self._pool.shutdown(wait=False)

    def create_chat(self, owner_id: str, title) -> Chat:
        title = _required(title, "Chat title is required")
        chat = self.store.create(owner_id, title)
        logger.info("Created chat %s for user %s", chat.id, owner_id)
        return chat

    def rename_chat(self, chat_id: str, owner_id: str, title) -> Chat:
        title = _required(title, "Chat title is required")
        return self.store.rename(chat_id, owner_id, title)

    def _generate(self, text: str, history):
        future = self._pool.submit(self.generator.generate, text, history)
        try:
            return future.result(timeout=self.generator_timeout)
        except FutureTimeout:
            future.cancel()
            logger.warning("Response generator exceeded %.1fs", self.generator_timeout)
            raise UpstreamTimeout("Response generator timed out")

    def send_message(self, chat_id: str, owner_id: str, text) -> Tuple[Message, Message]:
        # 1) Validate before touching the store
        text = _required(text, "Message content is required")

        with self.locks.hold(chat_id):
            # 2) Verify this chat exists and belongs to the user
            if self.store.get(chat_id, owner_id) is None:
                raise NotFound("Chat not found")

            # 3) Save the user's message, then bump the chat
            user_message = self.store.append_message(chat_id, "user", text)
            self.store.touch(chat_id, owner_id)

            # 4) Recent history for context, oldest first
            history = self.store.list_messages(chat_id, owner_id)
            first_exchange = len(history) == 1
            context = [
                {"role": m.role, "content": m.content} for m in history[-self.history_limit:]
            ]

            # 5) Ask the responder and store its reply
            reply = self._generate(text, context)
            assistant_message = self.store.append_message(chat_id, "assistant", reply.message)
            self.store.touch(chat_id, owner_id)

            # 6) Name the chat after its first message
            if first_exchange:
                self.store.rename(chat_id, owner_id, derive_title(text))

        logger.info("Exchange in chat %s answered by %s", chat_id, reply.model)
        return user_message, assistant_message


def _required(value, error: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(error)
    return value.strip()


# Dependency for FastAPI routes
def get_service(request: Request) -> ConversationService:
    return request.app.state.service
