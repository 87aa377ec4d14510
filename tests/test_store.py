import time
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from errors import InvalidInput, NotFound, StoreError


def test_create_then_get_returns_matching_record(store):
    chat = store.create("alice-id", "New Chat")

    fetched = store.get(chat.id, "alice-id")
    assert fetched is not None
    assert fetched.title == "New Chat"
    assert fetched.user_id == "alice-id"
    assert fetched.created_at == fetched.updated_at


def test_get_unknown_chat_returns_none(store):
    assert store.get("missing", "alice-id") is None


def test_list_only_returns_own_chats_most_recent_first(store):
    first = store.create("alice-id", "First")
    time.sleep(0.02)
    second = store.create("alice-id", "Second")
    store.create("bob-id", "Bob's")
    time.sleep(0.02)
    store.touch(first.id, "alice-id")

    chats = store.list("alice-id")
    assert [c.id for c in chats] == [first.id, second.id]
    assert all(c.user_id == "alice-id" for c in chats)
    stamps = [c.updated_at for c in chats]
    assert stamps == sorted(stamps, reverse=True)


def test_rename_updates_title_and_timestamp(store):
    chat = store.create("alice-id", "Old")
    time.sleep(0.01)

    renamed = store.rename(chat.id, "alice-id", "New")
    assert renamed.title == "New"
    assert renamed.updated_at > chat.updated_at
    assert store.get(chat.id, "alice-id").title == "New"


def test_other_owner_sees_nothing(store):
    chat = store.create("alice-id", "Private")
    store.append_message(chat.id, "user", "hi")

    assert store.get(chat.id, "bob-id") is None
    with pytest.raises(NotFound):
        store.rename(chat.id, "bob-id", "Mine now")
    with pytest.raises(NotFound):
        store.delete(chat.id, "bob-id")
    with pytest.raises(NotFound):
        store.list_messages(chat.id, "bob-id")

    assert store.get(chat.id, "alice-id").title == "Private"
    assert len(store.list_messages(chat.id, "alice-id")) == 1


def test_delete_removes_chat_and_messages(store):
    chat = store.create("alice-id", "Doomed")
    store.append_message(chat.id, "user", "one")
    store.append_message(chat.id, "assistant", "two")

    store.delete(chat.id, "alice-id")

    assert store.get(chat.id, "alice-id") is None
    with pytest.raises(NotFound):
        store.list_messages(chat.id, "alice-id")
    # Recreating with the same owner must not resurrect old messages
    other = store.create("alice-id", "Fresh")
    assert store.list_messages(other.id, "alice-id") == []


def test_messages_come_back_in_insertion_order(store):
    chat = store.create("alice-id", "Ordered")
    for i in range(5):
        store.append_message(chat.id, "user" if i % 2 == 0 else "assistant", f"m{i}")

    messages = store.list_messages(chat.id, "alice-id")
    assert [m.content for m in messages] == ["m0", "m1", "m2", "m3", "m4"]
    assert [m.seq for m in messages] == [1, 2, 3, 4, 5]
    assert store.latest_message(chat.id, "alice-id").content == "m4"


def test_latest_message_of_empty_chat_is_none(store):
    chat = store.create("alice-id", "Empty")
    assert store.latest_message(chat.id, "alice-id") is None


def test_append_message_rejects_unknown_role(store):
    chat = store.create("alice-id", "Roles")
    with pytest.raises(InvalidInput):
        store.append_message(chat.id, "system", "nope")


def test_touch_ignores_other_owner(store):
    chat = store.create("alice-id", "Mine")
    time.sleep(0.01)
    store.touch(chat.id, "bob-id")
    assert store.get(chat.id, "alice-id").updated_at == chat.updated_at


def test_failed_chat_delete_rolls_back_message_delete(store):
    chat = store.create("alice-id", "Sticky")
    store.append_message(chat.id, "user", "keep me")
    locked = OperationalError("DELETE FROM chats", {}, Exception("database is locked"))

    with patch.object(Session, "delete", side_effect=locked):
        with pytest.raises(StoreError):
            store.delete(chat.id, "alice-id")

    assert store.get(chat.id, "alice-id") is not None
    assert [m.content for m in store.list_messages(chat.id, "alice-id")] == ["keep me"]
