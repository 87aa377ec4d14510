# backend/conversation_router.py

from fastapi import APIRouter, Depends

import schemas
from auth import Principal, get_current_user
from errors import NotFound
from service import ConversationService, get_service
from store import ConversationStore, get_store

router = APIRouter(
    prefix="/api/chat",
    tags=["chats"]
)

# GET /api/chat → list all chats for the current user, most recently active first
@router.get("", response_model=schemas.ChatList)
def list_chats(
    store: ConversationStore = Depends(get_store),
    current_user: Principal = Depends(get_current_user)
):
    chats = store.list(current_user.id)
    return {"chats": chats, "count": len(chats)}

# POST /api/chat → create a new chat for the current user
@router.post("", response_model=schemas.ChatResult, status_code=201)
def create_chat(
    body: schemas.ChatTitle,
    service: ConversationService = Depends(get_service),
    current_user: Principal = Depends(get_current_user)
):
    chat = service.create_chat(current_user.id, body.title)
    return {"chat": chat, "message": "Chat created successfully"}

# GET /api/chat/{chat_id} → one chat with its messages
@router.get("/{chat_id}", response_model=schemas.ChatDetail)
def get_chat(
    chat_id: str,
    store: ConversationStore = Depends(get_store),
    current_user: Principal = Depends(get_current_user)
):
    chat = store.get(chat_id, current_user.id)
    if chat is None:
        raise NotFound("Chat not found")
    messages = store.list_messages(chat_id, current_user.id)
    return {"chat": chat, "messages": messages, "count": len(messages)}

# PUT /api/chat/{chat_id} → rename a chat
@router.put("/{chat_id}", response_model=schemas.ChatResult)
def rename_chat(
    chat_id: str,
    body: schemas.ChatTitle,
    service: ConversationService = Depends(get_service),
    current_user: Principal = Depends(get_current_user)
):
    chat = service.rename_chat(chat_id, current_user.id, body.title)
    return {"chat": chat, "message": "Chat title updated successfully"}

# DELETE /api/chat/{chat_id} → delete a chat (and its messages)
@router.delete("/{chat_id}", response_model=schemas.StatusMessage)
def delete_chat(
    chat_id: str,
    store: ConversationStore = Depends(get_store),
    current_user: Principal = Depends(get_current_user)
):
    store.delete(chat_id, current_user.id)
    return {"message": "Chat deleted successfully"}
