# backend/chat_router.py

from fastapi import APIRouter, Depends

import schemas
from auth import Principal, get_current_user
from service import ConversationService, get_service
from store import ConversationStore, get_store

router = APIRouter(
    prefix="/api/chat",
    tags=["messages"]
)

# ─── POST /api/chat/{chat_id}/messages ─────────────────────────────────────────
@router.post("/{chat_id}/messages", response_model=schemas.ExchangeOut)
def send_message(
    chat_id: str,
    body: schemas.MessageCreate,
    service: ConversationService = Depends(get_service),
    current_user: Principal = Depends(get_current_user)
):
    user_message, assistant_message = service.send_message(chat_id, current_user.id, body.message)
    return {
        "userMessage": user_message,
        "assistantMessage": assistant_message,
        "message": "Message sent and response generated successfully",
    }


# ─── GET /api/chat/{chat_id}/messages ──────────────────────────────────────────
@router.get("/{chat_id}/messages", response_model=schemas.ChatHistory)
def get_messages(
    chat_id: str,
    store: ConversationStore = Depends(get_store),
    current_user: Principal = Depends(get_current_user)
):
    messages = store.list_messages(chat_id, current_user.id)
    return {"messages": messages, "count": len(messages)}
