"""Chat lifecycle router: create, list, fetch and delete owned chats."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from services.conversations import ConversationStore
from services.credits import get_principal

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", status_code=201)
async def create_chat(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    user = await get_principal(auth.user_id, db)
    chat = await ConversationStore(db).create(user.id, owner_name=user.name)
    return {"success": True, "message": "Chat created successfully", "chat": chat.to_dict()}


@router.get("")
async def list_chats(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    chats = await ConversationStore(db).list_for_owner(auth.user_id)
    return {"success": True, "chats": [chat.to_dict(include_turns=False) for chat in chats]}


@router.get("/{chat_id}")
async def get_chat(
    chat_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    chat = await ConversationStore(db).load(chat_id, auth.user_id)
    return {"success": True, "chat": chat.to_dict()}


@router.delete("/{chat_id}")
async def delete_chat(
    chat_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    await ConversationStore(db).delete(chat_id, auth.user_id)
    return {"success": True, "message": "Chat deleted successfully"}
