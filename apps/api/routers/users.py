"""Principal profile, credit summary and published image listing."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from services.conversations import ConversationStore
from services.credits import get_credit_summary, get_principal

router = APIRouter()


@router.get("/data")
async def user_data(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    user = await get_principal(auth.user_id, db)
    return {
        "success": True,
        "user": {"id": user.id, "name": user.name, "email": user.email, "credits": int(user.credits or 0)},
    }


@router.get("/credits")
async def credits_summary(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    await get_principal(auth.user_id, db)
    return {"success": True, **(await get_credit_summary(auth.user_id, db))}


@router.get("/published-images")
async def published_images(
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    images = await ConversationStore(db).list_published_images(limit=limit)
    return {"success": True, "images": images}
