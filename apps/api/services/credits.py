"""Credit gate, ledger and usage accounting helpers."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.credit_ledger import CreditLedger
from models.user import User
from services.errors import InsufficientCreditError, NotFoundError

logger = logging.getLogger(__name__)


def credit_cost(is_image: bool = False) -> int:
    # TODO: confirm the 1 text / 2 image cost table with product before launch pricing.
    if is_image:
        return max(int(settings.CREDIT_COST_IMAGE_MESSAGE), 0)
    return max(int(settings.CREDIT_COST_TEXT_MESSAGE), 0)


async def get_principal(user_id: str, db: AsyncSession) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError("User not found")
    return user


async def get_credit_balance(user_id: str, db: AsyncSession) -> int:
    result = await db.execute(select(User.credits).where(User.id == user_id))
    balance = result.scalar_one_or_none()
    if balance is None:
        raise NotFoundError("User not found")
    return int(balance)


async def check_credits(user_id: str, db: AsyncSession, *, cost: int) -> User:
    """Reject when the balance cannot cover ``cost``. Never mutates the balance."""
    user = await get_principal(user_id, db)
    balance = int(user.credits or 0)
    if balance < cost:
        raise InsufficientCreditError(
            required=cost,
            available=balance,
            message=f"Insufficient credits. Required: {cost}, available: {balance}. Top up credits to continue.",
        )
    return user


async def charge_credits(
    user_id: str,
    db: AsyncSession,
    *,
    cost: int,
    reason: str,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Atomically debit ``cost`` credits and record a ledger entry.

    The decrement is a single conditional UPDATE, so concurrent requests can
    never drive the balance below zero; the loser gets
    ``InsufficientCreditError``.
    """
    debit_cost = max(int(cost), 0)
    if debit_cost == 0:
        return {"charged": 0, "balance_after": await get_credit_balance(user_id, db)}

    try:
        result = await db.execute(
            update(User)
            .where(User.id == user_id, User.credits >= debit_cost)
            .values(credits=User.credits - debit_cost)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            available = await get_credit_balance(user_id, db)
            raise InsufficientCreditError(required=debit_cost, available=available)

        balance_after = await get_credit_balance(user_id, db)
        db.add(
            CreditLedger(
                id=str(uuid.uuid4()),
                user_id=user_id,
                entry_type="debit",
                delta_credits=-debit_cost,
                balance_after=balance_after,
                reason=reason,
                reference_type=reference_type,
                reference_id=reference_id,
            )
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("credits_charged user=%s cost=%s balance_after=%s ref=%s", user_id, debit_cost, balance_after, reference_id)
    return {"charged": debit_cost, "balance_after": balance_after}


async def get_credit_summary(user_id: str, db: AsyncSession) -> Dict[str, Any]:
    balance = await get_credit_balance(user_id, db)
    result = await db.execute(
        select(CreditLedger)
        .where(CreditLedger.user_id == user_id)
        .order_by(CreditLedger.created_at.desc())
        .limit(30)
    )
    entries = result.scalars().all()
    return {
        "balance": balance,
        "costs": {
            "text_message": credit_cost(is_image=False),
            "image_message": credit_cost(is_image=True),
        },
        "recent_entries": [
            {
                "id": entry.id,
                "entry_type": entry.entry_type,
                "delta_credits": entry.delta_credits,
                "balance_after": entry.balance_after,
                "reason": entry.reason,
                "reference_id": entry.reference_id,
                "created_at": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry in entries
        ],
    }
