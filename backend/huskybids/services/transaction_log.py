"""Append-only biscuit transaction records (audit trail for every balance movement)."""

from typing import Optional

from huskybids.models.transaction import TransactionType
from huskybids.utils import utcnow


async def log_transaction(
    db,
    user_id: str,
    tx_type: TransactionType,
    amount: int,
    description: str,
    balance_after: Optional[int] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    session=None,
) -> None:
    """Insert an immutable transaction record, inside the caller's session if given."""
    await db.biscuit_transactions.insert_one(
        {
            "user_id": user_id,
            "type": tx_type.value,
            "amount": amount,
            "balance_after": balance_after,
            "reference_type": reference_type,
            "reference_id": reference_id,
            "description": description,
            "created_at": utcnow(),
        },
        session=session,
    )


async def get_user_transactions(db, user_id: str, limit: int = 50, skip: int = 0) -> list[dict]:
    return await db.biscuit_transactions.find(
        {"user_id": user_id},
    ).sort("created_at", -1).skip(skip).limit(limit).to_list(length=limit)
