"""Biscuit transaction audit trail."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class TransactionType(str, Enum):
    INITIAL_CREDIT = "INITIAL_CREDIT"
    BET_PLACED = "BET_PLACED"
    BET_WON = "BET_WON"
    BET_LOST = "BET_LOST"
    BET_REFUNDED = "BET_REFUNDED"
    DAILY_REWARD = "DAILY_REWARD"


class BiscuitTransactionInDB(BaseModel):
    """Immutable record of every biscuit movement."""
    user_id: str
    type: TransactionType
    amount: int  # positive = credit, negative = debit
    balance_after: Optional[int] = None
    reference_type: Optional[str] = None  # "bet" | None
    reference_id: Optional[str] = None
    description: str
    created_at: datetime


class TransactionResponse(BaseModel):
    id: str
    type: str
    amount: int
    balance_after: Optional[int] = None
    reference_id: Optional[str] = None
    description: str
    created_at: datetime
