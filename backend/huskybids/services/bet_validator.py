"""Advisory bet-amount validation against a balance and the configured limits.

The ledger runs this again against the live balance inside its transaction,
since the balance may change between a pre-check and the commit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from huskybids.config import settings

INSUFFICIENT_FUNDS = "Insufficient biscuits"
INVALID_AMOUNT = "Bet amount must be greater than 0"
NOT_INTEGER = "Bet amount must be a whole number"


def min_bet_message(min_bet: int) -> str:
    return f"Minimum bet is {min_bet} biscuits"


def max_bet_message(max_bet: int) -> str:
    return f"Maximum bet is {max_bet} biscuits"


@dataclass(frozen=True)
class BetValidation:
    valid: bool
    error: Optional[str] = None

    @property
    def insufficient_funds(self) -> bool:
        return self.error == INSUFFICIENT_FUNDS


def _is_whole(amount: float) -> bool:
    if isinstance(amount, bool):
        return False
    if isinstance(amount, int):
        return True
    return float(amount).is_integer()


def validate_bet(
    bet_amount: Optional[float],
    user_balance: int,
    min_bet: int = settings.MIN_BET,
    max_bet: int = settings.MAX_BET,
) -> BetValidation:
    """Check a prospective stake. Checks run in order and stop at the first failure."""
    if not bet_amount or bet_amount <= 0:
        return BetValidation(False, INVALID_AMOUNT)
    if bet_amount < min_bet:
        return BetValidation(False, min_bet_message(min_bet))
    if bet_amount > max_bet:
        return BetValidation(False, max_bet_message(max_bet))
    if bet_amount > user_balance:
        return BetValidation(False, INSUFFICIENT_FUNDS)
    if not _is_whole(bet_amount):
        return BetValidation(False, NOT_INTEGER)
    return BetValidation(True, None)
