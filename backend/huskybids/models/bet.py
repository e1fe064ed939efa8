"""Bet models: placement request, stored document and placement result."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class BetSide(str, Enum):
    home = "home"
    away = "away"


class BetStatus(str, Enum):
    pending = "pending"
    won = "won"
    lost = "lost"
    refunded = "refunded"
    cancelled = "cancelled"


class BetInDB(BaseModel):
    """A single bet on a game outcome. Odds and potential_win never change after insert."""
    user_id: str  # identity provider user id
    account_id: str  # users._id
    game_id: str
    bet_amount: int
    predicted_winner: BetSide
    odds: float
    potential_win: int  # round(bet_amount * odds)
    status: BetStatus = BetStatus.pending
    actual_win: Optional[int] = None
    notes: str = ""
    placed_at: datetime
    settled_at: Optional[datetime] = None


class BetCreate(BaseModel):
    """Request body for placing a bet."""
    game_id: str
    bet_amount: float
    predicted_winner: str


class BetResponse(BaseModel):
    """Bet data returned to the client."""
    id: str
    game_id: str
    bet_amount: int
    predicted_winner: str
    odds: float
    potential_win: int
    status: str
    actual_win: Optional[int] = None
    placed_at: datetime
    settled_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: dict) -> "BetResponse":
        return cls(
            id=str(doc["_id"]),
            game_id=str(doc["game_id"]),
            bet_amount=doc["bet_amount"],
            predicted_winner=doc["predicted_winner"],
            odds=doc["odds"],
            potential_win=doc["potential_win"],
            status=doc["status"],
            actual_win=doc.get("actual_win"),
            placed_at=doc["placed_at"],
            settled_at=doc.get("settled_at"),
        )


class PlacementUserSummary(BaseModel):
    biscuits: int
    total_bets: int
    pending_bets: int


class PlacementGameSummary(BaseModel):
    home_odds: float
    away_odds: float
    total_bets_placed: int
    home_bets: int
    away_bets: int
    home_biscuits_wagered: int
    away_biscuits_wagered: int


class BetPlacement(BaseModel):
    """Result of a committed placement: the bet plus post-commit user and game state."""
    bet: BetResponse
    user: PlacementUserSummary
    game: PlacementGameSummary
