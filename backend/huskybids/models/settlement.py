"""Settlement and refund result structures."""

from typing import Optional

from pydantic import BaseModel, Field


class BetSettlementFailure(BaseModel):
    bet_id: str
    error: str


class GameSettlementResult(BaseModel):
    game_id: str
    winner: Optional[str] = None
    settled: int = 0
    won: int = 0
    lost: int = 0
    skipped: int = 0  # already terminal when this run reached them
    total_payout: int = 0
    errors: list[BetSettlementFailure] = Field(default_factory=list)


class GameSettlementFailure(BaseModel):
    game_id: str
    error: str


class BatchSettlementSummary(BaseModel):
    games_checked: int = 0
    games_processed: int = 0
    games_without_pending: int = 0
    bets_settled: int = 0
    won: int = 0
    lost: int = 0
    total_payout: int = 0
    bet_errors: int = 0
    games: list[GameSettlementResult] = Field(default_factory=list)
    game_errors: list[GameSettlementFailure] = Field(default_factory=list)


class RefundResult(BaseModel):
    game_id: str
    reason: str
    refunded: int = 0
    skipped: int = 0
    total_refunded: int = 0
    errors: list[BetSettlementFailure] = Field(default_factory=list)
