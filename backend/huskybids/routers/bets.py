"""Bet endpoints: place, history, pending, single bet."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from huskybids.dependencies import get_ledger, get_statistics
from huskybids.models.bet import BetCreate, BetPlacement
from huskybids.models.stats import BetHistory, BetSummary
from huskybids.services.auth_service import get_current_user_id
from huskybids.services.betting_ledger import BettingLedger, place_bet_with_retry
from huskybids.services.statistics_service import StatisticsAggregator

router = APIRouter(prefix="/api/bets", tags=["bets"])


@router.post("", response_model=BetPlacement, status_code=status.HTTP_201_CREATED)
async def place_bet(
    body: BetCreate,
    user_id: str = Depends(get_current_user_id),
    ledger: BettingLedger = Depends(get_ledger),
):
    """Place a bet. Lost races are retried before a 409 is returned."""
    return await place_bet_with_retry(
        ledger,
        user_id=user_id,
        game_id=body.game_id,
        bet_amount=body.bet_amount,
        predicted_winner=body.predicted_winner,
    )


@router.get("/history", response_model=BetHistory)
async def bet_history(
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    stats: StatisticsAggregator = Depends(get_statistics),
):
    return await stats.get_bet_history(user_id, status=status_filter, limit=limit, skip=skip)


@router.get("/pending", response_model=list[BetSummary])
async def pending_bets(
    user_id: str = Depends(get_current_user_id),
    stats: StatisticsAggregator = Depends(get_statistics),
):
    history = await stats.get_bet_history(user_id, status="pending", limit=200)
    return history.bets


@router.get("/{bet_id}", response_model=BetSummary)
async def get_bet(
    bet_id: str,
    user_id: str = Depends(get_current_user_id),
    stats: StatisticsAggregator = Depends(get_statistics),
):
    return await stats.get_bet(user_id, bet_id)
