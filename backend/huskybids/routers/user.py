"""Account endpoints: sync on login, dashboard stats, rank, transactions."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from huskybids.database import MongoConnection, get_mongo
from huskybids.dependencies import get_statistics
from huskybids.models.stats import LeaderboardSort, UserRank, UserStats
from huskybids.models.transaction import TransactionResponse
from huskybids.models.user import UserSyncRequest, UserSyncResult
from huskybids.services import user_service
from huskybids.services.auth_service import get_current_user_id
from huskybids.services.statistics_service import StatisticsAggregator
from huskybids.services.transaction_log import get_user_transactions

router = APIRouter(prefix="/api/user", tags=["user"])


@router.post("/sync", response_model=UserSyncResult)
async def sync_user(
    response: Response,
    body: Optional[UserSyncRequest] = None,
    user_id: str = Depends(get_current_user_id),
    mongo: MongoConnection = Depends(get_mongo),
):
    """Create the account on first login (201), otherwise update the login streak."""
    result = await user_service.sync_user(mongo, user_id, body)
    if result.is_new_user:
        response.status_code = status.HTTP_201_CREATED
    return result


@router.get("/stats", response_model=UserStats)
async def user_stats(
    user_id: str = Depends(get_current_user_id),
    stats: StatisticsAggregator = Depends(get_statistics),
):
    return await stats.get_user_stats(user_id)


@router.get("/rank", response_model=UserRank)
async def user_rank(
    sort_by: LeaderboardSort = Query(LeaderboardSort.biscuits, alias="sortBy"),
    user_id: str = Depends(get_current_user_id),
    stats: StatisticsAggregator = Depends(get_statistics),
):
    return await stats.get_user_rank(user_id, sort_by)


@router.get("/transactions", response_model=list[TransactionResponse])
async def transactions(
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    mongo: MongoConnection = Depends(get_mongo),
):
    txns = await get_user_transactions(mongo.db, user_id, limit, skip)
    return [
        TransactionResponse(
            id=str(t["_id"]),
            type=t["type"],
            amount=t["amount"],
            balance_after=t.get("balance_after"),
            reference_id=t.get("reference_id"),
            description=t["description"],
            created_at=t["created_at"],
        )
        for t in txns
    ]
