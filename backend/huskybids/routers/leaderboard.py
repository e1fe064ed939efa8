from fastapi import APIRouter, Depends, Query

from huskybids.config import settings
from huskybids.dependencies import get_statistics
from huskybids.models.stats import GlobalStats, LeaderboardPage, LeaderboardPeriod, LeaderboardSort
from huskybids.services.statistics_service import StatisticsAggregator

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


@router.get("", response_model=LeaderboardPage)
async def get_leaderboard(
    limit: int = Query(settings.LEADERBOARD_DEFAULT_LIMIT, ge=1, le=settings.LEADERBOARD_MAX_LIMIT),
    page: int = Query(1, ge=1),
    sort_by: LeaderboardSort = Query(LeaderboardSort.biscuits, alias="sortBy"),
    period: LeaderboardPeriod = Query(LeaderboardPeriod.all_time),
    stats: StatisticsAggregator = Depends(get_statistics),
):
    """Public leaderboard of active accounts. Usernames only, never emails."""
    return await stats.get_leaderboard(limit=limit, page=page, sort_by=sort_by, period=period)


@router.get("/global-stats", response_model=GlobalStats)
async def global_stats(stats: StatisticsAggregator = Depends(get_statistics)):
    return await stats.get_global_stats()
