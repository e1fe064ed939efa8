from fastapi import APIRouter, Depends

from huskybids.database import MongoConnection, get_mongo
from huskybids.models.user import DailyRewardResult, RewardStatus
from huskybids.services import rewards_service
from huskybids.services.auth_service import get_current_user_id

router = APIRouter(prefix="/api/rewards", tags=["rewards"])


@router.post("/daily-login", response_model=DailyRewardResult)
async def claim_daily_login(
    user_id: str = Depends(get_current_user_id),
    mongo: MongoConnection = Depends(get_mongo),
):
    """Claim today's login reward. A second claim the same day returns already_claimed."""
    return await rewards_service.claim_daily_reward(mongo, user_id)


@router.get("/status", response_model=RewardStatus)
async def reward_status(
    user_id: str = Depends(get_current_user_id),
    mongo: MongoConnection = Depends(get_mongo),
):
    return await rewards_service.reward_status(mongo, user_id)
