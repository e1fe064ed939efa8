"""Daily login reward: once per UTC day, scaled by the login streak."""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from pymongo import ReturnDocument

from huskybids.config import settings
from huskybids.database import MongoConnection
from huskybids.errors import UserNotFoundError
from huskybids.models.transaction import TransactionType
from huskybids.models.user import DailyRewardResult, RewardStatus
from huskybids.services.transaction_log import log_transaction
from huskybids.utils import ensure_utc, start_of_day, utcnow

logger = logging.getLogger("huskybids.rewards")


def streak_multiplier(streak: int) -> float:
    if streak >= settings.STREAK_TIER_2_DAYS:
        return settings.STREAK_TIER_2_MULTIPLIER
    if streak >= settings.STREAK_TIER_1_DAYS:
        return settings.STREAK_TIER_1_MULTIPLIER
    return 1.0


def daily_reward(streak: int) -> int:
    return math.floor(settings.DAILY_LOGIN_BONUS * streak_multiplier(streak))


def claimed_today(last_claimed: Optional[datetime], now: datetime) -> bool:
    return last_claimed is not None and ensure_utc(last_claimed) >= start_of_day(now)


async def claim_daily_reward(
    mongo: MongoConnection, user_id: str, now: Optional[datetime] = None,
) -> DailyRewardResult:
    """Credit today's reward unless it was already claimed.

    The credit is a conditional update on "not claimed since midnight", so two
    concurrent claims pay out once.
    """
    db = mongo.db
    now = now or utcnow()
    today = start_of_day(now)
    next_claim = today + timedelta(days=1)

    user = await db.users.find_one({"clerk_id": user_id})
    if not user:
        raise UserNotFoundError(user_id=user_id)

    streak = max(user.get("login_streak", 0) or 0, 1)
    reward = daily_reward(streak)

    updated = None
    if not claimed_today(user.get("last_daily_reward_claimed"), now):
        updated = await db.users.find_one_and_update(
            {
                "_id": user["_id"],
                "$or": [
                    {"last_daily_reward_claimed": None},
                    {"last_daily_reward_claimed": {"$lt": today}},
                ],
            },
            {
                "$inc": {"biscuits": reward},
                "$set": {"last_daily_reward_claimed": now, "updated_at": now},
            },
            return_document=ReturnDocument.AFTER,
        )

    if updated is None:
        current = await db.users.find_one({"_id": user["_id"]}) or user
        return DailyRewardResult(
            claimed=False,
            already_claimed=True,
            reward=0,
            new_balance=current.get("biscuits", 0),
            streak=streak,
            next_claim_time=next_claim,
        )

    await log_transaction(
        db,
        user_id=user_id,
        tx_type=TransactionType.DAILY_REWARD,
        amount=reward,
        balance_after=updated["biscuits"],
        description=f"Daily login reward ({streak}-day streak)",
    )
    logger.info("Daily reward: %s received %d biscuits (streak %d)", user_id, reward, streak)
    return DailyRewardResult(
        claimed=True,
        reward=reward,
        new_balance=updated["biscuits"],
        streak=streak,
        next_claim_time=next_claim,
    )


async def reward_status(
    mongo: MongoConnection, user_id: str, now: Optional[datetime] = None,
) -> RewardStatus:
    now = now or utcnow()
    user = await mongo.db.users.find_one({"clerk_id": user_id})
    if not user:
        raise UserNotFoundError(user_id=user_id)

    streak = max(user.get("login_streak", 0) or 0, 1)
    can_claim = not claimed_today(user.get("last_daily_reward_claimed"), now)
    return RewardStatus(
        can_claim=can_claim,
        streak=streak,
        next_reward=daily_reward(streak),
        next_claim_time=now if can_claim else start_of_day(now) + timedelta(days=1),
    )
