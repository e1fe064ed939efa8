"""Account creation and login-streak tracking on authenticated sync."""

import logging
from datetime import datetime
from typing import Optional

from pymongo import ReturnDocument

from huskybids.config import settings
from huskybids.database import MongoConnection
from huskybids.errors import UserNotFoundError
from huskybids.models.transaction import TransactionType
from huskybids.models.user import UserSyncRequest, UserSyncResult
from huskybids.services.transaction_log import log_transaction
from huskybids.utils import start_of_day, utcnow

logger = logging.getLogger("huskybids.users")


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole UTC calendar days from earlier to later."""
    return (start_of_day(later) - start_of_day(earlier)).days


def next_login_streak(current: int, last_login: Optional[datetime], now: datetime) -> int:
    """Consecutive day -> +1, same day -> unchanged, any gap or first login -> 1."""
    if last_login is None:
        return 1
    gap = days_between(last_login, now)
    if gap == 0:
        return max(current, 1)
    if gap == 1:
        return current + 1
    return 1


def _default_username(user_id: str, profile: UserSyncRequest) -> str:
    if profile.username:
        return profile.username
    if profile.email:
        return profile.email.split("@")[0]
    return f"user_{user_id[-8:]}"


async def sync_user(
    mongo: MongoConnection,
    user_id: str,
    profile: Optional[UserSyncRequest] = None,
    now: Optional[datetime] = None,
) -> UserSyncResult:
    """Create the account on first sync, otherwise advance the login streak."""
    db = mongo.db
    profile = profile or UserSyncRequest()
    now = now or utcnow()

    created = await db.users.update_one(
        {"clerk_id": user_id},
        {"$setOnInsert": {
            "clerk_id": user_id,
            "username": _default_username(user_id, profile),
            "email": profile.email,
            "profile_image": profile.profile_image,
            "biscuits": settings.STARTING_BISCUITS,
            "total_bets": 0,
            "winning_bets": 0,
            "losing_bets": 0,
            "pending_bets": 0,
            "total_biscuits_wagered": 0,
            "total_biscuits_won": 0,
            "total_biscuits_lost": 0,
            "login_streak": 1,
            "last_login_date": now,
            "last_daily_reward_claimed": None,
            "is_active": True,
            "is_banned": False,
            "created_at": now,
            "updated_at": now,
        }},
        upsert=True,
    )

    if created.upserted_id is not None:
        await log_transaction(
            db,
            user_id=user_id,
            tx_type=TransactionType.INITIAL_CREDIT,
            amount=settings.STARTING_BISCUITS,
            balance_after=settings.STARTING_BISCUITS,
            description=f"Welcome bonus: {settings.STARTING_BISCUITS} biscuits",
        )
        logger.info("Created user %s with %d starting biscuits", user_id, settings.STARTING_BISCUITS)
        return UserSyncResult(
            user_id=user_id,
            username=_default_username(user_id, profile),
            biscuits=settings.STARTING_BISCUITS,
            login_streak=1,
            is_new_user=True,
        )

    user = await db.users.find_one({"clerk_id": user_id})
    if not user:
        raise UserNotFoundError(user_id=user_id)

    streak = next_login_streak(user.get("login_streak", 0) or 0, user.get("last_login_date"), now)
    updates = {"login_streak": streak, "last_login_date": now, "updated_at": now}
    for field in ("email", "profile_image"):
        value = getattr(profile, field)
        if value:
            updates[field] = value

    user = await db.users.find_one_and_update(
        {"_id": user["_id"]},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    logger.debug("User %s synced, streak %d", user_id, streak)
    return UserSyncResult(
        user_id=user_id,
        username=user.get("username", ""),
        biscuits=user.get("biscuits", 0),
        login_streak=streak,
        is_new_user=False,
    )
