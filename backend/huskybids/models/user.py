from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class UserInDB(BaseModel):
    """Account document as stored in MongoDB."""
    clerk_id: str
    username: str
    email: Optional[str] = None
    profile_image: Optional[str] = None
    biscuits: int = 1000
    total_bets: int = 0
    winning_bets: int = 0
    losing_bets: int = 0
    pending_bets: int = 0
    total_biscuits_wagered: int = 0
    total_biscuits_won: int = 0
    total_biscuits_lost: int = 0
    login_streak: int = 0
    last_login_date: Optional[datetime] = None
    last_daily_reward_claimed: Optional[datetime] = None
    is_active: bool = True
    is_banned: bool = False
    created_at: datetime
    updated_at: datetime


class UserSyncRequest(BaseModel):
    """Profile fields forwarded from the identity provider on login."""
    username: Optional[str] = None
    email: Optional[str] = None
    profile_image: Optional[str] = None


class UserSyncResult(BaseModel):
    user_id: str
    username: str
    biscuits: int
    login_streak: int
    is_new_user: bool


class DailyRewardResult(BaseModel):
    claimed: bool
    already_claimed: bool = False
    reward: int = 0
    new_balance: int
    streak: int
    next_claim_time: datetime


class RewardStatus(BaseModel):
    can_claim: bool
    streak: int
    next_reward: int
    next_claim_time: datetime
