"""Typed statistics and leaderboard result structures.

Every derived view is spelled out field by field so API consumers and tests
can rely on a fixed contract.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class LeaderboardSort(str, Enum):
    biscuits = "biscuits"
    total_bets = "total_bets"
    win_rate = "win_rate"
    roi = "roi"


class LeaderboardPeriod(str, Enum):
    all_time = "all-time"
    week = "week"
    month = "month"


class UserProfile(BaseModel):
    username: str
    email: Optional[str] = None
    profile_image: Optional[str] = None
    biscuits: int
    login_streak: int
    joined_at: Optional[datetime] = None


class UserStatsSummary(BaseModel):
    total_bets: int
    winning_bets: int
    losing_bets: int
    pending_bets: int
    win_rate: float
    roi: float
    total_wagered: int
    total_won: int
    total_lost: int
    net_profit: int
    average_bet_size: int


class BetGameInfo(BaseModel):
    id: str
    home_team: str
    away_team: str
    game_date: datetime
    status: str
    home_score: int
    away_score: int
    winner: Optional[str] = None


class BetSummary(BaseModel):
    id: str
    game: Optional[BetGameInfo] = None
    bet_amount: int
    predicted_winner: str
    odds: float
    status: str
    potential_win: int
    actual_win: int
    placed_at: datetime
    settled_at: Optional[datetime] = None


class PendingTotals(BaseModel):
    count: int
    biscuits_at_stake: int
    potential_payout: int


class UserStats(BaseModel):
    user: UserProfile
    stats: UserStatsSummary
    pending: PendingTotals
    recent_bets: list[BetSummary] = Field(default_factory=list)
    pending_bets: list[BetSummary] = Field(default_factory=list)


class RankedUser(BaseModel):
    username: str
    biscuits: int
    total_bets: int
    win_rate: float
    roi: float


class UserRank(BaseModel):
    rank: int
    metric: LeaderboardSort
    total_ranked: int
    user: RankedUser


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    username: str
    profile_image: Optional[str] = None
    biscuits: int
    total_bets: int
    winning_bets: int
    losing_bets: int
    win_rate: float
    roi: float
    total_wagered: int
    net_profit: int


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class LeaderboardFilters(BaseModel):
    sort_by: LeaderboardSort
    period: LeaderboardPeriod


class LeaderboardPage(BaseModel):
    leaderboard: list[LeaderboardEntry]
    pagination: Pagination
    filters: LeaderboardFilters


class GlobalUserStats(BaseModel):
    total: int
    active_bettors: int
    inactive_users: int


class GlobalBetStats(BaseModel):
    total_placed: int
    total_wagered: int
    total_won: int
    total_lost: int


class GlobalEconomyStats(BaseModel):
    total_biscuits_in_circulation: int
    average_biscuits_per_user: int


class GlobalStats(BaseModel):
    users: GlobalUserStats
    bets: GlobalBetStats
    economy: GlobalEconomyStats


class BetStatusCounts(BaseModel):
    total: int = 0
    pending: int = 0
    won: int = 0
    lost: int = 0
    refunded: int = 0
    cancelled: int = 0


class BetHistory(BaseModel):
    bets: list[BetSummary]
    counts: BetStatusCounts
    limit: int
    skip: int
