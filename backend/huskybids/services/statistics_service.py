"""
backend/huskybids/services/statistics_service.py

Purpose:
    Read-only statistics: per-user dashboard stats, leaderboard pages, a user's
    rank, platform-wide totals and bet history. Everything is computed from
    the current users/bets/games documents at request time; nothing here is
    cached or written.

    Win rate and ROI are derived values, so rankings on them are computed over
    the whole eligible population before a page is cut.

Dependencies:
    - huskybids.database (MongoConnection)
    - huskybids.services.odds_engine (round_half_up)
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Callable

from pymongo import DESCENDING

from huskybids.config import settings
from huskybids.database import MongoConnection
from huskybids.errors import BetNotFoundError, UserNotFoundError, ValidationError
from huskybids.models.bet import BetStatus
from huskybids.models.stats import (
    BetGameInfo,
    BetHistory,
    BetStatusCounts,
    BetSummary,
    GlobalBetStats,
    GlobalEconomyStats,
    GlobalStats,
    GlobalUserStats,
    LeaderboardEntry,
    LeaderboardFilters,
    LeaderboardPage,
    LeaderboardPeriod,
    LeaderboardSort,
    Pagination,
    PendingTotals,
    RankedUser,
    UserProfile,
    UserRank,
    UserStats,
    UserStatsSummary,
)
from huskybids.services.odds_engine import round_half_up
from huskybids.utils import to_object_id, utcnow

logger = logging.getLogger("huskybids.statistics")

RECENT_BETS_LIMIT = 10
_SCAN_LIMIT = 100_000

# Only active, non-banned accounts appear in rankings.
ELIGIBLE_USERS = {"is_active": True, "is_banned": False}

_PERIOD_DAYS = {
    LeaderboardPeriod.week: 7,
    LeaderboardPeriod.month: 30,
}


# ---------------------------------------------------------------------------
# Derived metrics
# ---------------------------------------------------------------------------

def win_rate(winning_bets: int, total_bets: int) -> float:
    """Winning share of all bets, in percent, one decimal."""
    if not total_bets:
        return 0.0
    return round_half_up(winning_bets / total_bets * 100, 1)


def roi(total_won: int, total_lost: int, total_wagered: int) -> float:
    """Return on investment in percent, two decimals.

    Falls back to won + lost as the wagered amount when nothing is recorded.
    """
    wagered = total_wagered or (total_won + total_lost)
    if not wagered:
        return 0.0
    return round_half_up((total_won - total_lost) / wagered * 100, 2)


def net_profit(total_won: int, total_lost: int) -> int:
    return (total_won or 0) - (total_lost or 0)


def average_bet_size(total_wagered: int, total_bets: int) -> int:
    if not total_bets:
        return 0
    return int(round_half_up(total_wagered / total_bets, 0))


def _counters(user: dict) -> dict:
    """Counter fields of a user document with missing values as zero."""
    return {
        "total_bets": user.get("total_bets", 0) or 0,
        "winning_bets": user.get("winning_bets", 0) or 0,
        "losing_bets": user.get("losing_bets", 0) or 0,
        "total_wagered": user.get("total_biscuits_wagered", 0) or 0,
        "total_won": user.get("total_biscuits_won", 0) or 0,
        "total_lost": user.get("total_biscuits_lost", 0) or 0,
    }


def _metric_key(sort_by: LeaderboardSort):
    if sort_by == LeaderboardSort.total_bets:
        return lambda e: (e.total_bets, e.biscuits)
    if sort_by == LeaderboardSort.win_rate:
        return lambda e: (e.win_rate, e.biscuits)
    if sort_by == LeaderboardSort.roi:
        return lambda e: (e.roi, e.biscuits)
    return lambda e: (e.biscuits,)


def _entry(user: dict, counters: dict) -> LeaderboardEntry:
    return LeaderboardEntry(
        rank=0,
        user_id=user["clerk_id"],
        username=user.get("username", "Anonymous"),
        profile_image=user.get("profile_image"),
        biscuits=user.get("biscuits", 0),
        total_bets=counters["total_bets"],
        winning_bets=counters["winning_bets"],
        losing_bets=counters["losing_bets"],
        win_rate=win_rate(counters["winning_bets"], counters["total_bets"]),
        roi=roi(counters["total_won"], counters["total_lost"], counters["total_wagered"]),
        total_wagered=counters["total_wagered"],
        net_profit=net_profit(counters["total_won"], counters["total_lost"]),
    )


def _game_info(game: dict | None) -> BetGameInfo | None:
    if not game:
        return None
    return BetGameInfo(
        id=str(game["_id"]),
        home_team=game.get("home_team", ""),
        away_team=game.get("away_team", ""),
        game_date=game["game_date"],
        status=game.get("status", ""),
        home_score=game.get("home_score", 0) or 0,
        away_score=game.get("away_score", 0) or 0,
        winner=game.get("winner"),
    )


def _bet_summary(bet: dict, games: dict[str, dict]) -> BetSummary:
    return BetSummary(
        id=str(bet["_id"]),
        game=_game_info(games.get(bet["game_id"])),
        bet_amount=bet["bet_amount"],
        predicted_winner=bet["predicted_winner"],
        odds=bet["odds"],
        status=bet["status"],
        potential_win=bet["potential_win"],
        actual_win=bet.get("actual_win") or 0,
        placed_at=bet["placed_at"],
        settled_at=bet.get("settled_at"),
    )


class StatisticsAggregator:
    def __init__(self, mongo: MongoConnection, *, clock: Callable[[], datetime] = utcnow):
        self._mongo = mongo
        self._clock = clock

    @property
    def _db(self):
        return self._mongo.db

    async def _get_user(self, user_id: str) -> dict:
        user = await self._db.users.find_one({"clerk_id": user_id})
        if not user:
            raise UserNotFoundError(user_id=user_id)
        return user

    async def _games_for(self, bets: list[dict]) -> dict[str, dict]:
        ids = {to_object_id(b["game_id"]) for b in bets}
        ids.discard(None)
        if not ids:
            return {}
        games = await self._db.games.find({"_id": {"$in": list(ids)}}).to_list(length=len(ids))
        return {str(g["_id"]): g for g in games}

    # ------------------------------------------------------------------
    # User dashboard
    # ------------------------------------------------------------------

    async def get_user_stats(self, user_id: str) -> UserStats:
        user = await self._get_user(user_id)

        recent = await self._db.bets.find({"user_id": user_id}).sort(
            "placed_at", DESCENDING,
        ).limit(RECENT_BETS_LIMIT).to_list(length=RECENT_BETS_LIMIT)
        pending = await self._db.bets.find(
            {"user_id": user_id, "status": BetStatus.pending.value},
        ).sort("placed_at", DESCENDING).to_list(length=_SCAN_LIMIT)
        games = await self._games_for(recent + pending)

        c = _counters(user)
        return UserStats(
            user=UserProfile(
                username=user.get("username", ""),
                email=user.get("email"),
                profile_image=user.get("profile_image"),
                biscuits=user.get("biscuits", 0),
                login_streak=user.get("login_streak", 0) or 0,
                joined_at=user.get("created_at"),
            ),
            stats=UserStatsSummary(
                total_bets=c["total_bets"],
                winning_bets=c["winning_bets"],
                losing_bets=c["losing_bets"],
                pending_bets=user.get("pending_bets", 0) or 0,
                win_rate=win_rate(c["winning_bets"], c["total_bets"]),
                roi=roi(c["total_won"], c["total_lost"], c["total_wagered"]),
                total_wagered=c["total_wagered"],
                total_won=c["total_won"],
                total_lost=c["total_lost"],
                net_profit=net_profit(c["total_won"], c["total_lost"]),
                average_bet_size=average_bet_size(c["total_wagered"], c["total_bets"]),
            ),
            pending=PendingTotals(
                count=len(pending),
                biscuits_at_stake=sum(b["bet_amount"] for b in pending),
                potential_payout=sum(b["potential_win"] for b in pending),
            ),
            recent_bets=[_bet_summary(b, games) for b in recent],
            pending_bets=[_bet_summary(b, games) for b in pending],
        )

    async def get_bet_history(
        self,
        user_id: str,
        status: str | None = None,
        limit: int = 50,
        skip: int = 0,
    ) -> BetHistory:
        """A user's bets, newest first, with a count per status."""
        if status is not None and status not in {s.value for s in BetStatus}:
            raise ValidationError(f"Unknown bet status: {status}")

        query: dict = {"user_id": user_id}
        if status:
            query["status"] = status
        bets = await self._db.bets.find(query).sort(
            "placed_at", DESCENDING,
        ).skip(skip).limit(limit).to_list(length=limit)
        games = await self._games_for(bets)

        grouped = await self._db.bets.aggregate([
            {"$match": {"user_id": user_id}},
            {"$group": {"_id": "$status", "count": {"$sum": 1}}},
        ]).to_list(length=None)
        counts = BetStatusCounts()
        for row in grouped:
            if row["_id"] in BetStatusCounts.model_fields:
                setattr(counts, row["_id"], row["count"])
            counts.total += row["count"]

        return BetHistory(
            bets=[_bet_summary(b, games) for b in bets],
            counts=counts,
            limit=limit,
            skip=skip,
        )

    async def get_bet(self, user_id: str, bet_id: str) -> BetSummary:
        """One of the user's own bets; other users' bets are reported as missing."""
        oid = to_object_id(bet_id)
        bet = await self._db.bets.find_one({"_id": oid, "user_id": user_id}) if oid else None
        if not bet:
            raise BetNotFoundError(bet_id=bet_id)
        return _bet_summary(bet, await self._games_for([bet]))

    # ------------------------------------------------------------------
    # Rankings
    # ------------------------------------------------------------------

    async def get_leaderboard(
        self,
        limit: int = settings.LEADERBOARD_DEFAULT_LIMIT,
        page: int = 1,
        sort_by: LeaderboardSort = LeaderboardSort.biscuits,
        period: LeaderboardPeriod = LeaderboardPeriod.all_time,
    ) -> LeaderboardPage:
        if limit < 1 or page < 1:
            raise ValidationError("limit and page must be positive")
        limit = min(limit, settings.LEADERBOARD_MAX_LIMIT)
        sort_by = LeaderboardSort(sort_by)
        period = LeaderboardPeriod(period)
        skip = (page - 1) * limit

        if period == LeaderboardPeriod.all_time and sort_by in (
            LeaderboardSort.biscuits, LeaderboardSort.total_bets,
        ):
            # Stored counters: let the database sort and paginate.
            sort = [("biscuits", DESCENDING)]
            if sort_by == LeaderboardSort.total_bets:
                sort = [("total_bets", DESCENDING), ("biscuits", DESCENDING)]
            total = await self._db.users.count_documents(ELIGIBLE_USERS)
            users = await self._db.users.find(ELIGIBLE_USERS).sort(sort).skip(skip).limit(
                limit,
            ).to_list(length=limit)
            entries = [_entry(u, _counters(u)) for u in users]
        else:
            ranked = await self._ranked_population(sort_by, period)
            total = len(ranked)
            entries = ranked[skip:skip + limit]

        for i, entry in enumerate(entries):
            entry.rank = skip + i + 1

        total_pages = math.ceil(total / limit) if total else 0
        return LeaderboardPage(
            leaderboard=entries,
            pagination=Pagination(
                total=total,
                page=page,
                limit=limit,
                total_pages=total_pages,
                has_next_page=page < total_pages,
                has_prev_page=page > 1,
            ),
            filters=LeaderboardFilters(sort_by=sort_by, period=period),
        )

    async def _ranked_population(
        self, sort_by: LeaderboardSort, period: LeaderboardPeriod,
    ) -> list[LeaderboardEntry]:
        """Every eligible user as an entry, sorted best first."""
        if period == LeaderboardPeriod.all_time:
            users = await self._db.users.find(ELIGIBLE_USERS).to_list(length=_SCAN_LIMIT)
            entries = [_entry(u, _counters(u)) for u in users]
        else:
            entries = await self._windowed_entries(self._clock() - timedelta(days=_PERIOD_DAYS[period]))
        entries.sort(key=_metric_key(sort_by), reverse=True)
        return entries

    async def _windowed_entries(self, since: datetime) -> list[LeaderboardEntry]:
        """Entries whose counters come from bets placed since the cutoff.

        Refunded and cancelled bets are void and do not count.
        """
        rows = await self._db.bets.aggregate([
            {"$match": {
                "placed_at": {"$gte": since},
                "status": {"$nin": [BetStatus.refunded.value, BetStatus.cancelled.value]},
            }},
            {"$group": {
                "_id": "$user_id",
                "total_bets": {"$sum": 1},
                "total_wagered": {"$sum": "$bet_amount"},
                "winning_bets": {"$sum": {"$cond": [{"$eq": ["$status", "won"]}, 1, 0]}},
                "losing_bets": {"$sum": {"$cond": [{"$eq": ["$status", "lost"]}, 1, 0]}},
                "total_won": {"$sum": {"$cond": [{"$eq": ["$status", "won"]}, "$actual_win", 0]}},
                "total_lost": {"$sum": {"$cond": [{"$eq": ["$status", "lost"]}, "$bet_amount", 0]}},
            }},
        ]).to_list(length=None)
        if not rows:
            return []

        by_user = {row["_id"]: row for row in rows}
        users = await self._db.users.find(
            {**ELIGIBLE_USERS, "clerk_id": {"$in": list(by_user)}},
        ).to_list(length=len(by_user))
        return [_entry(u, by_user[u["clerk_id"]]) for u in users]

    async def get_user_rank(
        self, user_id: str, metric: LeaderboardSort = LeaderboardSort.biscuits,
    ) -> UserRank:
        """1-based all-time rank of a user among eligible users on one metric."""
        metric = LeaderboardSort(metric)
        user = await self._get_user(user_id)
        me = _entry(user, _counters(user))
        total_ranked = await self._db.users.count_documents(ELIGIBLE_USERS)

        if metric == LeaderboardSort.biscuits:
            ahead = await self._db.users.count_documents(
                {**ELIGIBLE_USERS, "biscuits": {"$gt": me.biscuits}},
            )
        elif metric == LeaderboardSort.total_bets:
            ahead = await self._db.users.count_documents({
                **ELIGIBLE_USERS,
                "$or": [
                    {"total_bets": {"$gt": me.total_bets}},
                    {"total_bets": me.total_bets, "biscuits": {"$gt": me.biscuits}},
                ],
            })
        else:
            key = _metric_key(metric)
            mine = key(me)
            population = await self._ranked_population(metric, LeaderboardPeriod.all_time)
            ahead = sum(1 for e in population if e.user_id != user_id and key(e) > mine)

        return UserRank(
            rank=ahead + 1,
            metric=metric,
            total_ranked=total_ranked,
            user=RankedUser(
                username=me.username,
                biscuits=me.biscuits,
                total_bets=me.total_bets,
                win_rate=me.win_rate,
                roi=me.roi,
            ),
        )

    # ------------------------------------------------------------------
    # Platform
    # ------------------------------------------------------------------

    async def get_global_stats(self) -> GlobalStats:
        total_users = await self._db.users.count_documents(ELIGIBLE_USERS)
        active_bettors = await self._db.users.count_documents(
            {**ELIGIBLE_USERS, "total_bets": {"$gt": 0}},
        )
        rows = await self._db.users.aggregate([
            {"$match": ELIGIBLE_USERS},
            {"$group": {
                "_id": None,
                "total_bets": {"$sum": "$total_bets"},
                "total_wagered": {"$sum": "$total_biscuits_wagered"},
                "total_won": {"$sum": "$total_biscuits_won"},
                "total_lost": {"$sum": "$total_biscuits_lost"},
                "total_biscuits": {"$sum": "$biscuits"},
            }},
        ]).to_list(length=1)
        agg = rows[0] if rows else {}
        total_biscuits = agg.get("total_biscuits", 0)

        return GlobalStats(
            users=GlobalUserStats(
                total=total_users,
                active_bettors=active_bettors,
                inactive_users=total_users - active_bettors,
            ),
            bets=GlobalBetStats(
                total_placed=agg.get("total_bets", 0),
                total_wagered=agg.get("total_wagered", 0),
                total_won=agg.get("total_won", 0),
                total_lost=agg.get("total_lost", 0),
            ),
            economy=GlobalEconomyStats(
                total_biscuits_in_circulation=total_biscuits,
                average_biscuits_per_user=(
                    int(round_half_up(total_biscuits / total_users, 0)) if total_users else 0
                ),
            ),
        )
