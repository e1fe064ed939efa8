"""
backend/huskybids/services/game_service.py

Purpose:
    Game lifecycle as driven by the external feed: upsert schedule entries,
    record final scores and the winner, close betting once a game starts, and
    serve game listings with the odds the next bet would get.

    Status and winner are taken from the feed as-is. A completed game is
    frozen: later feed updates never change its score, status or winner.

Dependencies:
    - huskybids.database (MongoConnection)
    - huskybids.services.odds_engine
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from pymongo import ASCENDING, DESCENDING

from huskybids.database import MongoConnection
from huskybids.errors import GameNotFoundError, ValidationError
from huskybids.models.game import (
    GameFeedUpdate,
    GameOdds,
    GameOddsResponse,
    GameResponse,
    GameStatus,
    GameSyncResult,
    GameWinner,
)
from huskybids.services.odds_engine import (
    DEFAULT_ODDS,
    compute_game_odds,
    format_odds,
    implied_house_edge,
)
from huskybids.utils import ensure_utc, to_object_id, utcnow

logger = logging.getLogger("huskybids.games")

ODDS_FORMATS = ("multiplier", "american")


def derive_winner(home_score: int, away_score: int) -> GameWinner:
    if home_score > away_score:
        return GameWinner.home
    if away_score > home_score:
        return GameWinner.away
    return GameWinner.tie


def game_to_response(game: dict) -> GameResponse:
    """Client view of a game, with odds computed from its current aggregates."""
    odds = compute_game_odds(game)
    return GameResponse(
        id=str(game["_id"]),
        sport=game.get("sport", "football"),
        home_team=game["home_team"],
        away_team=game["away_team"],
        game_date=ensure_utc(game["game_date"]),
        venue=game.get("venue"),
        status=game["status"],
        home_score=game.get("home_score", 0) or 0,
        away_score=game.get("away_score", 0) or 0,
        winner=game.get("winner"),
        home_odds=odds.home_odds,
        away_odds=odds.away_odds,
        home_bets=game.get("home_bets", 0) or 0,
        away_bets=game.get("away_bets", 0) or 0,
        total_bets_placed=game.get("total_bets_placed", 0) or 0,
        total_biscuits_wagered=game.get("total_biscuits_wagered", 0) or 0,
        betting_open=bool(game.get("betting_open", False)),
    )


class GameService:
    def __init__(self, mongo: MongoConnection, *, clock: Callable[[], datetime] = utcnow):
        self._mongo = mongo
        self._clock = clock

    @property
    def _games(self):
        return self._mongo.db.games

    # ------------------------------------------------------------------
    # Feed ingestion
    # ------------------------------------------------------------------

    async def upsert_from_feed(self, update: GameFeedUpdate) -> str:
        """Apply one feed snapshot. Returns "created", "updated" or "unchanged"."""
        now = self._clock()
        existing = await self._games.find_one({"api_game_id": update.api_game_id})

        if existing and existing.get("status") == GameStatus.completed.value:
            return "unchanged"

        fields = {
            "sport": update.sport,
            "home_team": update.home_team,
            "away_team": update.away_team,
            "game_date": update.game_date,
            "venue": update.venue,
            "season": update.season,
            "status": update.status.value,
            "home_score": update.home_score,
            "away_score": update.away_score,
            "betting_open": (
                update.status == GameStatus.scheduled and ensure_utc(update.game_date) > now
            ),
            "updated_at": now,
        }
        if update.status == GameStatus.completed:
            fields["winner"] = derive_winner(update.home_score, update.away_score).value

        if existing:
            # Guard against a concurrent completion between the read and this write.
            result = await self._games.update_one(
                {"_id": existing["_id"], "status": {"$ne": GameStatus.completed.value}},
                {"$set": fields},
            )
            if result.matched_count == 0:
                return "unchanged"
            if update.status == GameStatus.completed:
                logger.info(
                    "Game final: %s %d - %d %s (winner: %s)",
                    update.home_team, update.home_score, update.away_score,
                    update.away_team, fields["winner"],
                )
            return "updated"

        await self._games.insert_one({
            "api_game_id": update.api_game_id,
            **fields,
            "winner": fields.get("winner"),
            "total_bets_placed": 0,
            "total_biscuits_wagered": 0,
            "home_bets": 0,
            "away_bets": 0,
            "home_biscuits_wagered": 0,
            "away_biscuits_wagered": 0,
            "odds_version": 0,
            "home_odds": DEFAULT_ODDS,
            "away_odds": DEFAULT_ODDS,
            "betting_close_time": None,
            "settled_at": None,
            "created_at": now,
        })
        logger.info("Created game: %s vs %s (%s)", update.home_team, update.away_team, update.status.value)
        return "created"

    async def sync_from_feed(self, updates: list[GameFeedUpdate]) -> GameSyncResult:
        result = GameSyncResult(fetched=len(updates))
        for update in updates:
            outcome = await self.upsert_from_feed(update)
            setattr(result, outcome, getattr(result, outcome) + 1)
        result.betting_closed = await self.close_started_games()
        return result

    async def close_started_games(self) -> int:
        """Turn betting off for scheduled games whose start time has passed."""
        result = await self._games.update_many(
            {
                "status": GameStatus.scheduled.value,
                "betting_open": True,
                "game_date": {"$lte": self._clock()},
            },
            {"$set": {"betting_open": False, "updated_at": self._clock()}},
        )
        if result.modified_count:
            logger.info("Closed betting on %d started games", result.modified_count)
        return result.modified_count

    async def recalculate_odds(self, game_id: str) -> GameOdds:
        """Refresh the stored display odds from the game's aggregates."""
        game = await self._get(game_id)
        odds = compute_game_odds(game)
        await self._games.update_one(
            {"_id": game["_id"]},
            {"$set": {
                "home_odds": odds.home_odds,
                "away_odds": odds.away_odds,
                "updated_at": self._clock(),
            }},
        )
        return odds

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _get(self, game_id: str) -> dict:
        oid = to_object_id(game_id)
        game = await self._games.find_one({"_id": oid}) if oid else None
        if not game:
            raise GameNotFoundError(game_id=game_id)
        return game

    async def get_upcoming_games(self, sport: Optional[str] = None, limit: int = 20) -> list[GameResponse]:
        query: dict = {"status": GameStatus.scheduled.value, "game_date": {"$gt": self._clock()}}
        if sport:
            query["sport"] = sport
        games = await self._games.find(query).sort("game_date", ASCENDING).limit(limit).to_list(length=limit)
        return [game_to_response(g) for g in games]

    async def get_completed_games(self, sport: Optional[str] = None, limit: int = 20) -> list[GameResponse]:
        query: dict = {"status": GameStatus.completed.value}
        if sport:
            query["sport"] = sport
        games = await self._games.find(query).sort("game_date", DESCENDING).limit(limit).to_list(length=limit)
        return [game_to_response(g) for g in games]

    async def get_game_odds(self, game_id: str, fmt: str = "multiplier") -> GameOddsResponse:
        if fmt not in ODDS_FORMATS:
            raise ValidationError(f"format must be one of: {', '.join(ODDS_FORMATS)}")
        game = await self._get(game_id)
        odds = compute_game_odds(game)
        return GameOddsResponse(
            game_id=str(game["_id"]),
            home_odds=odds.home_odds,
            away_odds=odds.away_odds,
            home_odds_display=format_odds(odds.home_odds, fmt),
            away_odds_display=format_odds(odds.away_odds, fmt),
            house_edge=implied_house_edge(odds.home_odds, odds.away_odds),
        )
