"""
backend/huskybids/services/betting_ledger.py

Purpose:
    Atomic bet placement. One MongoDB transaction re-reads the game and the
    account, prices the bet from the game's live aggregates, debits the stake,
    bumps the game's per-side aggregates and inserts the bet record. Either all
    of it commits or none of it does.

    Two guards back the transaction up:
    - the debit only matches while biscuits >= stake, so two concurrent
      placements can never overdraw an account;
    - the aggregate update is a compare-and-set on games.odds_version, so the
      odds snapshot always matches the aggregates it was computed from.

Dependencies:
    - huskybids.database (MongoConnection.transaction)
    - huskybids.services.odds_engine
    - huskybids.services.bet_validator
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable

from pymongo import ReturnDocument

from huskybids.config import settings
from huskybids.database import MongoConnection
from huskybids.errors import (
    BettingClosedError,
    ConcurrencyConflictError,
    GameNotFoundError,
    InsufficientFundsError,
    InvalidPredictionError,
    PermissionDeniedError,
    UserNotFoundError,
    ValidationFailedError,
)
from huskybids.models.bet import (
    BetPlacement,
    BetResponse,
    BetSide,
    BetStatus,
    PlacementGameSummary,
    PlacementUserSummary,
)
from huskybids.models.game import GameStatus
from huskybids.models.transaction import TransactionType
from huskybids.services.bet_validator import validate_bet
from huskybids.services.odds_engine import compute_game_odds, compute_odds, odds_for_side, payout
from huskybids.services.transaction_log import log_transaction
from huskybids.utils import ensure_utc, to_object_id, utcnow

logger = logging.getLogger("huskybids.betting_ledger")

_VALID_SIDES = (BetSide.home.value, BetSide.away.value)


class BettingLedger:
    def __init__(
        self,
        mongo: MongoConnection,
        *,
        min_bet: int = settings.MIN_BET,
        max_bet: int = settings.MAX_BET,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._mongo = mongo
        self._min_bet = min_bet
        self._max_bet = max_bet
        self._clock = clock

    async def place_bet(
        self,
        user_id: str,
        game_id: str,
        bet_amount: float,
        predicted_winner: str,
    ) -> BetPlacement:
        """Place a bet for user_id on game_id.

        Raises GameNotFoundError, UserNotFoundError, BettingClosedError,
        InvalidPredictionError, ValidationFailedError, InsufficientFundsError
        or ConcurrencyConflictError. Nothing is written when any of them is raised.
        """
        game_oid = to_object_id(game_id)
        if game_oid is None:
            raise GameNotFoundError(game_id=game_id)

        now = self._clock()
        db = self._mongo.db

        async with self._mongo.transaction() as session:
            game = await db.games.find_one({"_id": game_oid}, session=session)
            if not game:
                raise GameNotFoundError(game_id=game_id)
            self._ensure_open_for_betting(game, now)

            if predicted_winner not in _VALID_SIDES:
                raise InvalidPredictionError('predicted_winner must be "home" or "away"')

            user = await db.users.find_one({"clerk_id": user_id}, session=session)
            if not user:
                raise UserNotFoundError(user_id=user_id)
            if user.get("is_banned") or not user.get("is_active", True):
                raise PermissionDeniedError("This account cannot place bets.")

            validation = validate_bet(bet_amount, user.get("biscuits", 0), self._min_bet, self._max_bet)
            if not validation.valid:
                if validation.insufficient_funds:
                    raise InsufficientFundsError(balance=user.get("biscuits", 0), bet_amount=bet_amount)
                raise ValidationFailedError(validation.error)

            amount = int(bet_amount)
            bet_odds = odds_for_side(compute_game_odds(game), predicted_winner)
            potential_win = payout(amount, bet_odds)

            updated_user = await db.users.find_one_and_update(
                {"_id": user["_id"], "biscuits": {"$gte": amount}},
                {
                    "$inc": {
                        "biscuits": -amount,
                        "total_bets": 1,
                        "pending_bets": 1,
                        "total_biscuits_wagered": amount,
                    },
                    "$set": {"updated_at": now},
                },
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if updated_user is None:
                raise InsufficientFundsError(bet_amount=amount)

            next_odds = compute_odds(*self._aggregates_after(game, predicted_winner, amount))
            updated_game = await db.games.find_one_and_update(
                {
                    "_id": game_oid,
                    "status": GameStatus.scheduled.value,
                    "betting_open": True,
                    "odds_version": game.get("odds_version", 0),
                },
                {
                    "$inc": {
                        f"{predicted_winner}_bets": 1,
                        f"{predicted_winner}_biscuits_wagered": amount,
                        "total_bets_placed": 1,
                        "total_biscuits_wagered": amount,
                        "odds_version": 1,
                    },
                    "$set": {
                        "home_odds": next_odds.home_odds,
                        "away_odds": next_odds.away_odds,
                        "updated_at": now,
                    },
                },
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if updated_game is None:
                raise ConcurrencyConflictError(
                    "Game changed while the bet was being placed", game_id=game_id,
                )

            bet_doc = {
                "user_id": user_id,
                "account_id": str(user["_id"]),
                "game_id": str(game_oid),
                "bet_amount": amount,
                "predicted_winner": predicted_winner,
                "odds": bet_odds,
                "potential_win": potential_win,
                "status": BetStatus.pending.value,
                "actual_win": None,
                "notes": "",
                "placed_at": now,
                "settled_at": None,
            }
            result = await db.bets.insert_one(bet_doc, session=session)
            bet_doc["_id"] = result.inserted_id

            await log_transaction(
                db,
                user_id=user_id,
                tx_type=TransactionType.BET_PLACED,
                amount=-amount,
                balance_after=updated_user["biscuits"],
                reference_type="bet",
                reference_id=str(result.inserted_id),
                description=(
                    f"Bet: {game.get('home_team')} vs {game.get('away_team')} "
                    f"-> {predicted_winner} ({amount} biscuits @ {bet_odds:.2f})"
                ),
                session=session,
            )

        logger.info(
            "Bet placed: user=%s game=%s side=%s amount=%d odds=%.2f potential=%d",
            user_id, game_id, predicted_winner, amount, bet_odds, potential_win,
        )
        return BetPlacement(
            bet=BetResponse.from_doc(bet_doc),
            user=PlacementUserSummary(
                biscuits=updated_user["biscuits"],
                total_bets=updated_user["total_bets"],
                pending_bets=updated_user["pending_bets"],
            ),
            game=PlacementGameSummary(
                home_odds=updated_game["home_odds"],
                away_odds=updated_game["away_odds"],
                total_bets_placed=updated_game["total_bets_placed"],
                home_bets=updated_game["home_bets"],
                away_bets=updated_game["away_bets"],
                home_biscuits_wagered=updated_game["home_biscuits_wagered"],
                away_biscuits_wagered=updated_game["away_biscuits_wagered"],
            ),
        )

    @staticmethod
    def _ensure_open_for_betting(game: dict, now: datetime) -> None:
        status = game.get("status")
        if status != GameStatus.scheduled.value:
            raise BettingClosedError(f"Game is {status} and not available for betting")
        if ensure_utc(game["game_date"]) <= now:
            raise BettingClosedError("Betting is closed - game has already started")
        if not game.get("betting_open", True):
            raise BettingClosedError("Betting is closed for this game")
        close_time = game.get("betting_close_time")
        if close_time and ensure_utc(close_time) <= now:
            raise BettingClosedError("Betting is closed for this game")

    @staticmethod
    def _aggregates_after(game: dict, side: str, amount: int) -> tuple[int, int, int, int]:
        home_bets = game.get("home_bets", 0) or 0
        away_bets = game.get("away_bets", 0) or 0
        home_biscuits = game.get("home_biscuits_wagered", 0) or 0
        away_biscuits = game.get("away_biscuits_wagered", 0) or 0
        if side == BetSide.home.value:
            return home_bets + 1, away_bets, home_biscuits + amount, away_biscuits
        return home_bets, away_bets + 1, home_biscuits, away_biscuits + amount


async def place_bet_with_retry(
    ledger: BettingLedger,
    user_id: str,
    game_id: str,
    bet_amount: float,
    predicted_winner: str,
    max_attempts: int = settings.PLACE_BET_MAX_ATTEMPTS,
) -> BetPlacement:
    """Retry a placement that lost a race, up to max_attempts in total.

    Only ConcurrencyConflictError is retried; every other error is final.
    """
    attempt = 1
    while True:
        try:
            return await ledger.place_bet(user_id, game_id, bet_amount, predicted_winner)
        except ConcurrencyConflictError:
            if attempt >= max_attempts:
                logger.warning(
                    "Bet placement conflict persisted after %d attempts: user=%s game=%s",
                    attempt, user_id, game_id,
                )
                raise
            logger.info("Bet placement conflict, retrying (%d/%d)", attempt, max_attempts)
            await asyncio.sleep(0.05 * attempt)
            attempt += 1
