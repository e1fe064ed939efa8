"""
backend/huskybids/services/settlement_engine.py

Purpose:
    Resolve pending bets once a game's outcome is known. Every bet moves out of
    "pending" exactly once: the transition is a conditional update guarded on
    status == "pending", committed in the same transaction as the balance
    credit. Re-running settlement (sweeper and manual trigger overlapping, or
    a retry after a partial run) therefore never pays a bet twice.

    Per-bet failures are collected and reported; only game-level
    preconditions (not completed, tie, no winner) abort a settle_game call.

Dependencies:
    - huskybids.database (MongoConnection.transaction)
    - huskybids.services.transaction_log
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable

from pymongo import ReturnDocument

from huskybids.config import settings
from huskybids.database import MongoConnection
from huskybids.errors import (
    ConcurrencyConflictError,
    GameNotFoundError,
    GameStateError,
    HuskyBidsError,
    UserNotFoundError,
)
from huskybids.models.bet import BetStatus
from huskybids.models.game import DECISIVE_WINNERS, REFUNDABLE_STATUSES, GameStatus, GameWinner
from huskybids.models.settlement import (
    BatchSettlementSummary,
    BetSettlementFailure,
    GameSettlementFailure,
    GameSettlementResult,
    RefundResult,
)
from huskybids.models.transaction import TransactionType
from huskybids.services.transaction_log import log_transaction
from huskybids.utils import to_object_id, utcnow

logger = logging.getLogger("huskybids.settlement")

# Upper bound for one game's pending bets per run; the rest are finished by the next run.
_BATCH_LIMIT = 5000


class SettlementEngine:
    def __init__(self, mongo: MongoConnection, *, clock: Callable[[], datetime] = utcnow):
        self._mongo = mongo
        self._clock = clock

    # ------------------------------------------------------------------
    # Single game
    # ------------------------------------------------------------------

    async def settle_game(self, game_id: str) -> GameSettlementResult:
        """Settle every pending bet on a completed game with a decisive winner."""
        game = await self._load_game(game_id)

        if game.get("status") != GameStatus.completed.value:
            raise GameStateError(
                f"Game is {game.get('status')}; only completed games can be settled",
                game_id=game_id,
            )
        winner = game.get("winner")
        if winner == GameWinner.tie.value:
            raise GameStateError("Tie games require manual settlement", game_id=game_id)
        if winner not in DECISIVE_WINNERS:
            raise GameStateError("Game has no winner yet", game_id=game_id)

        result = GameSettlementResult(game_id=str(game["_id"]), winner=winner)
        pending = await self._pending_bets(game["_id"])

        for bet in pending:
            bet_id = str(bet["_id"])
            try:
                outcome = await self._with_retry(self._settle_bet, bet, game)
            except HuskyBidsError as exc:
                logger.warning("Settlement failed for bet %s: %s", bet_id, exc.message)
                result.errors.append(BetSettlementFailure(bet_id=bet_id, error=exc.message))
                continue

            if outcome is None:
                result.skipped += 1
            elif outcome == BetStatus.won.value:
                result.settled += 1
                result.won += 1
                result.total_payout += bet["potential_win"]
            else:
                result.settled += 1
                result.lost += 1

        if not result.errors and not await self._has_pending(game["_id"]):
            await self._mongo.db.games.update_one(
                {"_id": game["_id"], "settled_at": None},
                {"$set": {"settled_at": self._clock()}},
            )

        logger.info(
            "Settled game %s (%s wins): %d bets, %d won, %d lost, %d skipped, payout %d, %d errors",
            result.game_id, winner, result.settled, result.won, result.lost,
            result.skipped, result.total_payout, len(result.errors),
        )
        return result

    async def _with_retry(self, op: Callable[..., Awaitable], bet: dict, *args):
        """Run a per-bet transaction, retrying write conflicts a bounded number of times.

        A conflict that persists is raised to the caller and reported as a
        failure for that bet; the bet stays pending for the next run.
        """
        max_attempts = settings.SETTLE_BET_MAX_ATTEMPTS
        attempt = 1
        while True:
            try:
                return await op(bet, *args)
            except ConcurrencyConflictError:
                if attempt >= max_attempts:
                    logger.warning(
                        "Settlement conflict persisted after %d attempts: bet=%s", attempt, bet["_id"],
                    )
                    raise
                logger.info("Settlement conflict on bet %s, retrying (%d/%d)", bet["_id"], attempt, max_attempts)
                await asyncio.sleep(0.05 * attempt)
                attempt += 1

    async def _settle_bet(self, bet: dict, game: dict) -> str | None:
        """Transition one bet and apply its balance effect in one transaction.

        Returns the new status, or None when the bet was no longer pending.
        """
        is_won = bet["predicted_winner"] == game["winner"]
        new_status = BetStatus.won.value if is_won else BetStatus.lost.value
        actual_win = bet["potential_win"] if is_won else 0
        now = self._clock()
        db = self._mongo.db

        async with self._mongo.transaction() as session:
            claimed = await db.bets.find_one_and_update(
                {"_id": bet["_id"], "status": BetStatus.pending.value},
                {"$set": {"status": new_status, "actual_win": actual_win, "settled_at": now}},
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if claimed is None:
                return None

            if is_won:
                inc = {
                    "biscuits": actual_win,
                    "winning_bets": 1,
                    "pending_bets": -1,
                    "total_biscuits_won": actual_win,
                }
            else:
                inc = {
                    "losing_bets": 1,
                    "pending_bets": -1,
                    "total_biscuits_lost": bet["bet_amount"],
                }
            user = await db.users.find_one_and_update(
                {"clerk_id": bet["user_id"]},
                {"$inc": inc, "$set": {"updated_at": now}},
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if user is None:
                raise UserNotFoundError(f"User {bet['user_id']} not found", bet_id=str(bet["_id"]))

            matchup = f"{game.get('home_team')} vs {game.get('away_team')}"
            await log_transaction(
                db,
                user_id=bet["user_id"],
                tx_type=TransactionType.BET_WON if is_won else TransactionType.BET_LOST,
                amount=actual_win,
                balance_after=user["biscuits"],
                reference_type="bet",
                reference_id=str(bet["_id"]),
                description=(
                    f"Win: {matchup} -> {bet['predicted_winner']} ({actual_win} biscuits)"
                    if is_won else f"Lost: {matchup}"
                ),
                session=session,
            )
        return new_status

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def settle_all_completed_games(self) -> BatchSettlementSummary:
        """Settle every completed, decisively-won game that still has pending bets.

        Safe to run repeatedly and concurrently with itself.
        """
        summary = BatchSettlementSummary()

        games = await self._games_with_pending_bets(
            {"status": GameStatus.completed.value, "winner": {"$in": list(DECISIVE_WINNERS)}},
        )
        summary.games_checked = len(games)

        for game in games:
            # A concurrent run may have finished this game since the scan
            if not await self._has_pending(game["_id"]):
                summary.games_without_pending += 1
                continue

            try:
                result = await self.settle_game(str(game["_id"]))
            except HuskyBidsError as exc:
                logger.error("Settlement of game %s failed: %s", game["_id"], exc.message)
                summary.game_errors.append(
                    GameSettlementFailure(game_id=str(game["_id"]), error=exc.message)
                )
                continue

            summary.games_processed += 1
            summary.bets_settled += result.settled
            summary.won += result.won
            summary.lost += result.lost
            summary.total_payout += result.total_payout
            summary.bet_errors += len(result.errors)
            summary.games.append(result)

        if summary.games_processed or summary.game_errors:
            logger.info(
                "Settlement sweep: %d/%d games processed, %d bets settled, payout %d, %d bet errors, %d game errors",
                summary.games_processed, summary.games_checked, summary.bets_settled,
                summary.total_payout, summary.bet_errors, len(summary.game_errors),
            )
        return summary

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    async def refund_game(self, game_id: str, reason: str | None = None) -> RefundResult:
        """Return the stake of every pending bet on a void game.

        Applies to cancelled or postponed games, and to completed games that
        ended in a tie. Refunded bets drop out of the user's bet totals but stay
        in the game's aggregates.
        """
        game = await self._load_game(game_id)
        status = game.get("status")
        is_tie = status == GameStatus.completed.value and game.get("winner") == GameWinner.tie.value
        if status not in REFUNDABLE_STATUSES and not is_tie:
            raise GameStateError(
                f"Game is {status}; only cancelled, postponed or tied games can be refunded",
                game_id=game_id,
            )

        reason = reason or ("tie" if is_tie else status)
        result = RefundResult(game_id=str(game["_id"]), reason=reason)

        for bet in await self._pending_bets(game["_id"]):
            bet_id = str(bet["_id"])
            try:
                refunded = await self._with_retry(self._refund_bet, bet, game, reason)
            except HuskyBidsError as exc:
                logger.warning("Refund failed for bet %s: %s", bet_id, exc.message)
                result.errors.append(BetSettlementFailure(bet_id=bet_id, error=exc.message))
                continue

            if refunded:
                result.refunded += 1
                result.total_refunded += bet["bet_amount"]
            else:
                result.skipped += 1

        logger.info(
            "Refunded game %s (%s): %d bets, %d biscuits, %d skipped, %d errors",
            result.game_id, reason, result.refunded, result.total_refunded,
            result.skipped, len(result.errors),
        )
        return result

    async def _refund_bet(self, bet: dict, game: dict, reason: str) -> bool:
        now = self._clock()
        amount = bet["bet_amount"]
        db = self._mongo.db

        async with self._mongo.transaction() as session:
            claimed = await db.bets.find_one_and_update(
                {"_id": bet["_id"], "status": BetStatus.pending.value},
                {"$set": {
                    "status": BetStatus.refunded.value,
                    "actual_win": amount,
                    "settled_at": now,
                    "notes": f"Refunded: {reason}",
                }},
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if claimed is None:
                return False

            user = await db.users.find_one_and_update(
                {"clerk_id": bet["user_id"]},
                {
                    "$inc": {
                        "biscuits": amount,
                        "pending_bets": -1,
                        "total_bets": -1,
                        "total_biscuits_wagered": -amount,
                    },
                    "$set": {"updated_at": now},
                },
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if user is None:
                raise UserNotFoundError(f"User {bet['user_id']} not found", bet_id=str(bet["_id"]))

            await log_transaction(
                db,
                user_id=bet["user_id"],
                tx_type=TransactionType.BET_REFUNDED,
                amount=amount,
                balance_after=user["biscuits"],
                reference_type="bet",
                reference_id=str(bet["_id"]),
                description=f"Refund ({reason}): {game.get('home_team')} vs {game.get('away_team')}",
                session=session,
            )
        return True

    async def refund_void_games(self) -> list[RefundResult]:
        """Refund pending bets on every cancelled game.

        Postponed games are left to the manual refund_game trigger: the feed
        can move them back to scheduled, and their aggregates would still
        count the returned stakes.
        """
        games = await self._games_with_pending_bets({"status": GameStatus.cancelled.value})

        results = []
        for game in games:
            if not await self._has_pending(game["_id"]):
                continue
            results.append(await self.refund_game(str(game["_id"])))
        return results

    # ------------------------------------------------------------------

    async def _games_with_pending_bets(self, game_filter: dict) -> list[dict]:
        """Games matching game_filter that have at least one pending bet, oldest first."""
        db = self._mongo.db
        game_ids = await db.bets.distinct("game_id", {"status": BetStatus.pending.value})
        oids = [oid for oid in (to_object_id(gid) for gid in game_ids) if oid is not None]
        if not oids:
            return []
        return await db.games.find(
            {"_id": {"$in": oids}, **game_filter}, {"_id": 1},
        ).sort("game_date", 1).to_list(length=None)

    async def _has_pending(self, game_oid) -> bool:
        found = await self._mongo.db.bets.find_one(
            {"game_id": str(game_oid), "status": BetStatus.pending.value}, {"_id": 1},
        )
        return found is not None

    async def _load_game(self, game_id: str) -> dict:
        oid = to_object_id(game_id)
        game = await self._mongo.db.games.find_one({"_id": oid}) if oid else None
        if not game:
            raise GameNotFoundError(game_id=game_id)
        return game

    async def _pending_bets(self, game_oid) -> list[dict]:
        return await self._mongo.db.bets.find(
            {"game_id": str(game_oid), "status": BetStatus.pending.value},
        ).sort("placed_at", 1).to_list(length=_BATCH_LIMIT)
