"""Periodic settlement: settle decided games, refund void ones."""

import logging
from datetime import timedelta

from huskybids.database import MongoConnection
from huskybids.models.bet import BetStatus
from huskybids.services.settlement_engine import SettlementEngine
from huskybids.workers._state import recently_synced, set_synced

logger = logging.getLogger("huskybids.settlement_sweeper")

STATE_KEY = "settlement_sweeper"


async def sweep_settlements(mongo: MongoConnection) -> None:
    """Run settle_all_completed_games, then refund cancelled games.

    Smart sleep: skips when there are no pending bets and a sweep ran recently.
    """
    db = mongo.db
    if await recently_synced(db, STATE_KEY, timedelta(hours=6)):
        has_pending = await db.bets.find_one({"status": BetStatus.pending.value}, {"_id": 1})
        if not has_pending:
            logger.debug("Smart sleep: no pending bets")
            return

    engine = SettlementEngine(mongo)
    try:
        summary = await engine.settle_all_completed_games()
        refunds = await engine.refund_void_games()
    except Exception:
        logger.exception("Settlement sweep failed")
        return

    refunded = sum(r.refunded for r in refunds)
    if refunded:
        logger.info("Refunded %d bets on %d void games", refunded, len(refunds))

    await set_synced(db, STATE_KEY, {
        "games_processed": summary.games_processed,
        "bets_settled": summary.bets_settled,
        "total_payout": summary.total_payout,
        "bet_errors": summary.bet_errors,
        "game_errors": len(summary.game_errors),
        "bets_refunded": refunded,
    })
