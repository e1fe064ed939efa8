"""Admin settlement triggers. Safe to call while the sweeper runs."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from huskybids.dependencies import get_settlement_engine
from huskybids.models.settlement import BatchSettlementSummary, GameSettlementResult, RefundResult
from huskybids.services.auth_service import require_admin
from huskybids.services.settlement_engine import SettlementEngine

logger = logging.getLogger("huskybids.settlement")

router = APIRouter(prefix="/api/settlement", tags=["settlement"])


@router.post("/games/{game_id}", response_model=GameSettlementResult)
async def settle_game(
    game_id: str,
    admin_id: str = Depends(require_admin),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    logger.info("Manual settlement of game %s by %s", game_id, admin_id)
    return await engine.settle_game(game_id)


@router.post("/all", response_model=BatchSettlementSummary)
async def settle_all(
    admin_id: str = Depends(require_admin),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    logger.info("Manual settlement sweep by %s", admin_id)
    return await engine.settle_all_completed_games()


@router.post("/games/{game_id}/refund", response_model=RefundResult)
async def refund_game(
    game_id: str,
    reason: Optional[str] = Query(None, max_length=200),
    admin_id: str = Depends(require_admin),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    logger.info("Manual refund of game %s by %s", game_id, admin_id)
    return await engine.refund_game(game_id, reason)
