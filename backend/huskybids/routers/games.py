from typing import Optional

from fastapi import APIRouter, Depends, Query

from huskybids.dependencies import get_game_service
from huskybids.models.game import GameOddsResponse, GameResponse
from huskybids.services.game_service import GameService

router = APIRouter(prefix="/api/games", tags=["games"])


@router.get("/upcoming", response_model=list[GameResponse])
async def upcoming_games(
    sport: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    games: GameService = Depends(get_game_service),
):
    """Scheduled games that have not started, soonest first, with live odds."""
    return await games.get_upcoming_games(sport=sport, limit=limit)


@router.get("/completed", response_model=list[GameResponse])
async def completed_games(
    sport: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    games: GameService = Depends(get_game_service),
):
    return await games.get_completed_games(sport=sport, limit=limit)


@router.get("/{game_id}/odds", response_model=GameOddsResponse)
async def game_odds(
    game_id: str,
    fmt: str = Query("multiplier", alias="format"),
    games: GameService = Depends(get_game_service),
):
    return await games.get_game_odds(game_id, fmt)
