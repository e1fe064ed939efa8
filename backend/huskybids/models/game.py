"""Game models: lifecycle status, outcome and per-side betting aggregates."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class GameStatus(str, Enum):
    scheduled = "scheduled"
    live = "live"
    completed = "completed"
    cancelled = "cancelled"
    postponed = "postponed"


class GameWinner(str, Enum):
    home = "home"
    away = "away"
    tie = "tie"


DECISIVE_WINNERS = (GameWinner.home.value, GameWinner.away.value)
REFUNDABLE_STATUSES = (GameStatus.cancelled.value, GameStatus.postponed.value)


class GameInDB(BaseModel):
    """Game document as stored in MongoDB."""
    api_game_id: Optional[str] = None
    sport: str = "football"
    home_team: str = "Washington Huskies"
    away_team: str
    game_date: datetime
    venue: Optional[str] = None
    season: Optional[str] = None
    status: GameStatus = GameStatus.scheduled
    home_score: int = 0
    away_score: int = 0
    winner: Optional[GameWinner] = None
    # Running aggregates maintained by the betting ledger
    total_bets_placed: int = 0
    total_biscuits_wagered: int = 0
    home_bets: int = 0
    away_bets: int = 0
    home_biscuits_wagered: int = 0
    away_biscuits_wagered: int = 0
    odds_version: int = 0
    # Display odds for the next bet (derived from aggregates)
    home_odds: float = 2.0
    away_odds: float = 2.0
    betting_open: bool = True
    betting_close_time: Optional[datetime] = None
    settled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class GameOdds(BaseModel):
    home_odds: float
    away_odds: float


class GameResponse(BaseModel):
    """Game data returned to the client."""
    id: str
    sport: str
    home_team: str
    away_team: str
    game_date: datetime
    venue: Optional[str] = None
    status: str
    home_score: int
    away_score: int
    winner: Optional[str] = None
    home_odds: float
    away_odds: float
    home_bets: int
    away_bets: int
    total_bets_placed: int
    total_biscuits_wagered: int
    betting_open: bool


class GameOddsResponse(BaseModel):
    game_id: str
    home_odds: float
    away_odds: float
    home_odds_display: str
    away_odds_display: str
    house_edge: float


class GameFeedUpdate(BaseModel):
    """Normalized game snapshot from the external sports feed."""
    api_game_id: str
    sport: str
    home_team: str
    away_team: str
    game_date: datetime
    status: GameStatus
    home_score: int = 0
    away_score: int = 0
    venue: Optional[str] = None
    season: Optional[str] = None


class GameSyncResult(BaseModel):
    """Counts from applying one batch of feed updates."""
    fetched: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0  # already completed; feed changes ignored
    betting_closed: int = 0
