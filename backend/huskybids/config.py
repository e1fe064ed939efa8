"""
backend/huskybids/config.py

Purpose:
    Central settings loading for the HuskyBids backend: database, identity
    tokens, betting limits, odds weights and worker schedules.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    MONGO_URI: str = "mongodb://localhost:27017/?replicaSet=rs0"
    MONGO_DB: str = "huskybids"
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"

    # Identity tokens (issued by the auth provider, verified here)
    JWT_SECRET: str = ""
    JWT_SECRET_OLD: str = ""  # Set during rotation; cleared once old tokens expired
    JWT_ALGORITHM: str = "HS256"
    ADMIN_USER_IDS: str = ""  # Comma-separated user ids allowed to trigger settlement

    # Betting limits
    MIN_BET: int = 10
    MAX_BET: int = 10000
    STARTING_BISCUITS: int = 1000
    PLACE_BET_MAX_ATTEMPTS: int = 3
    SETTLE_BET_MAX_ATTEMPTS: int = 3

    # Odds engine
    DEFAULT_ODDS: float = 2.0
    MIN_ODDS: float = 1.1
    MAX_ODDS: float = 10.0
    BISCUIT_WEIGHT: float = 0.7
    BET_COUNT_WEIGHT: float = 0.3
    HOUSE_EDGE_FACTOR: float = 0.95

    # Rewards
    DAILY_LOGIN_BONUS: int = 50
    STREAK_TIER_1_DAYS: int = 3
    STREAK_TIER_1_MULTIPLIER: float = 1.5
    STREAK_TIER_2_DAYS: int = 7
    STREAK_TIER_2_MULTIPLIER: float = 2.0

    # Leaderboard
    LEADERBOARD_DEFAULT_LIMIT: int = 20
    LEADERBOARD_MAX_LIMIT: int = 100

    # External sports feed
    ESPN_BASE_URL: str = "https://site.api.espn.com/apis/site/v2/sports"
    ESPN_SPORT_PATHS: str = "football:football/college-football,basketball:basketball/mens-college-basketball"
    ESPN_TEAM_ID: str = "264"  # Washington Huskies

    # Workers
    AUTOMATION_ENABLED: bool = False
    SETTLEMENT_INTERVAL_MINUTES: int = 10
    GAME_SYNC_INTERVAL_MINUTES: int = 30

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }

    @property
    def admin_user_ids(self) -> set[str]:
        return {u.strip() for u in self.ADMIN_USER_IDS.split(",") if u.strip()}

    @property
    def espn_sport_paths(self) -> dict[str, str]:
        paths: dict[str, str] = {}
        for entry in self.ESPN_SPORT_PATHS.split(","):
            sport, _, path = entry.partition(":")
            if sport.strip() and path.strip():
                paths[sport.strip()] = path.strip()
        return paths


settings = Settings()
