"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import paths, an in-memory MongoConnection and
    seed helpers for users and games.
"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

_THIS_FILE = Path(__file__).resolve()
_TESTS_DIR = _THIS_FILE.parent
_BACKEND_DIR = _THIS_FILE.parents[1]

for candidate in (str(_BACKEND_DIR), str(_TESTS_DIR)):
    if candidate not in sys.path:
        sys.path.insert(0, candidate)

from fakes import FakeMongoClient  # noqa: E402

from huskybids.database import MongoConnection  # noqa: E402

NOW = datetime(2025, 10, 4, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def mongo() -> MongoConnection:
    return MongoConnection(db_name="huskybids_test", client=FakeMongoClient())


@pytest.fixture
def db(mongo):
    return mongo.db


@pytest.fixture
def seed_user(db):
    def _seed(clerk_id: str = "user_1", biscuits: int = 1000, **fields) -> dict:
        doc = {
            "clerk_id": clerk_id,
            "username": fields.pop("username", clerk_id),
            "email": f"{clerk_id}@example.com",
            "profile_image": None,
            "biscuits": biscuits,
            "total_bets": 0,
            "winning_bets": 0,
            "losing_bets": 0,
            "pending_bets": 0,
            "total_biscuits_wagered": 0,
            "total_biscuits_won": 0,
            "total_biscuits_lost": 0,
            "login_streak": 1,
            "last_login_date": NOW - timedelta(days=1),
            "last_daily_reward_claimed": None,
            "is_active": True,
            "is_banned": False,
            "created_at": NOW - timedelta(days=30),
            "updated_at": NOW - timedelta(days=1),
        }
        doc.update(fields)
        return db.users.add(doc)

    return _seed


@pytest.fixture
def seed_game(db):
    def _seed(status: str = "scheduled", starts_in: timedelta = timedelta(days=2), **fields) -> dict:
        doc = {
            "api_game_id": fields.pop("api_game_id", None),
            "sport": "football",
            "home_team": "Washington Huskies",
            "away_team": "Oregon Ducks",
            "game_date": NOW + starts_in,
            "venue": "Husky Stadium",
            "season": "2025",
            "status": status,
            "home_score": 0,
            "away_score": 0,
            "winner": None,
            "total_bets_placed": 0,
            "total_biscuits_wagered": 0,
            "home_bets": 0,
            "away_bets": 0,
            "home_biscuits_wagered": 0,
            "away_biscuits_wagered": 0,
            "odds_version": 0,
            "home_odds": 2.0,
            "away_odds": 2.0,
            "betting_open": status == "scheduled",
            "betting_close_time": None,
            "settled_at": None,
            "created_at": NOW - timedelta(days=7),
            "updated_at": NOW - timedelta(days=7),
        }
        doc.update(fields)
        return db.games.add(doc)

    return _seed
