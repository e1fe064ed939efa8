"""
backend/tests/test_betting_ledger.py

Purpose:
    Atomic bet placement: balance debit, bet record and game aggregates commit
    together or not at all, including under concurrent placements.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from bson import ObjectId

from huskybids.errors import (
    BettingClosedError,
    ConcurrencyConflictError,
    GameNotFoundError,
    InsufficientFundsError,
    InvalidPredictionError,
    UserNotFoundError,
    ValidationFailedError,
)
from huskybids.models.bet import BetInDB
from huskybids.models.transaction import BiscuitTransactionInDB, TransactionType
from huskybids.services.betting_ledger import BettingLedger, place_bet_with_retry
from huskybids.services.odds_engine import compute_game_odds


@pytest.fixture
def ledger(mongo, now):
    return BettingLedger(mongo, clock=lambda: now)


def _assert_aggregates_match_bets(db, game_id):
    game = db.games.get(game_id)
    bets = [b for b in db.bets.all() if b["game_id"] == str(game_id) and b["status"] != "cancelled"]
    assert game["home_biscuits_wagered"] + game["away_biscuits_wagered"] == sum(b["bet_amount"] for b in bets)
    assert game["total_biscuits_wagered"] == sum(b["bet_amount"] for b in bets)
    assert game["home_bets"] + game["away_bets"] == len(bets) == game["total_bets_placed"]
    assert game["home_biscuits_wagered"] == sum(b["bet_amount"] for b in bets if b["predicted_winner"] == "home")
    return game, bets


@pytest.mark.asyncio
async def test_place_bet_debits_and_records(ledger, db, seed_user, seed_game):
    user = seed_user(biscuits=1000)
    game = seed_game()

    placement = await ledger.place_bet("user_1", str(game["_id"]), 500, "home")

    assert placement.bet.status == "pending"
    assert placement.bet.odds == 2.0
    assert placement.bet.potential_win == 1000
    assert placement.user.biscuits == 500
    assert placement.user.total_bets == 1
    assert placement.user.pending_bets == 1

    stored_user = db.users.get(user["_id"])
    assert stored_user["biscuits"] == 500
    assert stored_user["total_biscuits_wagered"] == 500

    stored_game, bets = _assert_aggregates_match_bets(db, game["_id"])
    assert stored_game["home_bets"] == 1
    assert stored_game["odds_version"] == 1
    # One-sided market after the first bet
    assert (stored_game["home_odds"], stored_game["away_odds"]) == (1.1, 10.0)
    assert placement.game.home_odds == 1.1
    assert bets[0]["account_id"] == str(user["_id"])

    stored_bet = BetInDB.model_validate(bets[0])
    assert stored_bet.odds == 2.0
    assert stored_bet.actual_win is None

    txns = db.biscuit_transactions.all()
    assert len(txns) == 1
    assert BiscuitTransactionInDB.model_validate(txns[0]).type == TransactionType.BET_PLACED
    assert txns[0]["amount"] == -500
    assert txns[0]["balance_after"] == 500
    assert txns[0]["reference_id"] == placement.bet.id


@pytest.mark.asyncio
async def test_odds_snapshot_uses_live_aggregates(ledger, db, seed_user, seed_game):
    seed_user("user_1")
    seed_user("user_2")
    game = seed_game()

    await ledger.place_bet("user_1", str(game["_id"]), 100, "home")
    second = await ledger.place_bet("user_2", str(game["_id"]), 100, "away")

    assert second.bet.odds == 10.0
    assert second.bet.potential_win == 1000
    stored = db.games.get(game["_id"])
    assert (stored["home_odds"], stored["away_odds"]) == (1.9, 1.9)
    # The first bet keeps the odds it was placed at
    first = [b for b in db.bets.all() if b["user_id"] == "user_1"][0]
    assert first["odds"] == 2.0


@pytest.mark.asyncio
async def test_second_bet_over_balance_rejected(ledger, db, seed_user, seed_game):
    user = seed_user(biscuits=1000)
    game = seed_game()
    await ledger.place_bet("user_1", str(game["_id"]), 500, "home")

    with pytest.raises(InsufficientFundsError):
        await ledger.place_bet("user_1", str(game["_id"]), 600, "home")

    assert db.users.get(user["_id"])["biscuits"] == 500
    assert len(db.bets.all()) == 1
    _assert_aggregates_match_bets(db, game["_id"])


@pytest.mark.asyncio
async def test_concurrent_bets_cannot_overdraw(ledger, db, seed_user, seed_game):
    user = seed_user(biscuits=1000)
    game = seed_game()

    results = await asyncio.gather(
        place_bet_with_retry(ledger, "user_1", str(game["_id"]), 500, "home"),
        place_bet_with_retry(ledger, "user_1", str(game["_id"]), 600, "away"),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientFundsError)

    stored = db.users.get(user["_id"])
    bets = db.bets.all()
    assert len(bets) == 1
    assert stored["biscuits"] == 1000 - bets[0]["bet_amount"]
    assert stored["biscuits"] >= 0
    assert stored["total_bets"] == stored["pending_bets"] == 1
    _assert_aggregates_match_bets(db, game["_id"])


@pytest.mark.asyncio
async def test_concurrent_bets_from_many_users_keep_aggregates_consistent(ledger, db, seed_user, seed_game):
    game = seed_game()
    users = [f"user_{i}" for i in range(6)]
    for uid in users:
        seed_user(uid, biscuits=1000)

    sides = ["home", "away"]
    results = await asyncio.gather(*[
        place_bet_with_retry(ledger, uid, str(game["_id"]), 100 + 10 * i, sides[i % 2], max_attempts=10)
        for i, uid in enumerate(users)
    ])

    assert len(results) == 6
    stored, bets = _assert_aggregates_match_bets(db, game["_id"])
    assert len(bets) == 6
    assert stored["odds_version"] == 6
    assert compute_game_odds(stored).home_odds == stored["home_odds"]
    assert compute_game_odds(stored).away_odds == stored["away_odds"]
    assert sum(u["biscuits"] for u in db.users.all()) == 6000 - sum(b["bet_amount"] for b in bets)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "fields",
    [
        {"status": "live"},
        {"status": "completed", "winner": "home"},
        {"status": "cancelled"},
        {"starts_in": timedelta(minutes=-1)},
        {"starts_in": timedelta(0)},
        {"betting_open": False},
        {"betting_close_time_offset": timedelta(minutes=-5)},
    ],
)
async def test_closed_games_reject_bets(ledger, db, now, seed_user, seed_game, fields):
    user = seed_user()
    fields = dict(fields)
    if "betting_close_time_offset" in fields:
        fields["betting_close_time"] = now + fields.pop("betting_close_time_offset")
    game = seed_game(**fields)

    with pytest.raises(BettingClosedError):
        await ledger.place_bet("user_1", str(game["_id"]), 100, "home")

    assert db.users.get(user["_id"])["biscuits"] == 1000
    assert db.bets.all() == []


@pytest.mark.asyncio
async def test_close_time_in_future_allows_bets(ledger, now, seed_user, seed_game):
    seed_user()
    game = seed_game(betting_close_time=now + timedelta(hours=1))
    placement = await ledger.place_bet("user_1", str(game["_id"]), 100, "away")
    assert placement.bet.predicted_winner == "away"


@pytest.mark.asyncio
async def test_invalid_prediction(ledger, db, seed_user, seed_game):
    user = seed_user()
    game = seed_game()
    with pytest.raises(InvalidPredictionError):
        await ledger.place_bet("user_1", str(game["_id"]), 100, "tie")
    assert db.users.get(user["_id"])["biscuits"] == 1000


@pytest.mark.asyncio
@pytest.mark.parametrize("game_id", ["not-an-id", str(ObjectId())])
async def test_unknown_game(ledger, seed_user, game_id):
    seed_user()
    with pytest.raises(GameNotFoundError):
        await ledger.place_bet("user_1", game_id, 100, "home")


@pytest.mark.asyncio
async def test_unknown_user(ledger, seed_game):
    game = seed_game()
    with pytest.raises(UserNotFoundError):
        await ledger.place_bet("ghost", str(game["_id"]), 100, "home")


@pytest.mark.asyncio
async def test_validation_failure_wraps_validator_message(ledger, db, seed_user, seed_game):
    seed_user()
    game = seed_game()
    with pytest.raises(ValidationFailedError) as exc_info:
        await ledger.place_bet("user_1", str(game["_id"]), 5, "home")
    assert exc_info.value.message == "Minimum bet is 10 biscuits"

    with pytest.raises(ValidationFailedError):
        await ledger.place_bet("user_1", str(game["_id"]), 12.5, "home")
    assert db.bets.all() == []


@pytest.mark.asyncio
async def test_write_conflict_surfaces_as_concurrency_conflict_and_rolls_back(ledger, db, seed_user, seed_game):
    user = seed_user()
    game = seed_game()
    db.inject_write_conflict("games")

    with pytest.raises(ConcurrencyConflictError):
        await ledger.place_bet("user_1", str(game["_id"]), 500, "home")

    assert db.users.get(user["_id"])["biscuits"] == 1000
    assert db.users.get(user["_id"])["total_bets"] == 0
    assert db.bets.all() == []
    assert db.games.get(game["_id"])["odds_version"] == 0
    assert db.aborts == 1


@pytest.mark.asyncio
async def test_failure_after_bet_insert_leaves_no_partial_state(ledger, db, seed_user, seed_game):
    user = seed_user()
    game = seed_game()
    db.inject_write_conflict("biscuit_transactions")

    with pytest.raises(ConcurrencyConflictError):
        await ledger.place_bet("user_1", str(game["_id"]), 500, "home")

    assert db.users.get(user["_id"])["biscuits"] == 1000
    assert db.bets.all() == []
    stored = db.games.get(game["_id"])
    assert stored["home_biscuits_wagered"] == 0
    assert stored["total_bets_placed"] == 0


@pytest.mark.asyncio
async def test_retry_recovers_from_transient_conflict(ledger, db, seed_user, seed_game):
    user = seed_user()
    game = seed_game()
    db.inject_write_conflict("games")

    placement = await place_bet_with_retry(ledger, "user_1", str(game["_id"]), 500, "home")

    assert placement.user.biscuits == 500
    assert db.users.get(user["_id"])["biscuits"] == 500
    assert len(db.bets.all()) == 1


@pytest.mark.asyncio
async def test_retry_gives_up_after_max_attempts(ledger, db, seed_user, seed_game):
    seed_user()
    game = seed_game()
    db.inject_write_conflict("users", times=3)

    with pytest.raises(ConcurrencyConflictError):
        await place_bet_with_retry(ledger, "user_1", str(game["_id"]), 500, "home", max_attempts=3)
    assert db.bets.all() == []


@pytest.mark.asyncio
async def test_retry_does_not_repeat_final_errors(ledger, seed_user, seed_game):
    seed_user(biscuits=50)
    game = seed_game()
    calls = {"n": 0}
    original = ledger.place_bet

    async def counting(*args, **kwargs):
        calls["n"] += 1
        return await original(*args, **kwargs)

    ledger.place_bet = counting
    with pytest.raises(InsufficientFundsError):
        await place_bet_with_retry(ledger, "user_1", str(game["_id"]), 100, "home")
    assert calls["n"] == 1
