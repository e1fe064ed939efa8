"""
backend/huskybids/services/odds_engine.py

Purpose:
    Pure odds math for parimutuel-style biscuit markets. Maps a game's betting
    distribution (bet counts and biscuits per side) to decimal odds, and
    derives payouts, profit, house edge and display strings.

    Nothing here touches storage. The same input always yields the same odds,
    so a bet's odds snapshot can be reproduced from the aggregates it saw.

Dependencies:
    - decimal (cent-level half-up rounding)
    - huskybids.config
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from huskybids.config import settings
from huskybids.models.game import GameOdds

DEFAULT_ODDS = settings.DEFAULT_ODDS
MIN_ODDS = settings.MIN_ODDS
MAX_ODDS = settings.MAX_ODDS
BISCUIT_WEIGHT = settings.BISCUIT_WEIGHT
BET_COUNT_WEIGHT = settings.BET_COUNT_WEIGHT
HOUSE_EDGE_FACTOR = settings.HOUSE_EDGE_FACTOR

_CENT = Decimal("0.01")
_UNIT = Decimal("1")


def round_half_up(value: float, places: int = 2) -> float:
    """Round half away from zero (1.005 -> 1.01, 2.675 -> 2.68).

    Goes through the shortest decimal repr so binary float noise does not
    decide the direction.
    """
    quantum = _CENT if places == 2 else Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _clamp(odds: float) -> float:
    return max(MIN_ODDS, min(MAX_ODDS, odds))


def compute_odds(
    home_bets: int = 0,
    away_bets: int = 0,
    home_biscuits: int = 0,
    away_biscuits: int = 0,
) -> GameOdds:
    """Odds for both sides from the current betting distribution.

    - no bets at all: default pair
    - only one side has bets: that side gets MIN_ODDS, the empty side MAX_ODDS
    - otherwise: weight = 0.7 * biscuit share + 0.3 * bet-count share,
      odds = 0.95 / weight, clamped to [MIN_ODDS, MAX_ODDS], rounded to cents
    """
    if home_bets == 0 and away_bets == 0:
        return GameOdds(home_odds=DEFAULT_ODDS, away_odds=DEFAULT_ODDS)

    if home_bets == 0:
        return GameOdds(home_odds=MAX_ODDS, away_odds=MIN_ODDS)
    if away_bets == 0:
        return GameOdds(home_odds=MIN_ODDS, away_odds=MAX_ODDS)

    total_bets = home_bets + away_bets
    total_biscuits = home_biscuits + away_biscuits

    home_count_share = home_bets / total_bets
    away_count_share = away_bets / total_bets

    if total_biscuits > 0:
        home_biscuit_share = home_biscuits / total_biscuits
        away_biscuit_share = away_biscuits / total_biscuits
    else:
        home_biscuit_share = away_biscuit_share = 0.5

    home_weight = BISCUIT_WEIGHT * home_biscuit_share + BET_COUNT_WEIGHT * home_count_share
    away_weight = BISCUIT_WEIGHT * away_biscuit_share + BET_COUNT_WEIGHT * away_count_share

    home_odds = _clamp(HOUSE_EDGE_FACTOR / home_weight)
    away_odds = _clamp(HOUSE_EDGE_FACTOR / away_weight)

    return GameOdds(
        home_odds=round_half_up(home_odds),
        away_odds=round_half_up(away_odds),
    )


def compute_game_odds(game: dict) -> GameOdds:
    """compute_odds over a stored game document's aggregates."""
    return compute_odds(
        game.get("home_bets", 0) or 0,
        game.get("away_bets", 0) or 0,
        game.get("home_biscuits_wagered", 0) or 0,
        game.get("away_biscuits_wagered", 0) or 0,
    )


def odds_for_side(odds: GameOdds, side: str) -> float:
    return odds.home_odds if side == "home" else odds.away_odds


def payout(bet_amount: int, odds: float) -> int:
    """Total payout on a win, stake included: round(bet_amount * odds)."""
    product = Decimal(repr(bet_amount)) * Decimal(repr(odds))
    return int(product.quantize(_UNIT, rounding=ROUND_HALF_UP))


def profit(bet_amount: int, odds: float) -> int:
    return payout(bet_amount, odds) - bet_amount


def implied_house_edge(home_odds: float, away_odds: float) -> float:
    """Percentage by which the implied probabilities exceed 100%."""
    implied = 1 / home_odds + 1 / away_odds
    return round_half_up((implied - 1) * 100)


def format_odds(odds: float, fmt: str = "multiplier") -> str:
    """Display string: "2.50x" (multiplier) or "+150" / "-200" (american)."""
    if fmt == "american":
        if odds >= 2.0:
            return f"+{int(round_half_up((odds - 1) * 100, 0))}"
        return f"{int(round_half_up(-100 / (odds - 1), 0))}"
    return f"{odds:.2f}x"
