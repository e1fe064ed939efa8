import logging
from typing import Any, Optional

import httpx

from huskybids.config import settings
from huskybids.errors import FeedUnavailableError
from huskybids.models.game import GameFeedUpdate, GameStatus
from huskybids.providers.http_client import ResilientClient
from huskybids.utils import parse_utc

logger = logging.getLogger("huskybids.espn")

ESPN_STATUS_MAP = {
    "STATUS_SCHEDULED": GameStatus.scheduled,
    "STATUS_IN_PROGRESS": GameStatus.live,
    "STATUS_HALFTIME": GameStatus.live,
    "STATUS_END_PERIOD": GameStatus.live,
    "STATUS_DELAYED": GameStatus.live,
    "STATUS_FINAL": GameStatus.completed,
    "STATUS_POSTPONED": GameStatus.postponed,
    "STATUS_CANCELED": GameStatus.cancelled,
    "STATUS_CANCELLED": GameStatus.cancelled,
}


def map_status(espn_status: Optional[str]) -> GameStatus:
    """ESPN status name to a game status; unknown names count as scheduled."""
    return ESPN_STATUS_MAP.get(espn_status or "", GameStatus.scheduled)


def _score(competitor: dict) -> int:
    # Scoreboard payloads carry "24", schedule payloads {"value": 24.0, "displayValue": "24"}
    raw = competitor.get("score")
    if isinstance(raw, dict):
        raw = raw.get("value", raw.get("displayValue"))
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return 0


def parse_event(event: dict[str, Any], sport: str) -> Optional[GameFeedUpdate]:
    """Normalize one ESPN event. Returns None for events missing teams or a date."""
    competitions = event.get("competitions") or []
    if not competitions or not event.get("id") or not event.get("date"):
        return None
    comp = competitions[0]

    competitors = comp.get("competitors") or []
    home = next((c for c in competitors if c.get("homeAway") == "home"), None)
    away = next((c for c in competitors if c.get("homeAway") == "away"), None)
    if home is None or away is None:
        return None

    status_type = (comp.get("status") or event.get("status") or {}).get("type", {})
    season = event.get("season") or {}

    return GameFeedUpdate(
        api_game_id=str(event["id"]),
        sport=sport,
        home_team=home.get("team", {}).get("displayName") or "Unknown",
        away_team=away.get("team", {}).get("displayName") or "Unknown",
        game_date=parse_utc(event["date"]),
        status=map_status(status_type.get("name")),
        home_score=_score(home),
        away_score=_score(away),
        venue=(comp.get("venue") or {}).get("fullName"),
        season=str(season["year"]) if season.get("year") else None,
    )


class ESPNProvider:
    """ESPN public team-schedule API (no key) for the configured team."""

    def __init__(self, client: Optional[ResilientClient] = None):
        self._client = client or ResilientClient("espn")

    async def get_team_schedule(self, sport: str, season: Optional[str] = None) -> list[GameFeedUpdate]:
        path = settings.espn_sport_paths.get(sport)
        if not path:
            logger.warning("ESPN: no path configured for sport %s", sport)
            return []

        params = {"season": season} if season else {}
        resp = await self._client.get(
            f"{settings.ESPN_BASE_URL}/{path}/teams/{settings.ESPN_TEAM_ID}/schedule",
            params=params,
        )
        try:
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPStatusError, ValueError) as exc:
            raise FeedUnavailableError(f"ESPN schedule for {sport}: {exc}") from exc

        games = []
        for event in data.get("events", []):
            update = parse_event(event, sport)
            if update is None:
                logger.debug("ESPN: skipping malformed event %s", event.get("id"))
                continue
            games.append(update)

        logger.info("ESPN: %d %s games in schedule", len(games), sport)
        return games

    async def aclose(self) -> None:
        await self._client.aclose()
