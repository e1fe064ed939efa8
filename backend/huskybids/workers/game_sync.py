"""Pull the team schedule from ESPN into the games collection."""

import logging
from typing import Optional

from huskybids.config import settings
from huskybids.database import MongoConnection
from huskybids.errors import FeedUnavailableError
from huskybids.providers.espn import ESPNProvider
from huskybids.services.game_service import GameService
from huskybids.workers._state import set_synced

logger = logging.getLogger("huskybids.game_sync")

STATE_KEY = "game_sync"


async def sync_games(mongo: MongoConnection, provider: Optional[ESPNProvider] = None) -> None:
    """Fetch every configured sport, upsert games and close betting on started ones.

    A feed failure for one sport does not stop the others.
    """
    own_provider = provider is None
    provider = provider or ESPNProvider()
    service = GameService(mongo)

    updates = []
    try:
        for sport in settings.espn_sport_paths:
            try:
                updates.extend(await provider.get_team_schedule(sport))
            except FeedUnavailableError as exc:
                logger.warning("ESPN sync skipped for %s: %s", sport, exc.message)
    finally:
        if own_provider:
            await provider.aclose()

    try:
        result = await service.sync_from_feed(updates)
    except Exception:
        logger.exception("Game sync failed")
        return

    logger.info(
        "Game sync: %d fetched, %d created, %d updated, %d unchanged, %d closed",
        result.fetched, result.created, result.updated, result.unchanged, result.betting_closed,
    )
    await set_synced(mongo.db, STATE_KEY, result.model_dump())
