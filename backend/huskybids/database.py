"""
backend/huskybids/database.py

Purpose:
    MongoDB connection object with an explicit lifecycle (connect at process
    start, close on shutdown), transaction helper and index management.
    The connection is created in the FastAPI lifespan and handed to services;
    there is no module-level client.

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - huskybids.config
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from huskybids.config import settings
from huskybids.errors import ConcurrencyConflictError, PersistenceError

logger = logging.getLogger("huskybids.database")


def translate_mongo_error(exc: PyMongoError) -> Exception:
    """Map a driver error onto the core taxonomy.

    Write conflicts inside a transaction carry the TransientTransactionError
    label and are retryable by the caller; everything else is a storage failure.
    """
    if exc.has_error_label("TransientTransactionError"):
        return ConcurrencyConflictError(str(exc))
    return PersistenceError(str(exc))


class MongoConnection:
    """Owns the motor client and database handle for one process."""

    def __init__(self, uri: str | None = None, db_name: str | None = None, client=None):
        self._uri = uri or settings.MONGO_URI
        self._db_name = db_name or settings.MONGO_DB
        self.client: AsyncIOMotorClient | None = client
        self.db: AsyncIOMotorDatabase | None = client[self._db_name] if client is not None else None

    async def connect(self) -> None:
        if self.client is None:
            self.client = AsyncIOMotorClient(
                self._uri,
                maxPoolSize=25,
                minPoolSize=5,
            )
            self.db = self.client[self._db_name]
        await self.ensure_indexes()
        logger.info("Connected to MongoDB database %s", self._db_name)

    async def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
            self.db = None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator:
        """Run the enclosed block as one multi-document transaction.

        Commits on normal exit, aborts on any exception. Driver errors are
        translated; domain errors raised by the block propagate unchanged.
        """
        try:
            async with await self.client.start_session() as session:
                async with session.start_transaction():
                    yield session
        except PyMongoError as exc:
            raise translate_mongo_error(exc) from exc

    async def ping(self) -> bool:
        try:
            result = await self.db.command("ping")
        except PyMongoError:
            return False
        return result.get("ok") == 1.0

    async def ensure_indexes(self) -> None:
        """Create indexes on startup. Idempotent, safe to run repeatedly."""
        db = self.db

        # ---- Users ----
        await db.users.create_index("clerk_id", unique=True)
        await db.users.create_index([("biscuits", DESCENDING)])
        await db.users.create_index([("is_active", ASCENDING), ("is_banned", ASCENDING)])

        # ---- Games ----
        await db.games.create_index("api_game_id", unique=True, sparse=True)
        await db.games.create_index([("status", ASCENDING), ("game_date", ASCENDING)])
        await db.games.create_index([("status", ASCENDING), ("winner", ASCENDING)])

        # ---- Bets ----
        await db.bets.create_index([("game_id", ASCENDING), ("status", ASCENDING)])
        await db.bets.create_index([("user_id", ASCENDING), ("placed_at", DESCENDING)])
        await db.bets.create_index([("user_id", ASCENDING), ("status", ASCENDING)])
        await db.bets.create_index("settled_at", sparse=True)

        # ---- Biscuit transactions (audit trail) ----
        await db.biscuit_transactions.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
        await db.biscuit_transactions.create_index("reference_id", sparse=True)


def get_mongo(request: Request) -> MongoConnection:
    """FastAPI dependency: the process-wide connection created in the lifespan."""
    return request.app.state.mongo
