"""
backend/huskybids/main.py

Purpose:
    FastAPI application bootstrap: connection lifecycle, scheduler for the
    game sync and settlement workers, middleware/router wiring and the
    mapping of core errors onto HTTP responses.

Dependencies:
    - huskybids.database
    - huskybids.workers.game_sync
    - huskybids.workers.settlement_sweeper
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from huskybids.config import settings
from huskybids.database import MongoConnection
from huskybids.errors import HuskyBidsError, PersistenceError
from huskybids.middleware.logging import StructuredLoggingMiddleware, setup_logging
from huskybids.routers.bets import router as bets_router
from huskybids.routers.games import router as games_router
from huskybids.routers.leaderboard import router as leaderboard_router
from huskybids.routers.rewards import router as rewards_router
from huskybids.routers.settlement import router as settlement_router
from huskybids.routers.user import router as user_router
from huskybids.workers.game_sync import sync_games
from huskybids.workers.settlement_sweeper import sweep_settlements

logger = logging.getLogger("huskybids")


def _register_jobs(scheduler: AsyncIOScheduler, mongo: MongoConnection) -> None:
    scheduler.add_job(
        sync_games, "interval", args=[mongo], id="game_sync",
        minutes=settings.GAME_SYNC_INTERVAL_MINUTES, replace_existing=True,
    )
    scheduler.add_job(
        sweep_settlements, "interval", args=[mongo], id="settlement_sweeper",
        minutes=settings.SETTLEMENT_INTERVAL_MINUTES, replace_existing=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    mongo = MongoConnection()
    await mongo.connect()
    app.state.mongo = mongo

    scheduler = AsyncIOScheduler()
    if settings.AUTOMATION_ENABLED:
        _register_jobs(scheduler, mongo)
        scheduler.start()
        logger.info(
            "Workers scheduled: game sync every %d min, settlement every %d min",
            settings.GAME_SYNC_INTERVAL_MINUTES, settings.SETTLEMENT_INTERVAL_MINUTES,
        )
    else:
        logger.info("Automated workers disabled (AUTOMATION_ENABLED=false)")

    yield

    if scheduler.running:
        scheduler.shutdown(wait=False)
    await mongo.close()


app = FastAPI(
    title="HuskyBids",
    description="Virtual biscuit betting on Washington Huskies games",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

app.include_router(bets_router)
app.include_router(games_router)
app.include_router(settlement_router)
app.include_router(user_router)
app.include_router(rewards_router)
app.include_router(leaderboard_router)


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(HuskyBidsError)
async def huskybids_error_handler(request: Request, exc: HuskyBidsError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean validation errors without leaking internal field paths."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        # Strip the "body" / "query" prefix for cleaner messages
        field = ".".join(str(l) for l in loc[1:]) if len(loc) > 1 else str(loc[-1]) if loc else "unknown"
        errors.append({"field": field, "message": err.get("msg", "Invalid value.")})
    return JSONResponse(status_code=422, content={"detail": "Validation error.", "errors": errors})


@app.exception_handler(ServerSelectionTimeoutError)
async def db_timeout_handler(request: Request, exc: ServerSelectionTimeoutError):
    logger.error("Database timeout: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(ConnectionFailure)
async def db_connection_handler(request: Request, exc: ConnectionFailure):
    logger.error("Database connection failure: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all: log the real error, return a safe generic message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.get("/health")
async def health(request: Request):
    """Health check -- verifies the DB connection."""
    db_ok = await request.app.state.mongo.ping()
    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
    }
