"""FastAPI providers for the core services, built on the lifespan's connection."""

from fastapi import Depends

from huskybids.database import MongoConnection, get_mongo
from huskybids.services.betting_ledger import BettingLedger
from huskybids.services.game_service import GameService
from huskybids.services.settlement_engine import SettlementEngine
from huskybids.services.statistics_service import StatisticsAggregator


def get_ledger(mongo: MongoConnection = Depends(get_mongo)) -> BettingLedger:
    return BettingLedger(mongo)


def get_settlement_engine(mongo: MongoConnection = Depends(get_mongo)) -> SettlementEngine:
    return SettlementEngine(mongo)


def get_statistics(mongo: MongoConnection = Depends(get_mongo)) -> StatisticsAggregator:
    return StatisticsAggregator(mongo)


def get_game_service(mongo: MongoConnection = Depends(get_mongo)) -> GameService:
    return GameService(mongo)
