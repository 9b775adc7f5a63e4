"""Expire trade proposals nobody answered.

Run from a scheduler: ``python -m sweep``.
"""
import asyncio
import logging
from datetime import timedelta

from log_config import setup_logging

logger = logging.getLogger(__name__)


async def run_sweep(engine, ttl_hours: int):
    expired = await engine.trades.expire_stale(timedelta(hours=ttl_hours))
    logger.info("Expired %d stale trade proposals", len(expired))
    await engine.shutdown()
    return expired


async def main():
    from dataBase import db, TRADE_PROPOSAL_TTL_HOURS
    from services import build_mongo_engine

    setup_logging()
    await run_sweep(build_mongo_engine(db), TRADE_PROPOSAL_TTL_HOURS)


if __name__ == "__main__":
    asyncio.run(main())
