"""Background sweep that expires open pokes past their deadline."""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.database import AsyncSessionLocal
from app.services.pokes import PokeService

logger = logging.getLogger(__name__)


async def run_poke_expiry_once(
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> int:
    async with session_factory() as session:
        expired = await PokeService(session).expire_old_pokes()
    if expired:
        logger.info("poke expiry sweep expired %s pokes", expired)
    return expired


async def poke_expiry_loop(
    interval_s: int | None = None,
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> None:
    """Run the sweep every ``interval_s`` seconds until cancelled."""
    interval = max(1, int(interval_s or settings.poke_expiry_interval_seconds))
    while True:
        try:
            await run_poke_expiry_once(session_factory)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("poke expiry sweep failed")
        await asyncio.sleep(interval)
