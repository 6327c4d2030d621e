"""
pullquest.scheduler — Periodic Refill Trigger
==============================================

Background asyncio task that wakes every ``refill_check_interval_seconds``
and runs :func:`monthly_refill` on a worker thread.  The refill claims its
calendar month in the database, so ticking more often than monthly is
harmless: every tick after the first in a month is a no-op.

Any exception is logged and the loop keeps running.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from pullquest.database.engine import run_db
from pullquest.services.refill_service import RefillResult, monthly_refill

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from pullquest.config import PullQuestConfig

logger = logging.getLogger(__name__)


class RefillScheduler:
    """Owns the refill loop task; start it from the app lifespan."""

    def __init__(self, engine: Engine, config: PullQuestConfig) -> None:
        self.engine = engine
        self.config = config
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> RefillResult | None:
        """Run one refill check.  Returns None if it failed."""
        try:
            return await run_db(
                monthly_refill, self.engine, self.config.monthly_refill_coins
            )
        except Exception:
            logger.exception("Monthly refill run failed")
            return None

    async def _loop(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.config.refill_check_interval_seconds)

    def start(self) -> None:
        """Start the background loop (idempotent)."""
        if self.running:
            return
        if not self.config.refill_enabled:
            logger.info("Monthly refill scheduler disabled by config")
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info(
            "Monthly refill scheduler started (every %ds)",
            self.config.refill_check_interval_seconds,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Monthly refill scheduler stopped")
