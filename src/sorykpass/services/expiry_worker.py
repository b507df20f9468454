"""
Background worker for cancelling abandoned checkouts

Seat holds free themselves through their TTL; this worker only keeps
PENDING orders from piling up and purges stores without native expiry.
"""
import asyncio
from typing import Optional
import logging

from sorykpass.core.config import settings
from sorykpass.services.orchestrator import PaymentOrchestrator

logger = logging.getLogger(__name__)


class ExpiryWorker:
    """Periodically expires abandoned orders and stale seat locks"""

    def __init__(self, orchestrator: PaymentOrchestrator, interval_seconds: Optional[int] = None):
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds or settings.EXPIRY_CHECK_INTERVAL_SECONDS
        self.running = False
        self.task = None

    async def start(self):
        """Start the background worker"""
        if self.running:
            logger.warning("⚠️  Expiry worker already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._run())
        logger.info(f"✅ Expiry worker started (interval: {self.interval_seconds}s)")

    async def stop(self):
        """Stop the background worker"""
        if not self.running:
            return

        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        logger.info("🛑 Expiry worker stopped")

    async def _run(self):
        """Main worker loop"""
        while self.running:
            try:
                await self.run_once()
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"❌ Error in expiry worker: {e}")
                await asyncio.sleep(self.interval_seconds)

    async def run_once(self) -> int:
        """One sweep. Returns the number of orders cancelled."""
        expired = await self.orchestrator.expire_abandoned_orders()
        purged = await self.orchestrator.reservations.purge_expired()
        if expired or purged:
            logger.info(f"⏰ Sweep done: {expired} orders expired, {purged} seat locks purged")
        return expired
