"""Periodic expiry of abandoned checkouts.

Runs independently of any request so held inventory returns to the pool
even when a buyer never comes back to cancel.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from src.bookings.booking_service import BookingService
from src.config import settings
from src.database import SessionLocal
from src.inventory.ledger import InventoryLedger
from src.inventory.schemas import SweepResult
from src.models import utcnow

logger = logging.getLogger(__name__)


def run_sweep(db: Session, now: Optional[datetime] = None) -> SweepResult:
    """Expire overdue bookings, then release any holds left without one"""
    now = now or utcnow()

    expired_bookings = BookingService(db).expire_overdue(now=now)

    ledger = InventoryLedger(db)
    released_holds = ledger.expire_stale(now=now)
    db.commit()

    return SweepResult(expired_bookings=expired_bookings, released_holds=released_holds, ran_at=now)


class ExpirySweeper:
    """Background task calling run_sweep every few seconds"""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        interval_seconds: Optional[int] = None
    ):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.EXPIRY_SWEEP_INTERVAL_SECONDS
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Schedule the sweep loop on the running event loop"""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("Expiry sweeper started (every %ss)", self.interval_seconds)

    async def stop(self):
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Expiry sweeper stopped")

    def sweep_once(self) -> SweepResult:
        db = self.session_factory()
        try:
            return run_sweep(db)
        finally:
            db.close()

    async def _sweep_loop(self):
        while self._running:
            try:
                # Database work is blocking; keep it off the event loop
                result = await asyncio.to_thread(self.sweep_once)
                if result.expired_bookings or result.released_holds:
                    logger.info(
                        "Sweep expired %s booking(s) and released %s hold(s)",
                        result.expired_bookings, result.released_holds
                    )
            except Exception:
                logger.exception("Expiry sweep failed")

            await asyncio.sleep(self.interval_seconds)
