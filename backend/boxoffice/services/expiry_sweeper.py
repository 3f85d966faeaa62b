"""
Expiry sweeper: returns inventory from holds that lapsed without a
commit or release.

Each pass selects active holds with expires_at <= now (served by the
ix_holds_status_expires_at index) and expires them one by one through
the ledger's guarded active -> expired transition, each in its own
transaction. A hold that was committed or released in the meantime is
simply skipped, so the sweeper can race checkout flows, explicit
cancels, and other sweeper instances without double-releasing.

The sweeper keeps no state between passes: expiry is derived from the
stored timestamp, so a crash or restart just resumes scanning.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_sweep, sweep_duration, sweep_runs
from boxoffice.db.types import utcnow
from boxoffice.models.hold import Hold, HoldStatus
from boxoffice.services import ledger_service
from boxoffice.services.cache_service import invalidate_availability
from boxoffice.services.ledger_service import ReservationToken

logger = get_logger(__name__)


@dataclass
class SweepResult:
    scanned: int = 0
    expired: int = 0
    skipped: int = 0
    failed: int = 0


class ExpirySweeper:
    """Periodic background task with an explicit start/stop lifecycle."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        interval_seconds: float = 30.0,
        batch_size: int = 500,
    ) -> None:
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self._task: asyncio.Task | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _find_lapsed(self, now: datetime) -> list[ReservationToken]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Hold.id, Hold.ticket_type_id, Hold.quantity)
                .where(Hold.status == HoldStatus.ACTIVE.value, Hold.expires_at <= now)
                .order_by(Hold.expires_at.asc())
                .limit(self.batch_size)
            )
            return [
                ReservationToken(hold_id=row.id, ticket_type_id=row.ticket_type_id, quantity=row.quantity)
                for row in result.all()
            ]

    async def _expire(self, token: ReservationToken, now: datetime) -> bool:
        async with self._session_factory() as db:
            try:
                applied = await ledger_service.release(db, token, status=HoldStatus.EXPIRED, now=now)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        return applied

    async def sweep_once(self, now: datetime | None = None) -> SweepResult:
        """Run one pass. Per-hold failures are logged and do not abort the pass."""
        now = now or utcnow()
        started = time.perf_counter()
        result = SweepResult()
        touched: set[int] = set()

        tokens = await self._find_lapsed(now)
        result.scanned = len(tokens)

        for token in tokens:
            try:
                applied = await self._expire(token, now)
            except Exception:
                result.failed += 1
                logger.exception("sweep_hold_failed", hold_id=token.hold_id)
                continue

            if applied:
                result.expired += 1
                if token.ticket_type_id is not None:
                    touched.add(token.ticket_type_id)
            else:
                result.skipped += 1

        if touched:
            await invalidate_availability(touched)

        sweep_duration.observe(time.perf_counter() - started)
        record_sweep(result.expired, result.skipped, result.failed)
        if result.scanned:
            logger.info(
                "sweep_completed",
                scanned=result.scanned,
                expired=result.expired,
                skipped=result.skipped,
                failed=result.failed,
            )
        return result

    async def _run(self) -> None:
        logger.info("sweeper_started", interval_seconds=self.interval_seconds, batch_size=self.batch_size)
        while not self._stopping.is_set():
            try:
                await self.sweep_once()
                sweep_runs.labels(result="ok").inc()
            except Exception:
                sweep_runs.labels(result="error").inc()
                logger.exception("sweep_pass_failed")

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("sweeper_stopped")

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._run(), name="hold-expiry-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        try:
            await asyncio.wait_for(self._task, timeout=self.interval_seconds + 5)
        except asyncio.TimeoutError:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
