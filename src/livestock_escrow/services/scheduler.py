"""Background auto-release scheduler.

Runs the escrow auto-release sweep every ``auto_release_interval_seconds`` in
its own session and transaction. Started and stopped by the FastAPI lifespan.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from livestock_escrow.logging_config import get_logger
from livestock_escrow.services.escrow_service import EscrowService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from livestock_escrow.config import Settings
    from livestock_escrow.services.base import Clock

logger = get_logger(__name__)


class AutoReleaseScheduler:
    """Periodic driver for EscrowService.run_auto_release."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings
        self._clock = clock
        self._interval = float(settings.auto_release_interval_seconds)
        self._task: asyncio.Task | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> list[int]:
        """Run a single sweep in a fresh transaction and return the released ids."""
        async with self._session_factory() as session:
            try:
                service = EscrowService(session, settings=self._settings, clock=self._clock)
                released = await service.run_auto_release()
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        return released

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("scheduler.sweep_failed")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval)
            except TimeoutError:
                continue

    def start(self) -> None:
        if self.running:
            logger.warning("scheduler.already_running")
            return
        self._stopping.clear()
        self._task = asyncio.get_running_loop().create_task(
            self._loop(), name="auto-release-scheduler"
        )
        logger.info("scheduler.started", interval_seconds=self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        try:
            await asyncio.wait_for(self._task, timeout=self._interval + 5)
        except TimeoutError:
            self._task.cancel()
        self._task = None
        logger.info("scheduler.stopped")
