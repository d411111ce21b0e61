"""
Periodically refreshed snapshot of the hub's load.
"""
import asyncio
import logging
import os
from typing import Optional

from ..db.repository import PresenceRepository
from ..db.schemas import SystemInfoDto

logger = logging.getLogger(__name__)


class SystemInfoService:
    """Owns the current SystemInfoDto; readers only ever see a finished one."""

    def __init__(self, repository: PresenceRepository,
                 refresh_seconds: float = 15.0):
        self.repository = repository
        self.refresh_seconds = refresh_seconds
        self._snapshot = SystemInfoDto()
        self._task: Optional[asyncio.Task] = None

    @property
    def snapshot(self) -> SystemInfoDto:
        return self._snapshot

    async def refresh(self) -> SystemInfoDto:
        online_users = await self.repository.count_online()
        self._snapshot = SystemInfoDto(
            cpu_usage=self._cpu_usage(),
            online_users=online_users,
        )
        return self._snapshot

    @staticmethod
    def _cpu_usage() -> float:
        try:
            load, _, _ = os.getloadavg()
        except OSError:
            return 0.0
        return round(load / (os.cpu_count() or 1), 2)

    async def start(self) -> None:
        if self._task is not None:
            logger.warning("System info refresher already running")
            return
        self._task = asyncio.create_task(self._run())
        logger.info("System info refresher started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("System info refresher stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.refresh()
            except Exception as e:
                logger.error(f"Failed to refresh system info: {e}")
            await asyncio.sleep(self.refresh_seconds)
