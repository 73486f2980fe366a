"""
Recurring retention sweep.

Each sweep:
1. Purges compilation records (and their files) older than the record age
2. Evicts registry jobs created before the staleness window, whatever their
   status. An abandoned job's last known state disappears with it.

start() runs one sweep immediately and then one per interval. Calling it
twice schedules two independent loops.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from ..persistence.records import CompilationRecordStore
from .registry import JobRegistry

logger = logging.getLogger(__name__)


class CleanupScheduler:
    """Background sweeper for records and stale jobs."""
    
    def __init__(
        self,
        records: CompilationRecordStore,
        registry: JobRegistry,
        record_max_age: timedelta = timedelta(days=7),
        stale_job_age: timedelta = timedelta(hours=24),
    ):
        self._records = records
        self._registry = registry
        self.record_max_age = record_max_age
        self.stale_job_age = stale_job_age
        self._tasks: List[asyncio.Task] = []
    
    async def sweep(self, record_max_age: Optional[timedelta] = None) -> int:
        """
        Run one sweep.
        
        Args:
            record_max_age: Override for the record age threshold
            
        Returns:
            Number of records purged
        """
        age = record_max_age if record_max_age is not None else self.record_max_age
        purged = await self._records.purge_older_than(age)
        evicted = self._registry.remove_created_before(datetime.now() - self.stale_job_age)
        logger.info(f"[Cleanup] Sweep done: {purged} record(s) purged, {evicted} job(s) evicted")
        return purged
    
    def start(self, interval_hours: float = 24) -> asyncio.Task:
        """
        Schedule the recurring sweep on the running loop.
        
        Args:
            interval_hours: Hours between sweeps
            
        Returns:
            The background task
        """
        interval = interval_hours * 3600
        task = asyncio.get_running_loop().create_task(self._loop(interval))
        self._tasks.append(task)
        logger.info(f"[Cleanup] Scheduled every {interval_hours}h")
        return task
    
    @property
    def running(self) -> int:
        """Number of live sweep loops."""
        return sum(1 for task in self._tasks if not task.done())
    
    async def stop(self) -> None:
        """Cancel every scheduled loop and wait for them to finish."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    
    async def _loop(self, interval_seconds: float) -> None:
        while True:
            try:
                await self.sweep()
            except Exception as e:
                logger.warning(f"[Cleanup] Sweep failed: {e}")
            await asyncio.sleep(interval_seconds)
