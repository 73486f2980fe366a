"""
Admission control for compilation jobs.

Bounds how many jobs hold an execution slot at once. A job holds its slot
from the moment downloading starts until its pipeline ends, whatever the
outcome.

Design rules:
- FIFO admission among waiting jobs
- A released slot wakes the waiters immediately
- Waiters also re-check on a fixed poll interval, so a missed wake-up
  delays admission by at most one interval
- Release happens on every exit path (success, failure, cancellation)
"""

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator, Deque, List

logger = logging.getLogger(__name__)


class AdmissionController:
    """
    Counting gate over the single event loop.
    
    All state is touched only from coroutines on that loop; the condition
    lock orders waiters and releases.
    """
    
    def __init__(self, max_concurrent: int = 2, poll_interval: float = 5.0):
        """
        Initialize the controller.
        
        Args:
            max_concurrent: Maximum jobs holding a slot at once
            poll_interval: Seconds between availability re-checks while waiting
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        
        self.max_concurrent = max_concurrent
        self.poll_interval = poll_interval
        self._active = 0
        self._waiting: Deque[str] = deque()
        self._condition = asyncio.Condition()
    
    @property
    def active_count(self) -> int:
        """Jobs currently holding a slot."""
        return self._active
    
    @property
    def is_busy(self) -> bool:
        """Check if every slot is taken."""
        return self._active >= self.max_concurrent
    
    def get_waiting_job_ids(self) -> List[str]:
        """Waiting job ids in admission order."""
        return list(self._waiting)
    
    def _can_admit(self, job_id: str) -> bool:
        return (
            self._active < self.max_concurrent
            and bool(self._waiting)
            and self._waiting[0] == job_id
        )
    
    async def acquire(self, job_id: str) -> None:
        """
        Wait until this job may take a slot, then take it.
        
        Args:
            job_id: The job requesting admission
        """
        async with self._condition:
            self._waiting.append(job_id)
            logger.info(
                f"[Admission] Job {job_id} waiting at position {len(self._waiting)}"
            )
            try:
                while not self._can_admit(job_id):
                    try:
                        await asyncio.wait_for(
                            self._condition.wait(), timeout=self.poll_interval
                        )
                    except asyncio.TimeoutError:
                        pass
            except BaseException:
                # Cancelled while waiting: give up our place in line
                if job_id in self._waiting:
                    self._waiting.remove(job_id)
                self._condition.notify_all()
                raise
            
            self._waiting.popleft()
            self._active += 1
            logger.info(
                f"[Admission] Job {job_id} admitted ({self._active}/{self.max_concurrent} active)"
            )
            # The next waiter may also fit
            self._condition.notify_all()
    
    async def release(self, job_id: str) -> None:
        """
        Give back a slot and wake waiting jobs.
        
        Args:
            job_id: The job releasing its slot
        """
        self._active = max(0, self._active - 1)
        logger.info(
            f"[Admission] Job {job_id} released slot ({self._active}/{self.max_concurrent} active)"
        )
        async with self._condition:
            self._condition.notify_all()
    
    @asynccontextmanager
    async def slot(self, job_id: str) -> AsyncIterator[None]:
        """
        Hold a slot for the duration of the block.
        
        Usage:
            async with admission.slot(job.id):
                await run_pipeline(job)
        """
        await self.acquire(job_id)
        try:
            yield
        finally:
            await self.release(job_id)
