"""
Job progress tracking.

Progress is advisory, for display only. The value is kept on the job and
moves through fixed phase boundaries:

    0 ──── downloads ──── 40 ──── engine markers ──── 95 ── 100
                                                        (success only)

Download progress is linear in completed clips. During processing each
recognized engine marker nudges the value up by a fixed step, capped
below 100 so only confirmed success reports completion.
"""

import logging

from .errors import JobNotFoundError
from .models import CompilationJob, JobStatus
from .registry import JobRegistry

logger = logging.getLogger(__name__)


DOWNLOAD_PHASE_END = 40
PROCESSING_CAP = 95
COMPLETE = 100
MARKER_INCREMENT = 5


def download_progress(completed: int, total: int) -> int:
    """
    Map completed-clip count onto 0..DOWNLOAD_PHASE_END.
    
    Skipped clips count as completed; the phase is over either way.
    """
    if total <= 0:
        return DOWNLOAD_PHASE_END
    completed = max(0, min(completed, total))
    return (completed * DOWNLOAD_PHASE_END) // total


def nudge_processing(current: int) -> int:
    """Next processing-phase value after one engine marker."""
    base = max(current, DOWNLOAD_PHASE_END)
    return min(PROCESSING_CAP, base + MARKER_INCREMENT)


class ProgressTracker:
    """
    Writes progress for one job through the registry.
    
    Every write goes through JobRegistry.update, which ignores values
    lower than the stored one, so callers never move progress backwards.
    Phase writes for a job that is no longer registered are dropped;
    complete() still raises JobNotFoundError so the caller can tell.
    """
    
    def __init__(self, registry: JobRegistry, job_id: str):
        self._registry = registry
        self._job_id = job_id
    
    def _set(self, value: int) -> int:
        def apply(job: CompilationJob) -> None:
            job.progress = value
        
        try:
            return self._registry.update(self._job_id, apply).progress
        except JobNotFoundError:
            logger.debug(f"[Progress] Job {self._job_id} no longer registered")
            return value
    
    def clip_finished(self, completed: int, total: int) -> int:
        """Record that `completed` of `total` clips have been handled."""
        return self._set(download_progress(completed, total))
    
    def processing_started(self) -> int:
        """Jump to the processing-phase floor."""
        return self._set(DOWNLOAD_PHASE_END)
    
    def marker(self) -> int:
        """Record one recognized engine progress marker."""
        job = self._registry.get(self._job_id)
        current = job.progress if job else DOWNLOAD_PHASE_END
        return self._set(nudge_processing(current))
    
    def complete(self, output_path: str) -> CompilationJob:
        """
        Move the job to DONE at 100 with its output path, in one update.
        
        Call only once the output is confirmed.
        
        Raises:
            JobNotFoundError: If the job was evicted while running
        """
        def apply(job: CompilationJob) -> None:
            job.status = JobStatus.DONE
            job.output_path = output_path
            job.progress = COMPLETE
        
        return self._registry.update(self._job_id, apply)
