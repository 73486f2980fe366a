"""
In-memory job registry.

The registry is the only owner of CompilationJob state for the lifetime
of the process. Nothing is persisted; job ids from before a restart are
unknown afterwards.

Callers read copies and change state only through update(), which
validates the status transition and keeps progress from moving backwards.
All operations run on the single event-loop thread, so no lock is held.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .errors import DuplicateJobError, JobNotFoundError
from .models import CompilationJob, JobStatus
from .state import validate_job_transition

logger = logging.getLogger(__name__)

# Fields fixed at submission time
_IMMUTABLE_FIELDS = ("id", "user_id", "clip_ids", "created_at")


class JobRegistry:
    """
    In-memory registry for compilation jobs, keyed by job id.
    """
    
    def __init__(self):
        # job_id -> CompilationJob
        self._jobs: Dict[str, CompilationJob] = {}
    
    def create(self, job: CompilationJob) -> CompilationJob:
        """
        Add a new job to the registry.
        
        Args:
            job: The job to add
            
        Returns:
            A copy of the stored job
            
        Raises:
            DuplicateJobError: If a job with the same ID already exists
        """
        if job.id in self._jobs:
            raise DuplicateJobError(job.id)
        
        self._jobs[job.id] = job.model_copy(deep=True)
        logger.debug(f"[Registry] Created job {job.id} for user {job.user_id}")
        return job.model_copy(deep=True)
    
    def get(self, job_id: str) -> Optional[CompilationJob]:
        """
        Retrieve a job by ID.
        
        Returns:
            A copy of the job if found, None otherwise
        """
        job = self._jobs.get(job_id)
        if job is None:
            return None
        return job.model_copy(deep=True)
    
    def list_by_user(self, user_id: str) -> List[CompilationJob]:
        """
        List all jobs for a user, newest first.
        """
        jobs = [job for job in self._jobs.values() if job.user_id == user_id]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return [job.model_copy(deep=True) for job in jobs]
    
    def update(
        self,
        job_id: str,
        mutator: Callable[[CompilationJob], None],
    ) -> CompilationJob:
        """
        Apply a state change to a job.
        
        The mutator receives a working copy. The change is committed only if
        the resulting status is a legal transition from the current one.
        A lower progress value than the stored one is ignored.
        
        Args:
            job_id: The job to update
            mutator: Callable that edits the working copy in place
            
        Returns:
            A copy of the updated job
            
        Raises:
            JobNotFoundError: If the job does not exist
            InvalidStateTransitionError: If the status change is illegal
            ValueError: If the mutator touched an immutable field
        """
        current = self._jobs.get(job_id)
        if current is None:
            raise JobNotFoundError(job_id)
        
        working = current.model_copy(deep=True)
        mutator(working)
        
        for field_name in _IMMUTABLE_FIELDS:
            if getattr(working, field_name) != getattr(current, field_name):
                raise ValueError(f"Job field '{field_name}' cannot be modified")
        
        validate_job_transition(current.status, working.status)
        
        if working.progress < current.progress:
            working.progress = current.progress
        
        self._jobs[job_id] = working
        
        if working.status != current.status:
            logger.info(
                f"[Registry] Job {job_id}: {current.status.value} -> {working.status.value}"
            )
        return working.model_copy(deep=True)
    
    def count_active(self) -> int:
        """Number of jobs currently holding DOWNLOADING or PROCESSING."""
        return sum(1 for job in self._jobs.values() if job.is_active)
    
    def count_by_status(self, status: JobStatus) -> int:
        """Number of jobs in the given status."""
        return sum(1 for job in self._jobs.values() if job.status == status)
    
    def remove_created_before(self, cutoff: datetime) -> int:
        """
        Evict every job created before cutoff, regardless of status.
        
        Returns:
            Number of jobs evicted
        """
        stale_ids = [
            job_id for job_id, job in self._jobs.items() if job.created_at < cutoff
        ]
        for job_id in stale_ids:
            del self._jobs[job_id]
        
        if stale_ids:
            logger.info(f"[Registry] Evicted {len(stale_ids)} stale job(s)")
        return len(stale_ids)
    
    def count(self) -> int:
        """Get the total number of jobs in the registry."""
        return len(self._jobs)
