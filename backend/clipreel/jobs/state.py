"""
State transition validation for compilation jobs.

Job lifecycle: QUEUED → DOWNLOADING → PROCESSING → DONE
FAILED is reachable from every non-terminal state.

INVARIANT: Terminal job states (DONE, FAILED) are immutable.
"""

from typing import FrozenSet, Set, Tuple

from .errors import InvalidStateTransitionError
from .models import JobStatus


TERMINAL_JOB_STATES: FrozenSet[JobStatus] = frozenset({
    JobStatus.DONE,
    JobStatus.FAILED,
})


_JOB_TRANSITIONS: Set[Tuple[JobStatus, JobStatus]] = {
    # Admission
    (JobStatus.QUEUED, JobStatus.DOWNLOADING),
    
    # Compositing follows downloads
    (JobStatus.DOWNLOADING, JobStatus.PROCESSING),
    
    # Success only after the engine ran
    (JobStatus.PROCESSING, JobStatus.DONE),
    
    # Fatal failure from any live state
    (JobStatus.QUEUED, JobStatus.FAILED),
    (JobStatus.DOWNLOADING, JobStatus.FAILED),
    (JobStatus.PROCESSING, JobStatus.FAILED),
}


def is_job_terminal(status: JobStatus) -> bool:
    """Check if a job status is terminal (immutable)."""
    return status in TERMINAL_JOB_STATES


def can_transition_job(from_status: JobStatus, to_status: JobStatus) -> bool:
    """
    Check if a job state transition is legal.
    
    Staying in the same non-terminal state is allowed so progress-only
    updates pass through the same validation.
    
    Args:
        from_status: Current job status
        to_status: Target job status
        
    Returns:
        True if the transition is allowed, False otherwise
    """
    if is_job_terminal(from_status):
        return False
    
    if from_status == to_status:
        return True
    
    return (from_status, to_status) in _JOB_TRANSITIONS


def validate_job_transition(from_status: JobStatus, to_status: JobStatus) -> None:
    """
    Validate a job state transition, raising an exception if illegal.
    
    Raises:
        InvalidStateTransitionError: If the transition is not allowed
    """
    if not can_transition_job(from_status, to_status):
        raise InvalidStateTransitionError(from_status.value, to_status.value)
