"""
Job-specific error types.

All errors inherit from JobError for easy catching.
Validation and availability errors are raised before a job exists and are
converted to an error string at the submission boundary. Everything else
ends the job with status FAILED and its message stored on the job.
"""


class JobError(Exception):
    """Base exception for all job-related failures."""
    pass


class JobNotFoundError(JobError):
    """Raised when a job cannot be found in the registry."""
    
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class DuplicateJobError(JobError):
    """Raised when a generated job id collides with a live entry."""
    
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job with ID '{job_id}' already exists")


class InvalidStateTransitionError(JobError):
    """Raised when attempting an illegal state transition."""
    
    def __init__(self, current_state: str, target_state: str):
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid job state transition: {current_state} -> {target_state}"
        )


class ValidationError(JobError):
    """Submission rejected: empty or oversized clip list."""
    pass


class AvailabilityError(JobError):
    """Submission rejected: the transcoding engine is not installed."""
    pass


class UserNotFoundError(JobError):
    """No access token is on record for the job's owner."""
    
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("User not found")


class AllDownloadsFailedError(JobError):
    """Every clip in the job was skipped during resolution or download."""
    
    def __init__(self, clip_count: int):
        self.clip_count = clip_count
        super().__init__(f"No clip downloaded successfully ({clip_count} attempted)")
