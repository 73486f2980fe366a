"""
Compilation jobs: model, lifecycle, in-memory registry, progress.

Job lifecycle: QUEUED → DOWNLOADING → PROCESSING → DONE | FAILED

Not included:
- Persistence of in-flight jobs (records exist only for finished ones)
- Cancellation or timeouts
"""

from .errors import (
    JobError,
    JobNotFoundError,
    DuplicateJobError,
    InvalidStateTransitionError,
    ValidationError,
    AvailabilityError,
    UserNotFoundError,
    AllDownloadsFailedError,
)
from .models import (
    JobStatus,
    OutputFormat,
    Quality,
    CompilationOptions,
    CompilationJob,
    generate_job_id,
)
from .state import (
    can_transition_job,
    is_job_terminal,
)
from .registry import JobRegistry
from .progress import ProgressTracker

__all__ = [
    # Errors
    "JobError",
    "JobNotFoundError",
    "DuplicateJobError",
    "InvalidStateTransitionError",
    "ValidationError",
    "AvailabilityError",
    "UserNotFoundError",
    "AllDownloadsFailedError",
    # Models
    "JobStatus",
    "OutputFormat",
    "Quality",
    "CompilationOptions",
    "CompilationJob",
    "generate_job_id",
    # State validation
    "can_transition_job",
    "is_job_terminal",
    # Registry + progress
    "JobRegistry",
    "ProgressTracker",
]
