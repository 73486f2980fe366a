"""
Compilation job data models.

A CompilationJob is the transient, in-memory view of one submission.
It lives only in the JobRegistry and is never persisted; the durable
trace of a finished job is a CompilationRecord (see persistence).

All models use Pydantic for validation.
State transitions are validated externally (see state.py).
"""

import random
import string
import time
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    """
    Job-level status.
    
    Moves strictly forward: QUEUED → DOWNLOADING → PROCESSING → DONE.
    FAILED is reachable from any non-terminal state.
    """
    
    QUEUED = "queued"  # Accepted, waiting for an admission slot
    DOWNLOADING = "downloading"  # Holding a slot, fetching clips
    PROCESSING = "processing"  # Transcoding engine running
    DONE = "done"  # Output written and recorded
    FAILED = "failed"  # Fatal job-level failure


class OutputFormat(str, Enum):
    """Target aspect ratio; selects the output resolution."""
    
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    SQUARE = "square"


class Quality(str, Enum):
    """Encoder parameter bundle; selects CRF, speed preset and bitrate."""
    
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_job_id() -> str:
    """
    Generate a job id of the form comp_<epoch-ms>_<9 base36 chars>.
    
    Collisions are possible only within the same millisecond and are
    treated as an internal error by the registry.
    """
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"comp_{int(time.time() * 1000)}_{suffix}"


class CompilationOptions(BaseModel):
    """Per-submission options; every field has a default."""
    
    model_config = ConfigDict(extra="forbid")
    
    format: OutputFormat = OutputFormat.LANDSCAPE
    quality: Quality = Quality.MEDIUM
    include_transitions: bool = True


class CompilationJob(BaseModel):
    """
    One compilation submission and its live state.
    
    clip_ids order is the final concatenation order.
    output_path is set only on success, error only on failure.
    """
    
    model_config = ConfigDict(extra="forbid", validate_assignment=True)
    
    # Identity
    id: str = Field(default_factory=generate_job_id)
    user_id: str
    
    # Request
    clip_ids: List[str]
    format: OutputFormat = OutputFormat.LANDSCAPE
    quality: Quality = Quality.MEDIUM
    include_transitions: bool = True
    
    # State
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    
    # Outcome
    output_path: Optional[str] = None
    error: Optional[str] = None
    
    # Immutable creation timestamp (ordering + staleness)
    created_at: datetime = Field(default_factory=datetime.now)
    
    @property
    def is_active(self) -> bool:
        """True while the job holds an admission slot."""
        return self.status in (JobStatus.DOWNLOADING, JobStatus.PROCESSING)
