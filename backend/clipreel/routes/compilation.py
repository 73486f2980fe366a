"""
Compilation endpoints.

HTTP adapter over CompilationService. Authentication is handled upstream;
the caller's user id arrives in the X-User-Id header.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import FileResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from clipreel.jobs.models import (
    CompilationJob,
    CompilationOptions,
    JobStatus,
    OutputFormat,
    Quality,
)
from clipreel.persistence.records import CompilationRecord
from clipreel.service import CompilationService

router = APIRouter(prefix="/compilation", tags=["compilation"])


# ============================================================================
# API MODELS
# ============================================================================

class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EngineStatusResponse(ApiModel):
    ffmpeg_available: bool


class StartCompilationRequest(ApiModel):
    """Request body for a new compilation."""
    
    model_config = ConfigDict(extra="forbid")
    
    clip_ids: List[str]
    format: Optional[OutputFormat] = None
    quality: Optional[Quality] = None
    include_transitions: Optional[bool] = None
    
    def to_options(self) -> CompilationOptions:
        options = CompilationOptions()
        if self.format is not None:
            options.format = self.format
        if self.quality is not None:
            options.quality = self.quality
        if self.include_transitions is not None:
            options.include_transitions = self.include_transitions
        return options


class StartCompilationResponse(ApiModel):
    job_id: str
    message: str = "Compilation started"


class JobResponse(ApiModel):
    """Public view of a live job."""
    
    id: str
    user_id: str
    clip_ids: List[str]
    format: OutputFormat
    quality: Quality
    include_transitions: bool
    status: JobStatus
    progress: int
    output_path: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime
    
    @classmethod
    def from_job(cls, job: CompilationJob) -> "JobResponse":
        return cls(**job.model_dump())


class RecordResponse(ApiModel):
    """Public view of a completed compilation."""
    
    id: int
    user_id: str
    job_id: str
    clip_count: int
    format: OutputFormat
    quality: Quality
    output_path: str
    status: str
    created_at: datetime
    
    @classmethod
    def from_record(cls, record: CompilationRecord) -> "RecordResponse":
        return cls(**record.model_dump())


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_service(request: Request) -> CompilationService:
    return request.app.state.compilation_service


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user")
    return x_user_id


# ============================================================================
# ROUTES
# ============================================================================

@router.get("/status", response_model=EngineStatusResponse)
async def engine_status(service: CompilationService = Depends(get_service)):
    """Report whether ffmpeg is available."""
    return EngineStatusResponse(ffmpeg_available=await service.check_engine())


@router.post("/start", response_model=StartCompilationResponse)
async def start_compilation(
    body: StartCompilationRequest,
    user_id: str = Depends(get_user_id),
    service: CompilationService = Depends(get_service),
):
    """
    Queue a compilation.
    
    Raises:
        400: Empty or oversized clip list, or ffmpeg unavailable
    """
    result = await service.start_compilation(user_id, body.clip_ids, body.to_options())
    if result.error:
        raise HTTPException(status_code=400, detail=result.error)
    return StartCompilationResponse(job_id=result.job_id)


@router.get("/job/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    user_id: str = Depends(get_user_id),
    service: CompilationService = Depends(get_service),
):
    """
    Poll one job.
    
    Raises:
        404: Unknown job id
        403: Job belongs to another user
    """
    job = service.get_job_status(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    if job.user_id != user_id:
        raise HTTPException(status_code=403, detail="Access denied")
    return JobResponse.from_job(job)


@router.get("/jobs", response_model=List[JobResponse])
async def list_jobs(
    user_id: str = Depends(get_user_id),
    service: CompilationService = Depends(get_service),
):
    """The caller's live jobs, newest first."""
    return [JobResponse.from_job(job) for job in service.get_user_jobs(user_id)]


@router.get("/history", response_model=List[RecordResponse])
async def history(
    limit: int = Query(default=20, ge=1),
    user_id: str = Depends(get_user_id),
    service: CompilationService = Depends(get_service),
):
    """The caller's completed compilations, newest first."""
    limit = min(limit, service.settings.history_limit_cap)
    records = await service.get_compilation_history(user_id, limit)
    return [RecordResponse.from_record(record) for record in records]


@router.delete("/{record_id}")
async def delete_compilation(
    record_id: int,
    user_id: str = Depends(get_user_id),
    service: CompilationService = Depends(get_service),
):
    """
    Delete a completed compilation and its file.
    
    Raises:
        404: Unknown record, or owned by another user
    """
    if not await service.delete_compilation(user_id, record_id):
        raise HTTPException(status_code=404, detail="Compilation not found")
    return {"success": True}


@router.get("/{record_id}/download")
async def download_compilation(
    record_id: int,
    user_id: str = Depends(get_user_id),
    service: CompilationService = Depends(get_service),
):
    """
    Stream a completed compilation.
    
    Raises:
        404: Unknown record, or owned by another user
        400: Record not finished or its file is gone
    """
    record = await service.get_compilation(record_id)
    if record is None or record.user_id != user_id:
        raise HTTPException(status_code=404, detail="Compilation not found")
    
    output = Path(record.output_path)
    if record.status != "done" or not output.is_file():
        raise HTTPException(status_code=400, detail="Compilation not ready")
    
    return FileResponse(
        output,
        media_type="video/mp4",
        filename=f"compilation_{record.id}.mp4",
    )
