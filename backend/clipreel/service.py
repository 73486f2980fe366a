"""
CompilationService: the compilation pipeline and its public operations.

Every submission flows through start_compilation(), which:
1. Validates the clip list (non-empty, at most max_clips_per_job)
2. Checks that ffmpeg is available
3. Creates the job in the registry as QUEUED
4. Spawns the pipeline task and returns the job id immediately

The pipeline task, once admitted:
    resolve + download each clip in order   (DOWNLOADING, progress 0-40)
    one ffmpeg run over the downloaded clips (PROCESSING, progress 40-95)
    mark DONE (progress 100), then write the durable record

Job-level failures are written back to the job (status FAILED + error)
before the task exits. There is no synchronous error channel once
start_compilation has returned; callers poll get_job_status().
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .config import CompilationSettings
from .execution.errors import ExecutionError
from .execution.ffmpeg import FFmpegCompositor
from .execution.scheduler import AdmissionController
from .jobs.cleanup import CleanupScheduler
from .jobs.errors import (
    AllDownloadsFailedError,
    AvailabilityError,
    InvalidStateTransitionError,
    JobError,
    JobNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from .jobs.models import CompilationJob, CompilationOptions, JobStatus
from .jobs.progress import COMPLETE, ProgressTracker
from .jobs.registry import JobRegistry
from .persistence.credentials import UserCredentialStore
from .persistence.errors import PersistenceError
from .persistence.records import CompilationRecord, CompilationRecordStore
from .sources.downloader import Downloader
from .sources.resolver import ClipResolver

logger = logging.getLogger(__name__)


@dataclass
class StartResult:
    """Outcome of a submission. job_id is empty whenever error is set."""

    job_id: str
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


class CompilationService:
    """
    Owns the pipeline tasks and exposes the compilation operations.

    All collaborators are injected; the service holds no global state.
    """

    def __init__(
        self,
        settings: CompilationSettings,
        registry: JobRegistry,
        admission: AdmissionController,
        resolver: ClipResolver,
        downloader: Downloader,
        compositor: FFmpegCompositor,
        records: CompilationRecordStore,
        credentials: UserCredentialStore,
        cleanup: CleanupScheduler,
    ):
        self.settings = settings
        self.registry = registry
        self.admission = admission
        self.resolver = resolver
        self.downloader = downloader
        self.compositor = compositor
        self.records = records
        self.credentials = credentials
        self.cleanup = cleanup

        # job_id -> pipeline task, removed when the task finishes
        self._tasks: Dict[str, asyncio.Task] = {}

    # =========================================================================
    # Submission
    # =========================================================================

    async def check_engine(self) -> bool:
        """Check whether ffmpeg is available on this server."""
        return await self.compositor.check_available()

    def _validate_clip_ids(self, clip_ids: Sequence[str]) -> None:
        if not clip_ids:
            raise ValidationError("No clips selected")

        limit = self.settings.max_clips_per_job
        if len(clip_ids) > limit:
            raise ValidationError(f"Maximum {limit} clips per compilation")

    async def start_compilation(
        self,
        user_id: str,
        clip_ids: Sequence[str],
        options: Optional[CompilationOptions] = None,
    ) -> StartResult:
        """
        Validate a submission and queue it.

        Args:
            user_id: Owning user
            clip_ids: Clips in final concatenation order
            options: Format, quality and transitions (defaults if omitted)

        Returns:
            StartResult with the new job id, or an error and an empty id
        """
        options = options or CompilationOptions()

        try:
            self._validate_clip_ids(clip_ids)
            if not await self.check_engine():
                raise AvailabilityError("FFmpeg is not available on the server")
        except (ValidationError, AvailabilityError) as e:
            logger.info(f"[Pipeline] Rejected submission from user {user_id}: {e}")
            return StartResult(job_id="", error=str(e))

        job = self.registry.create(CompilationJob(
            user_id=user_id,
            clip_ids=list(clip_ids),
            format=options.format,
            quality=options.quality,
            include_transitions=options.include_transitions,
        ))

        task = asyncio.get_running_loop().create_task(self._run_job(job.id))
        self._tasks[job.id] = task
        task.add_done_callback(lambda _t, job_id=job.id: self._tasks.pop(job_id, None))

        logger.info(
            f"[Pipeline] Queued job {job.id}: {len(job.clip_ids)} clip(s), "
            f"{job.format.value}/{job.quality.value}"
        )
        return StartResult(job_id=job.id)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_job_status(self, job_id: str) -> Optional[CompilationJob]:
        """Current state of a job, or None if unknown."""
        return self.registry.get(job_id)

    def get_user_jobs(self, user_id: str) -> List[CompilationJob]:
        """A user's live jobs, newest first."""
        return self.registry.list_by_user(user_id)

    async def get_compilation_history(
        self, user_id: str, limit: int = 20
    ) -> List[CompilationRecord]:
        """A user's completed compilations, newest first."""
        return await self.records.history(user_id, limit)

    async def get_compilation(self, record_id: int) -> Optional[CompilationRecord]:
        """Look up one completed compilation."""
        return await self.records.get(record_id)

    # =========================================================================
    # Retention
    # =========================================================================

    async def delete_compilation(self, user_id: str, record_id: int) -> bool:
        """Delete a compilation owned by user_id. False if not theirs or unknown."""
        return await self.records.delete(user_id, record_id)

    async def cleanup_old_compilations(self, days_old: float = 7) -> int:
        """Purge records older than days_old and evict stale jobs."""
        return await self.cleanup.sweep(timedelta(days=days_old))

    def start_compilation_cleanup(self, interval_hours: float = 24) -> asyncio.Task:
        """Schedule the recurring sweep, running one immediately."""
        return self.cleanup.start(interval_hours)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every pipeline task that is currently running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop the sweeper and interrupt running pipelines."""
        await self.cleanup.stop()
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # =========================================================================
    # Pipeline
    # =========================================================================

    def _job_dir(self, job_id: str) -> Path:
        return Path(self.settings.compilation_dir) / job_id

    async def _run_job(self, job_id: str) -> None:
        """
        Pipeline task body.

        The slot is released on every exit path by the admission context.
        Any failure is written to the job before this coroutine returns.
        """
        try:
            async with self.admission.slot(job_id):
                await self._execute(job_id)
        except asyncio.CancelledError:
            if self._fail(job_id, "Compilation interrupted by shutdown"):
                await self._discard_job_dir(job_id)
            raise
        except (JobError, ExecutionError) as e:
            logger.error(f"[Pipeline] Job {job_id} failed: {e}")
            if self._fail(job_id, str(e)):
                await self._discard_job_dir(job_id)
        except Exception as e:
            logger.exception(f"[Pipeline] Job {job_id} crashed: {e}")
            if self._fail(job_id, str(e) or e.__class__.__name__):
                await self._discard_job_dir(job_id)

    async def _execute(self, job_id: str) -> None:
        loop = asyncio.get_running_loop()

        job = self.registry.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        tracker = ProgressTracker(self.registry, job_id)

        access_token = await self.credentials.get_access_token(job.user_id)
        if not access_token:
            raise UserNotFoundError(job.user_id)

        job_dir = self._job_dir(job_id)
        await loop.run_in_executor(None, lambda: job_dir.mkdir(parents=True, exist_ok=True))

        self._set_status(job_id, JobStatus.DOWNLOADING)

        downloaded = await self._download_clips(job, job_dir, access_token, tracker)
        if not downloaded:
            raise AllDownloadsFailedError(len(job.clip_ids))

        self._set_status(job_id, JobStatus.PROCESSING)
        tracker.processing_started()

        output_path = await self.compositor.run(
            job_dir=job_dir,
            clip_paths=downloaded,
            output_format=job.format,
            quality=job.quality,
            include_transitions=job.include_transitions,
            on_marker=tracker.marker,
        )

        try:
            done = tracker.complete(str(output_path))
        except JobNotFoundError:
            # Evicted by the sweeper while composing; the output is kept and recorded
            logger.warning(f"[Pipeline] Job {job_id} evicted before completion, keeping {output_path}")
            done = job.model_copy(
                update={
                    "status": JobStatus.DONE,
                    "output_path": str(output_path),
                    "progress": COMPLETE,
                }
            )
        else:
            logger.info(f"[Pipeline] Job {job_id} done: {output_path}")

        try:
            await self.records.record_success(done)
        except PersistenceError as e:
            # The job is terminal; the output stays reachable through its status
            logger.error(f"[Pipeline] Could not record job {job_id}: {e}")

    async def _download_clips(
        self,
        job: CompilationJob,
        job_dir: Path,
        access_token: str,
        tracker: ProgressTracker,
    ) -> List[Path]:
        """Resolve and download clips one at a time, in submission order."""
        downloaded: List[Path] = []
        total = len(job.clip_ids)

        for index, clip_id in enumerate(job.clip_ids):
            clip_path = job_dir / f"clip_{index}.mp4"

            url = await self.resolver.resolve(clip_id, access_token)
            if url is None:
                logger.warning(f"[Pipeline] Job {job.id}: no URL for clip {clip_id}, skipping")
            elif await self.downloader.download(url, clip_path):
                downloaded.append(clip_path)
            else:
                logger.warning(f"[Pipeline] Job {job.id}: download failed for clip {clip_id}, skipping")

            tracker.clip_finished(index + 1, total)

        logger.info(f"[Pipeline] Job {job.id}: {len(downloaded)}/{total} clip(s) downloaded")
        return downloaded

    def _set_status(self, job_id: str, status: JobStatus) -> None:
        def apply(job: CompilationJob) -> None:
            job.status = status

        self.registry.update(job_id, apply)

    def _fail(self, job_id: str, message: str) -> bool:
        """Mark a job failed. False if it had already reached a terminal state."""
        def apply(job: CompilationJob) -> None:
            job.status = JobStatus.FAILED
            job.error = message

        try:
            self.registry.update(job_id, apply)
        except JobNotFoundError:
            # Evicted by the sweeper while running
            logger.debug(f"[Pipeline] Job {job_id} no longer registered")
        except InvalidStateTransitionError as e:
            logger.debug(f"[Pipeline] Could not mark job {job_id} failed: {e}")
            return False
        return True

    async def _discard_job_dir(self, job_id: str) -> None:
        job_dir = self._job_dir(job_id)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, lambda: shutil.rmtree(job_dir, ignore_errors=True))
