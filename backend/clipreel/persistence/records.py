"""
Completed-compilation records.

A CompilationRecord is written once, after a job reaches DONE, and lives
until its owner deletes it or the cleanup sweep purges it by age. Removing
a record also removes its output file; a file that is already gone is not
an error.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from functools import partial
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from ..jobs.models import CompilationJob, JobStatus, OutputFormat, Quality
from .manager import PersistenceManager

logger = logging.getLogger(__name__)


class CompilationRecord(BaseModel):
    """Durable trace of one successful compilation."""
    
    model_config = ConfigDict(extra="forbid")
    
    id: int
    user_id: str
    job_id: str
    clip_count: int
    format: OutputFormat
    quality: Quality
    output_path: str
    status: str
    created_at: datetime


def remove_output(output_path: str) -> None:
    """
    Delete an output file and, if now empty, its job directory.
    
    Best-effort: missing files and non-empty directories are ignored.
    """
    path = Path(output_path)
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"[Persistence] Could not remove {path}: {e}")
        return
    
    try:
        path.parent.rmdir()
    except OSError:
        pass


class CompilationRecordStore:
    """
    Async facade over the compilation table.
    
    Database and file work runs in the default executor so the event loop
    keeps serving other jobs.
    """
    
    def __init__(self, manager: PersistenceManager):
        self._manager = manager
    
    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))
    
    async def record_success(self, job: CompilationJob) -> CompilationRecord:
        """
        Write the record for a finished job.
        
        Args:
            job: A job in status DONE with an output path
            
        Returns:
            The stored record
            
        Raises:
            ValueError: If the job has not reached DONE
            PersistenceError: If the insert fails
        """
        if job.status != JobStatus.DONE or not job.output_path:
            raise ValueError(
                f"Job {job.id} cannot be recorded in status {job.status.value}"
            )
        
        row = await self._run(self._manager.insert_compilation, {
            "user_id": job.user_id,
            "job_id": job.id,
            "clip_count": len(job.clip_ids),
            "format": job.format.value,
            "quality": job.quality.value,
            "output_path": job.output_path,
            "status": job.status.value,
            "created_at": datetime.now(),
        })
        record = CompilationRecord(**row)
        logger.info(f"[Persistence] Recorded compilation {record.id} for job {job.id}")
        return record
    
    async def history(self, user_id: str, limit: int = 20) -> List[CompilationRecord]:
        """A user's records, newest first, at most `limit`."""
        if limit <= 0:
            return []
        rows = await self._run(self._manager.load_compilations_for_user, user_id, limit)
        return [CompilationRecord(**row) for row in rows]
    
    async def get(self, record_id: int) -> Optional[CompilationRecord]:
        """Look up a record by id."""
        row = await self._run(self._manager.load_compilation, record_id)
        return CompilationRecord(**row) if row else None
    
    async def delete(self, user_id: str, record_id: int) -> bool:
        """
        Delete a record and its output file, if user_id owns it.
        
        Returns:
            True if removed; False if the record is unknown or owned by
            someone else (the two cases are not distinguished)
        """
        record = await self.get(record_id)
        if record is None:
            return False
        
        if record.user_id != user_id:
            logger.warning(
                f"[Persistence] User {user_id} denied delete of compilation {record_id}"
            )
            return False
        
        await self._run(remove_output, record.output_path)
        await self._run(self._manager.delete_compilation, record_id)
        logger.info(f"[Persistence] Deleted compilation {record_id}")
        return True
    
    async def purge_older_than(self, age: timedelta) -> int:
        """
        Delete every record older than `age`, with its output file.
        
        Returns:
            Number of records removed (file removals are not counted)
        """
        cutoff = datetime.now() - age
        rows = await self._run(self._manager.load_compilations_created_before, cutoff)
        
        removed = 0
        for row in rows:
            await self._run(remove_output, row["output_path"])
            if await self._run(self._manager.delete_compilation, row["id"]):
                removed += 1
        
        if removed:
            logger.info(f"[Persistence] Purged {removed} compilation(s) older than {age}")
        return removed
