"""
Execution-specific errors.

All of these are fatal to the job that raised them and are never retried.
"""

from typing import Optional


class ExecutionError(Exception):
    """
    Base exception for execution failures.
    
    These errors end one job; the service keeps running.
    """
    
    pass


class EngineNotAvailableError(ExecutionError):
    """FFmpeg could not be found or did not answer -version."""
    
    def __init__(self, ffmpeg_path: str):
        self.ffmpeg_path = ffmpeg_path
        super().__init__(f"FFmpeg is not available on this server ({ffmpeg_path})")


class EngineExitError(ExecutionError):
    """
    FFmpeg exited with a non-zero status.
    
    The message always carries the exit code. The last stderr lines are
    kept on the exception for logging, not in the message shown to users.
    """
    
    def __init__(self, exit_code: Optional[int], stderr_tail: str = ""):
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        super().__init__(f"FFmpeg exited with code {exit_code}")


class OutputVerificationError(ExecutionError):
    """
    FFmpeg reported success but the output file is missing or empty.
    """
    
    pass
