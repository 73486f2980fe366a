"""
Runtime settings for the compilation pipeline.

Every value has a default and may be overridden from the environment.
Settings are read once at startup and passed explicitly to the components
that need them; nothing reads the environment after that.
"""

import os
from pathlib import Path
from typing import Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConfigurationError(Exception):
    """Raised when an environment override cannot be parsed."""

    def __init__(self, env_var: str, value: str, reason: str):
        self.env_var = env_var
        self.value = value
        super().__init__(f"Invalid value for {env_var}={value!r}: {reason}")


# Environment variable names
ENV_COMPILATION_DIR = "CLIPREEL_COMPILATION_DIR"
ENV_FFMPEG_PATH = "CLIPREEL_FFMPEG_PATH"
ENV_MAX_CONCURRENT_JOBS = "CLIPREEL_MAX_CONCURRENT_JOBS"
ENV_ADMISSION_POLL_SECONDS = "CLIPREEL_ADMISSION_POLL_SECONDS"
ENV_MAX_CLIPS = "CLIPREEL_MAX_CLIPS"
ENV_RECORD_MAX_AGE_DAYS = "CLIPREEL_RECORD_MAX_AGE_DAYS"
ENV_STALE_JOB_HOURS = "CLIPREEL_STALE_JOB_HOURS"
ENV_CLEANUP_INTERVAL_HOURS = "CLIPREEL_CLEANUP_INTERVAL_HOURS"
ENV_DB_PATH = "CLIPREEL_DB_PATH"
ENV_CLIP_API_URL = "CLIPREEL_CLIP_API_URL"
ENV_CLIENT_ID = "CLIPREEL_CLIENT_ID"
ENV_HTTP_TIMEOUT = "CLIPREEL_HTTP_TIMEOUT"
ENV_HISTORY_LIMIT_CAP = "CLIPREEL_HISTORY_LIMIT_CAP"


class CompilationSettings(BaseModel):
    """
    Settings snapshot for one process.

    Counts and intervals are validated as positive so a bad override fails
    at startup rather than deadlocking admission or spinning the sweeper.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    # Storage
    compilation_dir: Path = Path("./compilations")
    db_path: Path = Path("./clipreel.db")

    # Transcoding engine
    ffmpeg_path: str = "ffmpeg"

    # Admission
    max_concurrent_jobs: int = Field(default=2, ge=1)
    admission_poll_seconds: float = Field(default=5.0, gt=0)
    max_clips_per_job: int = Field(default=20, ge=1)

    # Retention
    record_max_age_days: float = Field(default=7, gt=0)
    stale_job_hours: float = Field(default=24, gt=0)
    cleanup_interval_hours: float = Field(default=24, gt=0)

    # Remote clip registry
    clip_api_url: str = "https://api.twitch.tv/helix/clips"
    client_id: str = ""
    http_timeout_seconds: float = Field(default=30.0, gt=0)

    # HTTP surface
    history_limit_cap: int = Field(default=50, ge=1)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "CompilationSettings":
        """
        Build settings from environment overrides.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            CompilationSettings with overrides applied

        Raises:
            ConfigurationError: If an override cannot be converted
        """
        if environ is None:
            environ = dict(os.environ)

        fields: Dict[str, tuple[str, Callable[[str], object]]] = {
            "compilation_dir": (ENV_COMPILATION_DIR, Path),
            "db_path": (ENV_DB_PATH, Path),
            "ffmpeg_path": (ENV_FFMPEG_PATH, str),
            "max_concurrent_jobs": (ENV_MAX_CONCURRENT_JOBS, int),
            "admission_poll_seconds": (ENV_ADMISSION_POLL_SECONDS, float),
            "max_clips_per_job": (ENV_MAX_CLIPS, int),
            "record_max_age_days": (ENV_RECORD_MAX_AGE_DAYS, float),
            "stale_job_hours": (ENV_STALE_JOB_HOURS, float),
            "cleanup_interval_hours": (ENV_CLEANUP_INTERVAL_HOURS, float),
            "clip_api_url": (ENV_CLIP_API_URL, str),
            "client_id": (ENV_CLIENT_ID, str),
            "http_timeout_seconds": (ENV_HTTP_TIMEOUT, float),
            "history_limit_cap": (ENV_HISTORY_LIMIT_CAP, int),
        }

        overrides: Dict[str, object] = {}
        for field_name, (env_var, convert) in fields.items():
            raw = environ.get(env_var)
            if raw is None or raw.strip() == "":
                continue
            try:
                overrides[field_name] = convert(raw.strip())
            except ValueError as e:
                raise ConfigurationError(env_var, raw, str(e)) from e

        try:
            return cls(**overrides)
        except ValueError as e:
            # pydantic.ValidationError subclasses ValueError
            raise ConfigurationError("environment", str(overrides), str(e)) from e
