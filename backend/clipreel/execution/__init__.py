"""
Execution layer: admission control and the FFmpeg compositor.

The transcoding itself is done by an external ffmpeg process. This package
only builds its arguments, runs it, and interprets its exit status and
stderr progress lines.
"""

from .errors import (
    ExecutionError,
    EngineNotAvailableError,
    EngineExitError,
    OutputVerificationError,
)
from .presets import (
    FormatPreset,
    QualityPreset,
    FORMAT_PRESETS,
    QUALITY_PRESETS,
)
from .progress import ProgressHeuristic, TimestampMarkerHeuristic
from .ffmpeg import FFmpegCompositor
from .scheduler import AdmissionController

__all__ = [
    # Errors
    "ExecutionError",
    "EngineNotAvailableError",
    "EngineExitError",
    "OutputVerificationError",
    # Presets
    "FormatPreset",
    "QualityPreset",
    "FORMAT_PRESETS",
    "QUALITY_PRESETS",
    # Progress
    "ProgressHeuristic",
    "TimestampMarkerHeuristic",
    # Engine + admission
    "FFmpegCompositor",
    "AdmissionController",
]
