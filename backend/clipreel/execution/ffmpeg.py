"""
FFmpeg compositor.

Merges the downloaded clips of one job into a single MP4 with one ffmpeg
invocation:
- concat demuxer over a manifest listing every clip in submission order
- scale-then-pad so every clip is letterboxed to the exact target size
- optional fade layered on the composite when there is more than one clip
- x264 at the quality preset's CRF / speed / peak bitrate, AAC audio

Design rules:
- One subprocess per job, awaited without a timeout
- Non-zero exit code = job FAILED, never retried
- Stderr is read line by line for progress markers and kept (tail only)
  for the failure log
- Per-clip files and the manifest are removed once the output is verified
"""

import asyncio
import codecs
import logging
import os
import re
import shutil
from collections import deque
from pathlib import Path
from typing import Callable, Deque, List, Optional, Sequence

from ..jobs.models import OutputFormat, Quality
from .errors import EngineExitError, EngineNotAvailableError, OutputVerificationError
from .presets import FORMAT_PRESETS, QUALITY_PRESETS
from .progress import ProgressHeuristic, TimestampMarkerHeuristic

logger = logging.getLogger(__name__)


CONCAT_MANIFEST_NAME = "concat.txt"
OUTPUT_NAME = "output.mp4"

# Fade applied at a fixed offset, not at each computed clip boundary
TRANSITION_START_SECONDS = 0.0
TRANSITION_DURATION_SECONDS = 0.5

AUDIO_BITRATE = "192k"

# Stderr lines kept for failure diagnostics
STDERR_TAIL_LINES = 20

# FFmpeg terminates status lines with \r, everything else with \n
_LINE_SPLIT = re.compile(r"[\r\n]")


def build_concat_manifest(clip_paths: Sequence[Path]) -> str:
    """
    Build a concat-demuxer manifest, one `file '<path>'` entry per clip.
    
    Paths are made absolute and use forward slashes; single quotes are
    escaped the way the concat demuxer expects.
    """
    lines = []
    for clip_path in clip_paths:
        normalized = str(Path(clip_path).resolve()).replace("\\", "/")
        escaped = normalized.replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    return "\n".join(lines) + "\n"


def build_video_filter(
    output_format: OutputFormat,
    include_transitions: bool,
    clip_count: int,
) -> str:
    """
    Build the -vf filter chain for a format preset.
    
    Scale to fit inside the target, then pad to fill it, centered.
    With transitions and more than one clip a fade is appended.
    """
    target = FORMAT_PRESETS[output_format]
    w, h = target.width, target.height
    
    filters = [
        f"scale={w}:{h}:force_original_aspect_ratio=decrease",
        f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2",
    ]
    
    if include_transitions and clip_count > 1:
        filters.append(
            f"fade=t=in:st={TRANSITION_START_SECONDS}:d={TRANSITION_DURATION_SECONDS}"
        )
    
    return ",".join(filters)


class FFmpegCompositor:
    """
    Drives the external ffmpeg binary for one job at a time.
    
    Stateless between calls; several jobs may run it concurrently.
    """
    
    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        heuristic_factory: Callable[[], ProgressHeuristic] = TimestampMarkerHeuristic,
    ):
        """
        Args:
            ffmpeg_path: Binary name on PATH or an absolute path
            heuristic_factory: Builds a fresh progress heuristic per run
        """
        self.ffmpeg_path = ffmpeg_path
        self._heuristic_factory = heuristic_factory
        self._resolved_path: Optional[str] = None
    
    def find_ffmpeg(self) -> Optional[str]:
        """Find the ffmpeg binary path."""
        if self._resolved_path:
            return self._resolved_path
        
        found = shutil.which(self.ffmpeg_path)
        if found:
            self._resolved_path = found
            return found
        
        # Common install locations, only when configured by bare name
        if os.sep not in self.ffmpeg_path:
            for path in ("/usr/local/bin/ffmpeg", "/usr/bin/ffmpeg", "/opt/homebrew/bin/ffmpeg"):
                if os.path.isfile(path) and os.access(path, os.X_OK):
                    self._resolved_path = path
                    return path
        
        return None
    
    async def check_available(self) -> bool:
        """Check that ffmpeg is installed and answers `-version`."""
        ffmpeg = self.find_ffmpeg()
        if not ffmpeg:
            return False
        
        try:
            process = await asyncio.create_subprocess_exec(
                ffmpeg,
                "-version",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            return await process.wait() == 0
        except OSError as e:
            logger.warning(f"[FFmpeg] Availability check failed: {e}")
            return False
    
    def build_command(
        self,
        concat_file: Path,
        output_path: Path,
        output_format: OutputFormat,
        quality: Quality,
        include_transitions: bool,
        clip_count: int,
    ) -> List[str]:
        """Build the full ffmpeg argument list."""
        ffmpeg = self.find_ffmpeg()
        if not ffmpeg:
            raise EngineNotAvailableError(self.ffmpeg_path)
        
        encoding = QUALITY_PRESETS[quality]
        
        return [
            ffmpeg,
            "-f", "concat",
            "-safe", "0",
            "-i", str(concat_file),
            "-vf", build_video_filter(output_format, include_transitions, clip_count),
            "-c:v", "libx264",
            "-preset", encoding.preset,
            "-crf", str(encoding.crf),
            "-maxrate", encoding.bitrate,
            "-bufsize", encoding.bufsize,
            "-c:a", "aac",
            "-b:a", AUDIO_BITRATE,
            "-movflags", "+faststart",
            "-y",
            str(output_path),
        ]
    
    async def run(
        self,
        job_dir: Path,
        clip_paths: Sequence[Path],
        output_format: OutputFormat,
        quality: Quality,
        include_transitions: bool = True,
        on_marker: Optional[Callable[[], object]] = None,
    ) -> Path:
        """
        Composite the clips into job_dir/output.mp4.
        
        Args:
            job_dir: Per-job working directory (must exist)
            clip_paths: Downloaded clips in submission order
            output_format: Target aspect ratio
            quality: Encoder preset
            include_transitions: Layer the fade filter for multi-clip jobs
            on_marker: Called once per recognized progress marker
            
        Returns:
            Path to the verified output file
            
        Raises:
            EngineNotAvailableError: If ffmpeg cannot be found
            EngineExitError: If ffmpeg exits non-zero
            OutputVerificationError: If the output is missing or empty
        """
        loop = asyncio.get_running_loop()
        
        concat_file = job_dir / CONCAT_MANIFEST_NAME
        output_path = job_dir / OUTPUT_NAME
        
        manifest = build_concat_manifest(clip_paths)
        await loop.run_in_executor(None, concat_file.write_text, manifest)
        
        cmd = self.build_command(
            concat_file=concat_file,
            output_path=output_path,
            output_format=output_format,
            quality=quality,
            include_transitions=include_transitions,
            clip_count=len(clip_paths),
        )
        
        logger.info(f"[FFmpeg] Executing: {' '.join(cmd)}")
        
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        logger.info(f"[FFmpeg] Started PID {process.pid} for {job_dir.name}")
        
        try:
            tail = await self._consume_stderr(process.stderr, on_marker)
            exit_code = await process.wait()
        except BaseException:
            # Only reached on shutdown or an internal fault; never leave ffmpeg orphaned
            if process.returncode is None:
                logger.warning(f"[FFmpeg] Killing PID {process.pid}")
                process.kill()
                await process.wait()
            raise
        
        logger.info(f"[FFmpeg] PID {process.pid} exited with code {exit_code}")
        
        if exit_code != 0:
            stderr_tail = "\n".join(tail)
            logger.error(f"[FFmpeg] Failed with code {exit_code}: {stderr_tail}")
            raise EngineExitError(exit_code, stderr_tail)
        
        size = await loop.run_in_executor(None, _file_size, output_path)
        if not size:
            raise OutputVerificationError(f"Output file was not created: {output_path}")
        
        await loop.run_in_executor(None, _remove_files, [*clip_paths, concat_file])
        
        logger.info(f"[FFmpeg] Completed: {output_path} ({size} bytes)")
        return output_path
    
    async def _consume_stderr(
        self,
        stream: Optional[asyncio.StreamReader],
        on_marker: Optional[Callable[[], object]],
    ) -> Deque[str]:
        """Read stderr to EOF, reporting markers and keeping the tail."""
        tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        if stream is None:
            return tail
        
        heuristic = self._heuristic_factory()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            pending += decoder.decode(chunk)
            *lines, pending = _LINE_SPLIT.split(pending)
            for line in lines:
                self._handle_line(line, heuristic, tail, on_marker)
        
        pending += decoder.decode(b"", final=True)
        if pending:
            self._handle_line(pending, heuristic, tail, on_marker)
        
        return tail
    
    @staticmethod
    def _handle_line(
        line: str,
        heuristic: ProgressHeuristic,
        tail: Deque[str],
        on_marker: Optional[Callable[[], object]],
    ) -> None:
        line = line.strip()
        if not line:
            return
        tail.append(line)
        if heuristic.feed(line) and on_marker is not None:
            on_marker()


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except FileNotFoundError:
        return 0


def _remove_files(paths: Sequence[Path]) -> None:
    for path in paths:
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"[FFmpeg] Could not remove temporary file {path}: {e}")
