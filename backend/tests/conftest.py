"""
Shared fixtures for the clipreel test suite.

The remote clip registry and asset host are served by FakeClipApi through
httpx.MockTransport, and ffmpeg is replaced by FakeCompositor wherever the
test is about the pipeline rather than the command line.
"""

import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import httpx
import pytest

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from clipreel.config import CompilationSettings
from clipreel.execution.errors import EngineExitError
from clipreel.execution.ffmpeg import OUTPUT_NAME
from clipreel.persistence.manager import PersistenceManager


API_URL = "https://clips.test/helix/clips"
ASSET_HOST = "https://assets.test"

ACCESS_TOKEN = "token-abc"


# =============================================================================
# Fake collaborators
# =============================================================================

class FakeClipApi:
    """
    In-process clip registry plus asset host.

    Every clip id in `clips` resolves and downloads; ids in `unresolvable`
    come back with an empty data list; ids in `broken_assets` resolve but
    their asset returns 500. `thumbnails` overrides the thumbnail URL the
    registry reports for a clip.
    """

    def __init__(self, clips: Sequence[str] = ()):
        self.clips = set(clips)
        self.unresolvable = set()
        self.broken_assets = set()
        self.thumbnails: Dict[str, str] = {}
        self.lookups: List[str] = []
        self.auth_headers: List[Optional[str]] = []

    def add(self, *clip_ids: str) -> None:
        self.clips.update(clip_ids)

    @staticmethod
    def asset_body(clip_id: str) -> bytes:
        return f"mp4-bytes-{clip_id}".encode()

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)

        if url.startswith(API_URL):
            clip_id = request.url.params.get("id")
            self.lookups.append(clip_id)
            self.auth_headers.append(request.headers.get("Authorization"))
            if clip_id not in self.clips or clip_id in self.unresolvable:
                return httpx.Response(200, json={"data": []})
            thumbnail = self.thumbnails.get(
                clip_id, f"{ASSET_HOST}/{clip_id}.mp4-preview-480x272.jpg"
            )
            return httpx.Response(200, json={"data": [{"id": clip_id, "thumbnail_url": thumbnail}]})

        if url.startswith(ASSET_HOST):
            clip_id = request.url.path.strip("/")[: -len(".mp4")]
            if clip_id in self.broken_assets:
                return httpx.Response(500)
            return httpx.Response(200, content=self.asset_body(clip_id))

        return httpx.Response(404)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeCompositor:
    """
    Stands in for FFmpegCompositor.

    Writes a small output file, reports `markers` progress markers, and
    records the clips of each run. When `gate` is set, every run waits on
    it so tests can observe jobs that hold a slot.
    """

    def __init__(self, available: bool = True, markers: int = 3):
        self.available = available
        self.markers = markers
        self.fail_with: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.runs: List[List[Path]] = []
        self.running = 0
        self.max_running = 0

    async def check_available(self) -> bool:
        return self.available

    async def run(
        self,
        job_dir: Path,
        clip_paths: Sequence[Path],
        output_format,
        quality,
        include_transitions: bool = True,
        on_marker: Optional[Callable[[], object]] = None,
    ) -> Path:
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            self.runs.append(list(clip_paths))
            if self.gate is not None:
                await self.gate.wait()
            for _ in range(self.markers):
                if on_marker is not None:
                    on_marker()
                await asyncio.sleep(0)
            if self.fail_with is not None:
                raise self.fail_with
            output = job_dir / OUTPUT_NAME
            output.write_bytes(b"".join(Path(p).read_bytes() for p in clip_paths))
            for clip_path in clip_paths:
                Path(clip_path).unlink()
            return output
        finally:
            self.running -= 1


def failing_engine(code: int = 1) -> EngineExitError:
    return EngineExitError(code, "Invalid data found when processing input")


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll predicate on the running loop until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.01)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings(tmp_path) -> CompilationSettings:
    """Settings rooted in a temporary directory with a fast admission poll."""
    return CompilationSettings(
        compilation_dir=tmp_path / "compilations",
        db_path=tmp_path / "clipreel.db",
        admission_poll_seconds=0.05,
        clip_api_url=API_URL,
        client_id="test-client",
    )


@pytest.fixture
def persistence(settings) -> PersistenceManager:
    """Database with one known user."""
    manager = PersistenceManager(db_path=str(settings.db_path))
    manager.save_user_token("user-1", ACCESS_TOKEN)
    return manager


@pytest.fixture
def clip_api() -> FakeClipApi:
    return FakeClipApi(clips=["clip-a", "clip-b", "clip-c"])


@pytest.fixture
def compositor() -> FakeCompositor:
    return FakeCompositor()


@pytest.fixture
def record_data() -> Callable[..., Dict]:
    """Factory for raw compilation rows."""
    counter = {"n": 0}

    def make(**overrides) -> Dict:
        counter["n"] += 1
        data = {
            "user_id": "user-1",
            "job_id": f"comp_test_{counter['n']}",
            "clip_count": 2,
            "format": "landscape",
            "quality": "medium",
            "output_path": f"/nonexistent/comp_test_{counter['n']}/output.mp4",
            "status": "done",
            "created_at": datetime.now(),
        }
        data.update(overrides)
        return data

    return make
