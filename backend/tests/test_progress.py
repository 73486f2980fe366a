"""
Tests for progress reporting.

Covers the download phase mapping (0-40), marker nudges capped at 95,
stderr timestamp parsing, and that tracked progress never moves backwards.
"""

from datetime import datetime, timedelta

import pytest

from clipreel.execution.progress import TimestampMarkerHeuristic, parse_timestamp
from clipreel.jobs import CompilationJob, JobRegistry, JobStatus, ProgressTracker
from clipreel.jobs.errors import JobNotFoundError
from clipreel.jobs.progress import (
    COMPLETE,
    DOWNLOAD_PHASE_END,
    PROCESSING_CAP,
    download_progress,
    nudge_processing,
)


# =============================================================================
# Phase arithmetic
# =============================================================================

class TestDownloadProgress:

    @pytest.mark.parametrize("completed,total,expected", [
        (0, 4, 0),
        (1, 4, 10),
        (2, 4, 20),
        (4, 4, 40),
        (1, 3, 13),
        (20, 20, 40),
    ])
    def test_linear_in_completed_clips(self, completed, total, expected):
        assert download_progress(completed, total) == expected

    def test_clamped_to_total(self):
        assert download_progress(9, 4) == DOWNLOAD_PHASE_END


class TestNudgeProcessing:

    def test_starts_from_processing_floor(self):
        assert nudge_processing(0) == 45
        assert nudge_processing(40) == 45

    def test_capped_below_complete(self):
        value = DOWNLOAD_PHASE_END
        for _ in range(50):
            value = nudge_processing(value)
        assert value == PROCESSING_CAP


# =============================================================================
# Stderr markers
# =============================================================================

class TestTimestampMarkers:

    def test_parse_status_line(self):
        line = "frame=  240 fps= 60 q=28.0 size=   1024kB time=00:01:23.45 bitrate=1000kbits/s"
        assert parse_timestamp(line) == 83.0

    def test_non_status_line(self):
        assert parse_timestamp("Input #0, concat, from 'concat.txt':") is None

    def test_heuristic_counts_markers(self):
        heuristic = TimestampMarkerHeuristic()

        assert heuristic.feed("time=00:00:01.00")
        assert not heuristic.feed("Stream mapping:")
        assert heuristic.feed("time=00:00:02.00")

        assert heuristic.markers_seen == 2
        assert heuristic.last_position == 2.0


# =============================================================================
# Tracker
# =============================================================================

class TestProgressTracker:

    @pytest.fixture
    def tracked(self):
        registry = JobRegistry()
        job = registry.create(CompilationJob(user_id="user-1", clip_ids=["a", "b"]))

        def downloading(j):
            j.status = JobStatus.DOWNLOADING

        registry.update(job.id, downloading)
        return registry, job.id, ProgressTracker(registry, job.id)

    def test_full_sequence_is_monotonic(self, tracked):
        registry, job_id, tracker = tracked
        seen = [
            tracker.clip_finished(1, 2),
            tracker.clip_finished(2, 2),
            tracker.processing_started(),
        ]
        seen.extend(tracker.marker() for _ in range(15))

        assert seen == sorted(seen)
        assert seen[1] == DOWNLOAD_PHASE_END
        assert seen[-1] == PROCESSING_CAP
        assert registry.get(job_id).progress == PROCESSING_CAP

    def test_lower_value_ignored(self, tracked):
        _, _, tracker = tracked
        tracker.clip_finished(2, 2)
        assert tracker.clip_finished(1, 2) == DOWNLOAD_PHASE_END

    def test_complete_marks_done(self, tracked):
        registry, job_id, tracker = tracked

        def processing(j):
            j.status = JobStatus.PROCESSING

        registry.update(job_id, processing)
        tracker.processing_started()

        done = tracker.complete("/tmp/comp/output.mp4")

        assert done.status == JobStatus.DONE
        assert done.progress == COMPLETE
        assert done.output_path == "/tmp/comp/output.mp4"
        assert registry.get(job_id).status == JobStatus.DONE

    def test_evicted_job_drops_progress_but_not_completion(self, tracked):
        registry, job_id, tracker = tracked
        registry.remove_created_before(datetime.now() + timedelta(minutes=1))

        assert tracker.marker() == DOWNLOAD_PHASE_END + 5
        with pytest.raises(JobNotFoundError):
            tracker.complete("/tmp/comp/output.mp4")
