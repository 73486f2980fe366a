"""
Tests for the job model, lifecycle rules and in-memory registry.

These tests verify:
1. Job ids follow comp_<ms>_<suffix> and defaults are applied
2. Status moves strictly forward and terminal states are immutable
3. The registry hands out copies and never lets progress move backwards
4. Stale eviction removes jobs whatever their status
"""

import re
from datetime import datetime, timedelta

import pytest

from clipreel.jobs import (
    CompilationJob,
    DuplicateJobError,
    InvalidStateTransitionError,
    JobNotFoundError,
    JobRegistry,
    JobStatus,
    OutputFormat,
    Quality,
    can_transition_job,
    generate_job_id,
    is_job_terminal,
)
from clipreel.jobs.state import validate_job_transition


def make_job(**overrides) -> CompilationJob:
    fields = {"user_id": "user-1", "clip_ids": ["clip-a", "clip-b"]}
    fields.update(overrides)
    return CompilationJob(**fields)


def set_status(status: JobStatus):
    def apply(job: CompilationJob) -> None:
        job.status = status
    return apply


def set_progress(value: int):
    def apply(job: CompilationJob) -> None:
        job.progress = value
    return apply


# ============================================================================
# MODEL
# ============================================================================

class TestCompilationJob:

    def test_generated_id_shape(self):
        assert re.fullmatch(r"comp_\d+_[0-9a-z]{9}", generate_job_id())

    def test_defaults(self):
        job = make_job()
        assert job.status == JobStatus.QUEUED
        assert job.progress == 0
        assert job.format == OutputFormat.LANDSCAPE
        assert job.quality == Quality.MEDIUM
        assert job.include_transitions is True
        assert job.output_path is None
        assert job.error is None

    def test_progress_bounds_validated(self):
        job = make_job()
        with pytest.raises(ValueError):
            job.progress = 101

    def test_is_active(self):
        assert not make_job().is_active
        assert make_job(status=JobStatus.DOWNLOADING).is_active
        assert make_job(status=JobStatus.PROCESSING).is_active
        assert not make_job(status=JobStatus.DONE).is_active


# ============================================================================
# LIFECYCLE
# ============================================================================

class TestJobTransitions:

    @pytest.mark.parametrize("from_status,to_status", [
        (JobStatus.QUEUED, JobStatus.DOWNLOADING),
        (JobStatus.DOWNLOADING, JobStatus.PROCESSING),
        (JobStatus.PROCESSING, JobStatus.DONE),
        (JobStatus.QUEUED, JobStatus.FAILED),
        (JobStatus.DOWNLOADING, JobStatus.FAILED),
        (JobStatus.PROCESSING, JobStatus.FAILED),
    ])
    def test_forward_transitions_allowed(self, from_status, to_status):
        assert can_transition_job(from_status, to_status)

    @pytest.mark.parametrize("from_status,to_status", [
        (JobStatus.QUEUED, JobStatus.PROCESSING),
        (JobStatus.QUEUED, JobStatus.DONE),
        (JobStatus.DOWNLOADING, JobStatus.DONE),
        (JobStatus.PROCESSING, JobStatus.DOWNLOADING),
    ])
    def test_skips_and_reversals_rejected(self, from_status, to_status):
        assert not can_transition_job(from_status, to_status)

    @pytest.mark.parametrize("terminal", [JobStatus.DONE, JobStatus.FAILED])
    def test_terminal_states_are_immutable(self, terminal):
        assert is_job_terminal(terminal)
        for target in JobStatus:
            assert not can_transition_job(terminal, target)

    def test_validate_raises_with_states(self):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            validate_job_transition(JobStatus.DONE, JobStatus.FAILED)
        assert exc_info.value.current_state == "done"
        assert exc_info.value.target_state == "failed"


# ============================================================================
# REGISTRY
# ============================================================================

class TestJobRegistry:

    def test_create_and_get_returns_copies(self):
        registry = JobRegistry()
        job = registry.create(make_job())

        fetched = registry.get(job.id)
        fetched.progress = 50

        assert registry.get(job.id).progress == 0

    def test_duplicate_id_rejected(self):
        registry = JobRegistry()
        job = registry.create(make_job())
        with pytest.raises(DuplicateJobError):
            registry.create(job)

    def test_get_unknown_returns_none(self):
        assert JobRegistry().get("comp_0_missing") is None

    def test_update_unknown_raises(self):
        with pytest.raises(JobNotFoundError):
            JobRegistry().update("comp_0_missing", set_progress(10))

    def test_list_by_user_newest_first(self):
        registry = JobRegistry()
        now = datetime.now()
        older = registry.create(make_job(created_at=now - timedelta(minutes=5)))
        newer = registry.create(make_job(created_at=now))
        registry.create(make_job(user_id="user-2"))

        ids = [job.id for job in registry.list_by_user("user-1")]

        assert ids == [newer.id, older.id]

    def test_progress_never_decreases(self):
        registry = JobRegistry()
        job = registry.create(make_job())
        registry.update(job.id, set_status(JobStatus.DOWNLOADING))
        registry.update(job.id, set_progress(30))

        updated = registry.update(job.id, set_progress(10))

        assert updated.progress == 30

    def test_illegal_transition_leaves_job_unchanged(self):
        registry = JobRegistry()
        job = registry.create(make_job())

        with pytest.raises(InvalidStateTransitionError):
            registry.update(job.id, set_status(JobStatus.DONE))

        assert registry.get(job.id).status == JobStatus.QUEUED

    def test_terminal_job_rejects_progress_update(self):
        registry = JobRegistry()
        job = registry.create(make_job())
        registry.update(job.id, set_status(JobStatus.FAILED))

        with pytest.raises(InvalidStateTransitionError):
            registry.update(job.id, set_progress(50))

    def test_immutable_fields_protected(self):
        registry = JobRegistry()
        job = registry.create(make_job())

        def reorder(j: CompilationJob) -> None:
            j.clip_ids = list(reversed(j.clip_ids))

        with pytest.raises(ValueError):
            registry.update(job.id, reorder)

    def test_counts(self):
        registry = JobRegistry()
        active = registry.create(make_job())
        registry.create(make_job())
        registry.update(active.id, set_status(JobStatus.DOWNLOADING))

        assert registry.count() == 2
        assert registry.count_active() == 1
        assert registry.count_by_status(JobStatus.QUEUED) == 1

    def test_remove_created_before_ignores_status(self):
        registry = JobRegistry()
        now = datetime.now()
        stale_live = registry.create(make_job(created_at=now - timedelta(hours=30)))
        registry.update(stale_live.id, set_status(JobStatus.DOWNLOADING))
        stale_done = registry.create(make_job(created_at=now - timedelta(hours=25)))
        fresh = registry.create(make_job(created_at=now))

        evicted = registry.remove_created_before(now - timedelta(hours=24))

        assert evicted == 2
        assert registry.get(stale_live.id) is None
        assert registry.get(stale_done.id) is None
        assert registry.get(fresh.id) is not None
