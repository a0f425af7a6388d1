"""
Tests for the in-memory job registry.
"""
import time
from unittest.mock import MagicMock

import pytest

from app.worker.jobs import JobRegistry, JobStatus


@pytest.fixture
def registry():
    return JobRegistry()


class TestJobRegistry:
    def test_create_and_get(self, registry):
        job = registry.create("text-to-video")
        assert registry.get(job.id) is job
        assert job.status == JobStatus.PROCESSING
        assert job.progress == 0
        assert len(registry) == 1

    def test_get_unknown(self, registry):
        assert registry.get("missing") is None

    def test_ids_are_unique(self, registry):
        ids = {registry.create("text-to-image").id for _ in range(50)}
        assert len(ids) == 50

    def test_progress_is_monotonic(self, registry):
        job = registry.create("text-to-video")
        seen = []
        for value in [2, 4, 3, 10, 1, 90, 95]:
            registry.advance_progress(job.id, value)
            seen.append(job.progress)
        assert seen == sorted(seen)
        assert seen[-1] == 95

    def test_complete_is_terminal(self, registry):
        job = registry.create("text-to-video")
        assert registry.complete(job.id, "/api/media/x.mp4", "video/mp4", {"seed": 1})
        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100
        assert job.metadata == {"seed": 1}

        assert not registry.fail(job.id, "late failure")
        assert not registry.complete(job.id, "/api/media/y.mp4", "video/mp4")
        assert not registry.advance_progress(job.id, 10)
        assert job.status == JobStatus.COMPLETED
        assert job.result_locator == "/api/media/x.mp4"
        assert job.failure_reason is None

    def test_fail_is_terminal(self, registry):
        job = registry.create("text-to-video")
        assert registry.fail(job.id, "Generation timed out")
        assert not registry.complete(job.id, "/api/media/x.mp4", "video/mp4")
        assert job.status == JobStatus.FAILED
        assert job.failure_reason == "Generation timed out"

    def test_terminal_transition_cancels_timeout(self, registry):
        job = registry.create("text-to-video")
        handle = MagicMock()
        job.timeout_handle = handle
        registry.complete(job.id, "/api/media/x.mp4", "video/mp4")
        handle.cancel.assert_called_once()
        assert job.timeout_handle is None

    def test_provider_handle_set_once(self, registry):
        job = registry.create("text-to-video")
        assert registry.set_provider_handle(job.id, "arn:1")
        assert registry.set_provider_handle(job.id, "arn:1")
        with pytest.raises(RuntimeError):
            registry.set_provider_handle(job.id, "arn:2")
        assert job.provider_handle == "arn:1"

    def test_provider_handle_ignored_after_terminal(self, registry):
        job = registry.create("text-to-video")
        registry.fail(job.id, "boom")
        assert not registry.set_provider_handle(job.id, "arn:1")

    def test_status_dict(self, registry):
        job = registry.create("text-to-video")
        assert job.to_status_dict() == {"jobId": job.id, "status": "processing", "progress": 0}

        registry.complete(job.id, "/api/media/x.mp4", "video/mp4")
        data = job.to_status_dict()
        assert data["mediaUrl"] == "/api/media/x.mp4"
        assert data["mediaType"] == "video/mp4"
        assert "error" not in data

        other = registry.create("text-to-video")
        registry.fail(other.id, "provider said no")
        assert other.to_status_dict()["error"] == "provider said no"

    def test_sweep_removes_old_jobs(self, registry):
        old = registry.create("text-to-video")
        old.created_at = time.time() - 7200
        task = MagicMock()
        task.done.return_value = False
        old.task = task
        fresh = registry.create("text-to-image")

        assert registry.sweep(3600) == 1
        assert registry.get(old.id) is None
        assert registry.get(fresh.id) is fresh
        task.cancel.assert_called_once()

    def test_active(self, registry):
        a = registry.create("text-to-video")
        b = registry.create("text-to-video")
        registry.fail(b.id, "boom")
        assert registry.active() == [a]
