"""Tests for inkgate.core.batch — multi-page runs on a worker pool.

A mocked orchestrator maps each page index to a prepared outcome so the
runner's status mapping and pause propagation can be checked without any
image work.  Pause tests use a single worker to make the order of pages
deterministic.
"""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest
from PIL import Image

from inkgate.core.batch import BookJob, BookRunner, PageStatus, page_status
from inkgate.core.errors import ErrorClass
from inkgate.core.models import (
    Aborted,
    AttemptId,
    BestEffort,
    Exhausted,
    ExhaustionReason,
    GenerationRequest,
    Success,
)


def _success(index: int) -> Success:
    return Success(image=Image.new("L", (8, 8), 255), attempt_id=AttemptId(1, f"s{index}"), attempts=1)


def _billing() -> Aborted:
    return Aborted(
        error_class=ErrorClass.BILLING,
        attempts=1,
        code="billing_hard_limit_reached",
        reason="Generation paused: billing limit reached.",
        action_hint="Top up.",
    )


def _pages(count: int) -> list[GenerationRequest]:
    return [GenerationRequest(page_index=i, prompt=f"Page {i}") for i in range(count)]


def _orchestrator(outcomes: dict) -> MagicMock:
    orch = MagicMock()
    orch.run.side_effect = lambda request: outcomes[request.page_index]
    return orch


class TestPageStatus:
    """Outcome to status mapping."""

    def test_mapping(self):
        best = BestEffort(image=Image.new("L", (8, 8)), attempt_id=AttemptId(2, "s"), attempts=12)
        other = Aborted(error_class=ErrorClass.OTHER, attempts=1)
        exhausted = Exhausted(reason=ExhaustionReason.NO_CANDIDATE, attempts=12)

        assert page_status(None) is PageStatus.GENERATING
        assert page_status(_success(0)) is PageStatus.DONE
        assert page_status(best) is PageStatus.DONE
        assert page_status(_billing()) is PageStatus.PAUSED
        assert page_status(other) is PageStatus.ERROR
        assert page_status(exhausted) is PageStatus.ERROR


class TestBookRunner:
    """Running whole books."""

    def test_all_pages_done(self):
        runner = BookRunner(_orchestrator({i: _success(i) for i in range(4)}), max_concurrent_pages=2)
        try:
            job = runner.run(_pages(4))
        finally:
            runner.shutdown()

        assert job.finished
        assert [r.status for r in job.snapshot()] == [PageStatus.DONE] * 4
        assert [r.page_index for r in job.snapshot()] == [0, 1, 2, 3]
        assert runner.get(job.job_id) is job

    def test_billing_abort_pauses_remaining_pages(self):
        outcomes = {0: _success(0), 1: _billing(), 2: _success(2), 3: _success(3)}
        orch = _orchestrator(outcomes)
        runner = BookRunner(orch, max_concurrent_pages=1)
        try:
            job = runner.run(_pages(4))
        finally:
            runner.shutdown()

        statuses = [r.status for r in job.snapshot()]
        assert statuses == [PageStatus.DONE, PageStatus.PAUSED, PageStatus.PAUSED, PageStatus.PAUSED]
        assert orch.run.call_count == 2
        assert job.paused
        assert job.pause_reason == _billing().reason
        assert job.snapshot()[3].pause_reason == _billing().reason
        assert job.finished

    def test_unfinished_pages_report_generating(self):
        release = threading.Event()
        started = threading.Event()

        def run(request):
            started.set()
            release.wait(timeout=5)
            return _success(request.page_index)

        orch = MagicMock()
        orch.run.side_effect = run
        runner = BookRunner(orch, max_concurrent_pages=1)
        try:
            job = runner.start(_pages(2))
            assert started.wait(timeout=5)
            assert [r.status for r in job.snapshot()] == [PageStatus.GENERATING] * 2
            assert not job.finished
            release.set()
            assert job.wait(timeout=5)
        finally:
            release.set()
            runner.shutdown()

        assert [r.status for r in job.snapshot()] == [PageStatus.DONE] * 2

    def test_crashing_page_reports_error(self):
        orch = MagicMock()
        orch.run.side_effect = RuntimeError("boom")
        runner = BookRunner(orch, max_concurrent_pages=1)
        try:
            job = runner.run(_pages(1))
        finally:
            runner.shutdown()

        report = job.snapshot()[0]
        assert report.status is PageStatus.ERROR
        assert "boom" in report.error
        assert job.finished


class TestJobRetention:
    """Finished jobs are forgotten past max_retained_jobs."""

    def test_oldest_finished_jobs_are_forgotten(self):
        runner = BookRunner(
            _orchestrator({0: _success(0)}), max_concurrent_pages=1, max_retained_jobs=2
        )
        try:
            jobs = [runner.run(_pages(1)) for _ in range(3)]
        finally:
            runner.shutdown()

        assert runner.get(jobs[0].job_id) is None
        assert runner.get(jobs[1].job_id) is jobs[1]
        assert runner.get(jobs[2].job_id) is jobs[2]

    def test_unfinished_jobs_are_kept(self):
        release = threading.Event()

        def run(request):
            release.wait(timeout=5)
            return _success(request.page_index)

        orch = MagicMock()
        orch.run.side_effect = run
        runner = BookRunner(orch, max_concurrent_pages=1, max_retained_jobs=1)
        try:
            first = runner.start(_pages(1))
            second = runner.start(_pages(1))
            assert runner.get(first.job_id) is first
            assert runner.get(second.job_id) is second
            release.set()
            assert second.wait(timeout=5)
            third = runner.start(_pages(1))
            assert third.wait(timeout=5)
        finally:
            release.set()
            runner.shutdown()

        assert runner.get(first.job_id) is None
        assert runner.get(second.job_id) is None
        assert runner.get(third.job_id) is third


class TestValidation:
    def test_duplicate_page_indices_rejected(self):
        pages = [GenerationRequest(page_index=1, prompt="a"), GenerationRequest(page_index=1, prompt="b")]
        with pytest.raises(ValueError):
            BookJob(pages)

    def test_pool_size_must_be_positive(self):
        with pytest.raises(ValueError):
            BookRunner(MagicMock(), max_concurrent_pages=0)

    def test_retention_must_be_positive(self):
        with pytest.raises(ValueError):
            BookRunner(MagicMock(), max_retained_jobs=0)
