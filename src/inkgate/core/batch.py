"""Multi-page book runs on a bounded worker pool.

Each page of a book is an independent :class:`GenerationRequest` serviced by
its own orchestrator session. :class:`BookRunner` runs those sessions on a
``ThreadPoolExecutor`` of ``max_concurrent_pages`` workers; sessions share no
mutable state, only the (stateless) orchestrator.

Pause Propagation
-----------------
A billing or quota abort on any page means every later provider call would
fail the same way. Once one page aborts with a pausable error the job stops
starting new pages: pages already running finish normally, pages not yet
started are reported as ``paused`` with the same reason.

Page Status
-----------
========================  ============
Page state                PageStatus
========================  ============
not finished yet          GENERATING
Success / BestEffort      DONE
Aborted (billing, quota)  PAUSED
Aborted (other)           ERROR
Exhausted                 ERROR
skipped after a pause     PAUSED
========================  ============
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from .models import Aborted, BestEffort, GenerationRequest, Outcome, Success
from .orchestrator import RetryOrchestrator

logger = logging.getLogger(__name__)


class PageStatus(str, Enum):
    DONE = "done"
    PAUSED = "paused"
    ERROR = "error"
    GENERATING = "generating"


def page_status(outcome: Outcome | None) -> PageStatus:
    """Map a session outcome (or its absence) onto a caller-facing status."""
    if outcome is None:
        return PageStatus.GENERATING
    if isinstance(outcome, (Success, BestEffort)):
        return PageStatus.DONE
    if isinstance(outcome, Aborted) and outcome.error_class.pausable:
        return PageStatus.PAUSED
    return PageStatus.ERROR


@dataclass(frozen=True)
class PageReport:
    """Point-in-time view of one page in a book job.

    ``outcome`` is None while the page is generating and for pages skipped
    after a pause. ``pause_reason`` is set for skipped pages only; ``error``
    describes an unexpected exception raised while running the page.
    """

    page_index: int
    status: PageStatus
    outcome: Outcome | None = None
    pause_reason: str | None = None
    error: str | None = None


class BookJob:
    """Tracks the pages of one book run. Safe to read from any thread.

    Attributes:
        job_id: Random identifier used by the HTTP layer.
        requests: Page requests in submission order.
    """

    def __init__(self, requests: Sequence[GenerationRequest], job_id: str | None = None) -> None:
        indices = [r.page_index for r in requests]
        if len(set(indices)) != len(indices):
            raise ValueError("page_index values must be unique within a book")
        self.job_id = job_id or uuid.uuid4().hex
        self.requests = list(requests)
        self._lock = threading.Lock()
        self._outcomes: dict[int, Outcome] = {}
        self._skipped: set[int] = set()
        self._crashed: dict[int, str] = {}
        self._pause: Aborted | None = None
        self._futures: list = []

    # -- State updates (worker threads) -------------------------------------

    def _claim(self, page_index: int) -> bool:
        """Return True if the page may start; mark it skipped otherwise."""
        with self._lock:
            if self._pause is not None:
                self._skipped.add(page_index)
                return False
            return True

    def _crash(self, page_index: int, error: BaseException) -> None:
        with self._lock:
            self._crashed[page_index] = f"{type(error).__name__}: {error}"

    def _complete(self, page_index: int, outcome: Outcome) -> None:
        with self._lock:
            self._outcomes[page_index] = outcome
            if (
                self._pause is None
                and isinstance(outcome, Aborted)
                and outcome.error_class.pausable
            ):
                self._pause = outcome
                logger.warning(
                    "Book %s paused by page %d: %s", self.job_id, page_index, outcome.reason
                )

    # -- Read side ----------------------------------------------------------

    @property
    def paused(self) -> bool:
        with self._lock:
            return self._pause is not None

    @property
    def pause_reason(self) -> str | None:
        with self._lock:
            return self._pause.reason if self._pause is not None else None

    @property
    def finished(self) -> bool:
        with self._lock:
            done = len(self._outcomes) + len(self._skipped) + len(self._crashed)
            return done == len(self.requests)

    def snapshot(self) -> list[PageReport]:
        """Return one report per page, in submission order."""
        with self._lock:
            reports = []
            for request in self.requests:
                index = request.page_index
                if index in self._skipped:
                    reports.append(
                        PageReport(
                            page_index=index,
                            status=PageStatus.PAUSED,
                            pause_reason=self._pause.reason if self._pause else None,
                        )
                    )
                    continue
                if index in self._crashed:
                    reports.append(
                        PageReport(
                            page_index=index,
                            status=PageStatus.ERROR,
                            error=self._crashed[index],
                        )
                    )
                    continue
                outcome = self._outcomes.get(index)
                reports.append(
                    PageReport(page_index=index, status=page_status(outcome), outcome=outcome)
                )
            return reports

    def wait(self, timeout: float | None = None) -> bool:
        """Block until every page has finished or been skipped.

        Returns:
            True if the job finished within ``timeout``.
        """
        wait(self._futures, timeout=timeout)
        return self.finished


class BookRunner:
    """Runs book jobs with at most ``max_concurrent_pages`` sessions at once.

    Finished jobs are kept for polling, oldest first, up to
    ``max_retained_jobs``. Starting a job past that limit forgets the oldest
    finished ones. Unfinished jobs are never forgotten.

    Args:
        orchestrator: Shared, stateless orchestrator.
        max_concurrent_pages: Worker pool size.
        max_retained_jobs: Number of jobs kept in memory.
    """

    def __init__(
        self,
        orchestrator: RetryOrchestrator,
        max_concurrent_pages: int = 3,
        max_retained_jobs: int = 100,
    ) -> None:
        if max_concurrent_pages < 1:
            raise ValueError("max_concurrent_pages must be >= 1")
        if max_retained_jobs < 1:
            raise ValueError("max_retained_jobs must be >= 1")
        self.orchestrator = orchestrator
        self.max_retained_jobs = max_retained_jobs
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent_pages, thread_name_prefix="inkgate-page"
        )
        self._jobs: OrderedDict[str, BookJob] = OrderedDict()
        self._lock = threading.Lock()

    def start(self, requests: Sequence[GenerationRequest]) -> BookJob:
        """Submit every page and return immediately with the job handle."""
        job = BookJob(requests)
        with self._lock:
            self._jobs[job.job_id] = job
            self._evict()
        logger.info("Starting book %s with %d pages", job.job_id, len(job.requests))
        job._futures = [self._executor.submit(self._run_page, job, r) for r in job.requests]
        return job

    def run(self, requests: Sequence[GenerationRequest]) -> BookJob:
        """Run every page to completion and return the finished job."""
        job = self.start(requests)
        job.wait()
        return job

    def get(self, job_id: str) -> BookJob | None:
        with self._lock:
            return self._jobs.get(job_id)

    def shutdown(self) -> None:
        """Stop accepting jobs and wait for running pages to finish."""
        self._executor.shutdown(wait=True)

    def _run_page(self, job: BookJob, request: GenerationRequest) -> None:
        if not job._claim(request.page_index):
            logger.info("Book %s: page %d not started (paused)", job.job_id, request.page_index)
            return
        try:
            outcome = self.orchestrator.run(request)
        except Exception as e:
            logger.exception("Book %s: page %d crashed", job.job_id, request.page_index)
            job._crash(request.page_index, e)
            return
        job._complete(request.page_index, outcome)

    def _evict(self) -> None:
        # Caller holds self._lock.
        excess = len(self._jobs) - self.max_retained_jobs
        if excess <= 0:
            return
        for job_id in [jid for jid, job in self._jobs.items() if job.finished][:excess]:
            del self._jobs[job_id]
            logger.debug("Forgot finished book %s", job_id)
