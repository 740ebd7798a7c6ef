"""Inkgate — FastAPI Application.

This module is the single entry point for the web service.  It defines the
FastAPI ``app`` instance, the REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
- **Generation** is performed by a shared
  :class:`~inkgate.core.orchestrator.RetryOrchestrator`, created at startup
  and stored on ``app.state``.  A page request blocks for at most the
  wall-clock budget plus one in-flight attempt, so it runs in the
  threadpool rather than on the event loop.
- **Book runs** are handed to a :class:`~inkgate.core.batch.BookRunner`
  and polled by job id.  Jobs live in memory only; the oldest finished
  jobs are dropped past ``max_retained_jobs``.
- **Outcome mapping** lives in :meth:`PageResult.from_outcome`: best-effort
  results are reported as ``done`` with ``degraded=true``.

Endpoints
---------
========  ==========================  ====================================
Method    Path                        Purpose
========  ==========================  ====================================
POST      ``/api/pages/generate``     Generate one page (blocking)
POST      ``/api/books/generate``     Start a multi-page book job
GET       ``/api/books/{job_id}``     Per-page status of a book job
GET       ``/api/health``             Version and provider info
========  ==========================  ====================================

Usage
-----
CLI (installed entry point)::

    inkgate

Direct invocation::

    python -m inkgate.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from inkgate import __version__
from inkgate.api.models import BookGenerateRequest, BookStatus, PageGenerateRequest, PageResult
from inkgate.core.batch import BookRunner
from inkgate.core.config import InkgateConfig, config
from inkgate.core.orchestrator import RetryOrchestrator
from inkgate.core.validator import LineArtValidator
from inkgate.providers import ImageProvider, create_identity_checker, create_provider

logger = logging.getLogger(__name__)


def create_app(
    cfg: InkgateConfig | None = None,
    provider: ImageProvider | None = None,
    orchestrator: RetryOrchestrator | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        cfg: Configuration; the global ``config`` when omitted.
        provider: Image provider; built from ``cfg`` when omitted.
        orchestrator: Pre-built orchestrator (tests inject one with a fake
            clock). Built from ``provider`` and ``cfg`` when omitted.

    Returns:
        Configured application. Collaborators are created on startup.
    """
    cfg = cfg or config

    # -----------------------------------------------------------------------
    # Application lifecycle: orchestrator and book runner setup/teardown.
    # -----------------------------------------------------------------------
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # --- Startup -------------------------------------------------------
        orch = orchestrator
        if orch is None:
            orch = RetryOrchestrator(
                provider=provider or create_provider(cfg),
                policy=cfg.retry_policy(),
                validator=LineArtValidator(identity_checker=create_identity_checker(cfg)),
            )
        app.state.orchestrator = orch
        app.state.book_runner = BookRunner(
            orch,
            max_concurrent_pages=cfg.max_concurrent_pages,
            max_retained_jobs=cfg.max_retained_jobs,
        )
        app.state.provider_name = cfg.provider
        logger.info(
            "Orchestrator ready (provider=%s, max_attempts=%d).",
            orch.provider.name,
            orch.policy.max_attempts,
        )

        yield  # Application runs here.

        # --- Shutdown ------------------------------------------------------
        app.state.book_runner.shutdown()
        orch.provider.close()
        logger.info("Book runner stopped and provider closed on shutdown.")

    app = FastAPI(
        title="Inkgate",
        description="Quality-gated coloring page generation with bounded retries.",
        version=__version__,
        lifespan=lifespan,
    )

    # Allow cross-origin requests so a separately served frontend can call
    # the API during development.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Routes.
    # -----------------------------------------------------------------------

    @app.get("/api/health")
    async def health() -> dict:
        """Report the service version and the active provider."""
        orch: RetryOrchestrator = app.state.orchestrator
        return {
            "status": "ok",
            "version": __version__,
            "provider": orch.provider.get_info(),
            "max_attempts": orch.policy.max_attempts,
        }

    @app.post("/api/pages/generate", response_model=PageResult)
    async def generate_page(req: PageGenerateRequest) -> PageResult:
        """Generate one coloring page.

        Runs a full orchestrator session. The response status is ``done``
        (possibly ``degraded``), ``paused`` for billing/quota aborts or
        ``error`` for hard failures and exhaustion without a usable image.

        Args:
            req: Validated :class:`PageGenerateRequest` payload.

        Returns:
            The page's :class:`PageResult`.
        """
        orch: RetryOrchestrator = app.state.orchestrator
        outcome = await run_in_threadpool(orch.run, req.to_generation_request())
        return PageResult.from_outcome(req.page_index, outcome)

    @app.post("/api/books/generate", status_code=202)
    async def generate_book(req: BookGenerateRequest) -> dict:
        """Start generating every page of a book in the background.

        Raises:
            HTTPException: 400 if page indices are not unique.
        """
        runner: BookRunner = app.state.book_runner
        try:
            job = runner.start([p.to_generation_request() for p in req.pages])
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        return {"job_id": job.job_id, "pages": len(job.requests)}

    @app.get("/api/books/{job_id}", response_model=BookStatus)
    async def get_book(job_id: str) -> BookStatus:
        """Return per-page statuses for a book job.

        Raises:
            HTTPException: 404 if the job is unknown.
        """
        runner: BookRunner = app.state.book_runner
        job = runner.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Book job not found")
        return BookStatus(
            job_id=job.job_id,
            finished=job.finished,
            paused=job.paused,
            pause_reason=job.pause_reason,
            pages=[PageResult.from_report(r) for r in job.snapshot()],
        )

    return app


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from :data:`~inkgate.core.config.config`
    (``INKGATE_SERVER_HOST``, ``INKGATE_SERVER_PORT``, ``INKGATE_LOG_LEVEL``).
    Defaults to ``0.0.0.0:7860``.

    This function is registered as the ``inkgate`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "inkgate.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
