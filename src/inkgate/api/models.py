"""Pydantic request and response models for the Inkgate API.

These models define the JSON schema for every API endpoint.  FastAPI uses
them for automatic request validation, serialisation, and OpenAPI
documentation generation.

Models
------
PageGenerateRequest
    Payload for ``POST /api/pages/generate`` — one page request with its
    feature flags.
PageResult
    Response for a single page, also used per page in book status.
BookGenerateRequest
    Payload for ``POST /api/books/generate`` — a list of page requests.
BookStatus
    Response for ``GET /api/books/{job_id}``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from inkgate.core.batch import PageReport, PageStatus, page_status
from inkgate.core.imaging import encode_png_base64
from inkgate.core.models import (
    Aborted,
    BestEffort,
    ComplexityTier,
    Exhausted,
    GenerationRequest,
    ImageSize,
    Outcome,
    Success,
)


class PageGenerateRequest(BaseModel):
    """Request body for the ``POST /api/pages/generate`` endpoint.

    Attributes:
        page_index: Zero-based index of the page within its book.
        prompt: Base prompt describing the page.
        size: Target image size.
        identity_mode: Keep a recurring character consistent across pages.
        character_description: Reference description for identity checks.
        validate_outline: Run the line-art purity check.
        validate_identity: Run the identity check (identity mode only).
        validate_composition: Run the composition/coverage check.
        complexity: Complexity tier; sets the allowed ink ratio.
    """

    page_index: int = Field(default=0, ge=0, description="Zero-based page index.")
    prompt: str = Field(..., min_length=1, description="Base prompt for the page.")
    size: ImageSize = Field(default="1024x1536", description="Target size, WIDTHxHEIGHT.")
    identity_mode: bool = Field(
        default=False,
        description="Keep a recurring character's identity consistent.",
    )
    character_description: str | None = Field(
        default=None,
        description="Reference description of the character (identity mode).",
    )
    validate_outline: bool = Field(default=True, description="Run the outline purity check.")
    validate_identity: bool = Field(default=True, description="Run the identity check.")
    validate_composition: bool = Field(
        default=True,
        description="Run the composition/coverage check.",
    )
    complexity: ComplexityTier = Field(default="medium", description="Page complexity tier.")

    def to_generation_request(self) -> GenerationRequest:
        return GenerationRequest(**self.model_dump())


class PageResult(BaseModel):
    """Response for one page.

    Attributes:
        page_index: Echo of the request's page index.
        status: ``done``, ``paused``, ``error`` or ``generating``.
        image_base64: Base64 PNG of the kept image, when present.
        attempts: Number of attempts the session made.
        degraded: True when the image is a best-effort result that did not
            pass every quality check.
        warning: Explanation shown alongside a degraded image.
        error_code: Provider error code (aborts) or exhaustion reason.
        pause_reason: User-facing reason for paused or failed pages.
        action_hint: What the user can do to resume, for paused pages.
    """

    page_index: int
    status: PageStatus
    image_base64: str | None = None
    attempts: int = 0
    degraded: bool = False
    warning: str | None = None
    error_code: str | None = None
    pause_reason: str | None = None
    action_hint: str | None = None

    @classmethod
    def from_outcome(cls, page_index: int, outcome: Outcome | None) -> "PageResult":
        """Translate an orchestrator outcome into the HTTP response shape."""
        status = page_status(outcome)
        if isinstance(outcome, Success):
            return cls(
                page_index=page_index,
                status=status,
                image_base64=encode_png_base64(outcome.image),
                attempts=outcome.attempts,
            )
        if isinstance(outcome, BestEffort):
            notes = outcome.last_verdict.failure_notes() if outcome.last_verdict else None
            warning = "Image did not pass every quality check after all attempts."
            if notes:
                warning = f"{warning} Last issue: {notes}"
            return cls(
                page_index=page_index,
                status=status,
                image_base64=encode_png_base64(outcome.image),
                attempts=outcome.attempts,
                degraded=True,
                warning=warning,
            )
        if isinstance(outcome, Aborted):
            return cls(
                page_index=page_index,
                status=status,
                attempts=outcome.attempts,
                error_code=outcome.code or outcome.error_class.value,
                pause_reason=outcome.reason,
                action_hint=outcome.action_hint,
            )
        if isinstance(outcome, Exhausted):
            return cls(
                page_index=page_index,
                status=status,
                attempts=outcome.attempts,
                error_code=outcome.reason.value,
                pause_reason=outcome.detail or None,
            )
        return cls(page_index=page_index, status=status)

    @classmethod
    def from_report(cls, report: PageReport) -> "PageResult":
        if report.outcome is None:
            return cls(
                page_index=report.page_index,
                status=report.status,
                pause_reason=report.pause_reason or report.error,
            )
        return cls.from_outcome(report.page_index, report.outcome)


class BookGenerateRequest(BaseModel):
    """Request body for the ``POST /api/books/generate`` endpoint.

    Attributes:
        pages: Page requests; ``page_index`` values must be unique.
    """

    pages: list[PageGenerateRequest] = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Pages to generate (1-100).",
    )


class BookStatus(BaseModel):
    """Response for ``GET /api/books/{job_id}``."""

    job_id: str
    finished: bool
    paused: bool
    pause_reason: str | None = None
    pages: list[PageResult]
