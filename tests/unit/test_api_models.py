"""Tests for inkgate.api.models — request validation and outcome mapping.

Tests cover:
- Request defaults and conversion to GenerationRequest.
- Validation errors for bad sizes, complexity tiers and page indices.
- PageResult mapping for every outcome variant.
"""

from __future__ import annotations

import base64

import pytest
from PIL import Image
from pydantic import ValidationError

from inkgate.api.models import BookGenerateRequest, PageGenerateRequest, PageResult
from inkgate.core.batch import PageReport, PageStatus
from inkgate.core.errors import DefectKind, ErrorClass
from inkgate.core.models import (
    Aborted,
    AttemptId,
    BestEffort,
    CheckResult,
    Exhausted,
    ExhaustionReason,
    Success,
    ValidationVerdict,
)


class TestPageGenerateRequest:
    """Request parsing."""

    def test_defaults(self):
        req = PageGenerateRequest(prompt="A fox.")
        assert req.page_index == 0
        assert req.size == "1024x1536"
        assert req.complexity == "medium"
        assert req.identity_mode is False

    def test_to_generation_request(self):
        req = PageGenerateRequest(
            page_index=4,
            prompt="A fox.",
            identity_mode=True,
            character_description="red fox with a scarf",
            validate_composition=False,
            complexity="simple",
        )
        gen = req.to_generation_request()
        assert gen.page_index == 4
        assert gen.identity_mode is True
        assert gen.character_description == "red fox with a scarf"
        assert gen.validate_composition is False
        assert gen.complexity == "simple"

    @pytest.mark.parametrize(
        "field, value",
        [("size", "512x512"), ("complexity", "extreme"), ("page_index", -1), ("prompt", "")],
    )
    def test_invalid_values(self, field, value):
        payload = {"prompt": "A fox.", field: value}
        with pytest.raises(ValidationError):
            PageGenerateRequest(**payload)

    def test_book_requires_pages(self):
        with pytest.raises(ValidationError):
            BookGenerateRequest(pages=[])


class TestPageResultFromOutcome:
    """Every outcome variant maps onto the response shape."""

    def test_success(self):
        outcome = Success(image=Image.new("L", (8, 8), 255), attempt_id=AttemptId(2, "s"), attempts=2)
        result = PageResult.from_outcome(3, outcome)
        assert result.status is PageStatus.DONE
        assert result.attempts == 2
        assert result.degraded is False
        assert base64.b64decode(result.image_base64).startswith(b"\x89PNG")

    def test_best_effort_is_degraded_done(self):
        verdict = ValidationVerdict(
            passed=False, composition=CheckResult(passed=False, notes="Bottom of the page is empty.")
        )
        outcome = BestEffort(
            image=Image.new("L", (8, 8), 255),
            attempt_id=AttemptId(12, "s"),
            attempts=12,
            last_verdict=verdict,
        )
        result = PageResult.from_outcome(0, outcome)
        assert result.status is PageStatus.DONE
        assert result.degraded is True
        assert "Bottom of the page is empty." in result.warning
        assert result.image_base64

    def test_billing_abort_is_paused(self):
        outcome = Aborted(
            error_class=ErrorClass.BILLING,
            attempts=1,
            code="billing_hard_limit_reached",
            reason="Generation paused: billing.",
            action_hint="Top up.",
        )
        result = PageResult.from_outcome(0, outcome)
        assert result.status is PageStatus.PAUSED
        assert result.error_code == "billing_hard_limit_reached"
        assert result.pause_reason == "Generation paused: billing."
        assert result.action_hint == "Top up."
        assert result.image_base64 is None

    def test_other_abort_is_error(self):
        outcome = Aborted(error_class=ErrorClass.OTHER, attempts=1, reason="Stopped.")
        result = PageResult.from_outcome(0, outcome)
        assert result.status is PageStatus.ERROR
        assert result.error_code == "other"
        assert result.action_hint is None

    def test_exhausted_is_error_with_reason_code(self):
        outcome = Exhausted(
            reason=ExhaustionReason.PERSISTENT_DEFECT,
            attempts=12,
            defect=DefectKind.DARK_BACKGROUND,
            detail="Every candidate was disqualified (dark_background).",
        )
        result = PageResult.from_outcome(1, outcome)
        assert result.status is PageStatus.ERROR
        assert result.error_code == "PERSISTENT_DEFECT"
        assert result.image_base64 is None

    def test_skipped_page_report(self):
        report = PageReport(page_index=5, status=PageStatus.PAUSED, pause_reason="Paused.")
        result = PageResult.from_report(report)
        assert result.status is PageStatus.PAUSED
        assert result.pause_reason == "Paused."

    def test_serialises_status_as_string(self):
        result = PageResult(page_index=0, status=PageStatus.GENERATING)
        assert result.model_dump(mode="json")["status"] == "generating"
