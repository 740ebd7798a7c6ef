"""Data model for page generation sessions.

Request and verdict types are Pydantic models (validated, immutable input
data). Attempt records and outcomes are dataclasses because they carry PIL
images, which Pydantic does not validate.

Outcome Variants
----------------
Every session resolves to exactly one of:

- :class:`Success` - a candidate passed the quality gate (or validation is
  disabled for the request).
- :class:`BestEffort` - the budget ran out but a non-defective candidate was
  kept. This is the canonical resolution of "exhausted with a usable image";
  callers decide how to present it (see ``degraded``).
- :class:`Exhausted` - the budget ran out and nothing usable was kept.
- :class:`Aborted` - the provider reported a non-retryable failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Union

from PIL import Image
from pydantic import BaseModel, ConfigDict, Field

from .errors import DefectKind, ErrorClass

ImageSize = Literal["1024x1024", "1024x1536", "1536x1024"]
ComplexityTier = Literal["simple", "medium", "detailed"]


class GenerationRequest(BaseModel):
    """A single page request. Immutable for the lifetime of its session.

    Attributes:
        page_index: Zero-based index of the page within its book.
        prompt: Base prompt text sent unmodified on attempt 1.
        size: Target image size in ``WIDTHxHEIGHT`` form.
        identity_mode: Whether the page must keep a recurring character's identity.
        character_description: Reference description used by identity checks.
        validate_outline: Run the line-art purity check.
        validate_identity: Run the character identity check (identity mode only).
        validate_composition: Run the composition/coverage check.
        complexity: Complexity tier; sets the allowed ink ratio.
    """

    model_config = ConfigDict(frozen=True)

    page_index: int = Field(default=0, ge=0)
    prompt: str = Field(..., min_length=1)
    size: ImageSize = "1024x1536"
    identity_mode: bool = False
    character_description: str | None = None
    validate_outline: bool = True
    validate_identity: bool = True
    validate_composition: bool = True
    complexity: ComplexityTier = "medium"

    @property
    def validation_enabled(self) -> bool:
        """True when at least one quality check applies to this request."""
        return (
            self.validate_outline
            or self.validate_composition
            or (self.identity_mode and self.validate_identity)
        )

    @property
    def dimensions(self) -> tuple[int, int]:
        """Target ``(width, height)`` parsed from :attr:`size`."""
        width, height = self.size.split("x")
        return int(width), int(height)


class CheckResult(BaseModel):
    """Outcome of one named quality sub-check."""

    model_config = ConfigDict(frozen=True)

    passed: bool
    notes: str = ""


class ValidationVerdict(BaseModel):
    """Quality gate decision for one sanitized candidate.

    Attributes:
        passed: Overall pass/fail.
        outline: Line-art purity sub-check.
        identity: Character identity sub-check.
        composition: Composition/coverage sub-check.
        reinforcement: Text to inject into the next prompt, if any.
        defect: Persistent defect detected during validation, if any.
    """

    model_config = ConfigDict(frozen=True)

    passed: bool
    outline: CheckResult | None = None
    identity: CheckResult | None = None
    composition: CheckResult | None = None
    reinforcement: str | None = None
    defect: DefectKind | None = None

    @classmethod
    def for_defect(cls, kind: DefectKind) -> "ValidationVerdict":
        """Synthesize a failing verdict for a sanitizer-detected defect.

        The reinforcement targets the defect so the next prompt can correct it.
        """
        if kind is DefectKind.DARK_BACKGROUND:
            notes = "Candidate has a dark or inverted background."
            reinforcement = (
                "CRITICAL: The background MUST be pure white paper (#FFFFFF). "
                "Draw black outlines on white. Do NOT invert colors. "
                "Do NOT use a black or dark background."
            )
        else:
            notes = "Candidate is blank; no line art was drawn."
            reinforcement = (
                "CRITICAL: Draw the full scene as clear black outlines. "
                "The page must not be empty."
            )
        return cls(
            passed=False,
            outline=CheckResult(passed=False, notes=notes),
            reinforcement=reinforcement,
            defect=kind,
        )

    def failure_notes(self) -> str:
        """Join the notes of every failing sub-check."""
        notes = [
            check.notes
            for check in (self.outline, self.identity, self.composition)
            if check is not None and not check.passed and check.notes
        ]
        return "; ".join(notes) or "validation failed"


@dataclass(frozen=True, order=True)
class AttemptId:
    """Session-scoped attempt identifier. Orders by ordinal within a session."""

    ordinal: int
    session_id: str

    def __str__(self) -> str:
        return f"{self.session_id}-{self.ordinal:03d}"


@dataclass
class Attempt:
    """Record of one provider-call -> sanitize -> validate cycle."""

    attempt_id: AttemptId
    prompt: str
    raw_image: Image.Image | None = None
    image: Image.Image | None = None
    verdict: ValidationVerdict | None = None
    error_class: ErrorClass | None = None
    defect: DefectKind | None = None
    duration_s: float = 0.0

    @property
    def ordinal(self) -> int:
        return self.attempt_id.ordinal


@dataclass(frozen=True)
class Candidate:
    """A kept image together with the attempt that produced it."""

    image: Image.Image
    attempt_id: AttemptId


class ExhaustionReason(str, Enum):
    """Why a session ran out of budget without a usable image."""

    PERSISTENT_DEFECT = "PERSISTENT_DEFECT"
    NO_CANDIDATE = "NO_CANDIDATE"


@dataclass(frozen=True)
class Success:
    image: Image.Image
    attempt_id: AttemptId
    attempts: int


@dataclass(frozen=True)
class BestEffort:
    """Budget exhausted with a kept, non-defective candidate.

    ``last_verdict`` is the most recent failing verdict, used by callers to
    explain why the image is degraded.
    """

    image: Image.Image
    attempt_id: AttemptId
    attempts: int
    last_verdict: ValidationVerdict | None = None
    degraded: bool = True


@dataclass(frozen=True)
class Exhausted:
    reason: ExhaustionReason
    attempts: int
    defect: DefectKind | None = None
    detail: str = ""

    @property
    def image(self) -> None:
        return None


@dataclass(frozen=True)
class Aborted:
    """Session stopped on a non-retryable provider failure."""

    error_class: ErrorClass
    attempts: int
    code: str | None = None
    message: str = ""
    reason: str = ""
    action_hint: str | None = None

    @property
    def image(self) -> None:
        return None


Outcome = Union[Success, BestEffort, Exhausted, Aborted]
