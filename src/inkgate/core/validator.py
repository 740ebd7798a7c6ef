"""Quality gate for sanitized coloring-page candidates.

The :class:`Validator` protocol is the orchestrator's view of the quality
gate: given a sanitized image and the request, return a
:class:`~inkgate.core.models.ValidationVerdict`. It never raises for a
well-formed image.

:class:`LineArtValidator` is the built-in implementation. It measures the
binarized image directly with Pillow:

- **Outline purity** - the ink share must stay under the complexity tier's
  limit. Pages that are half ink or more are marked with the
  ``DARK_BACKGROUND`` defect, which disqualifies them as best candidates.
- **Composition/coverage** - the artwork's bounding box must span most of the
  page height, and the bottom band must carry some ink.
- **Character identity** - delegated to an injected checker, because it
  needs a vision model and the request's character description
  (:class:`~inkgate.providers.openai_identity.OpenAIIdentityChecker` with
  the openai provider). Without one the check is skipped and passes with
  a note.

Each failing check adds one targeted line to the verdict's reinforcement,
which the prompt composer appends on the next attempt.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from PIL import Image, ImageOps

from .errors import DefectKind
from .imaging import DARK_LUMINANCE, luminance_ratio_below
from .models import CheckResult, GenerationRequest, ValidationVerdict

logger = logging.getLogger(__name__)

IdentityChecker = Callable[[Image.Image, GenerationRequest], CheckResult]

# Maximum ink share per complexity tier.
COMPLEXITY_INK_LIMITS: dict[str, float] = {
    "simple": 0.18,
    "medium": 0.25,
    "detailed": 0.30,
}

DARK_PAGE_INK_RATIO = 0.5

OUTLINE_REINFORCEMENT = (
    "CRITICAL: Remove ALL black fills. Convert every dark area to OUTLINES ONLY "
    "with WHITE interiors. Use ONLY pure black lines on pure white."
)
COVERAGE_REINFORCEMENT = (
    "CRITICAL: Scale the subject up so the drawing fills 85-95% of the page height. "
    "Extend ground or scenery details to the bottom edge."
)
IDENTITY_REINFORCEMENT = (
    "CRITICAL: Keep the character EXACTLY as described: same species, face design "
    "and markings. Do not substitute or redesign the character."
)


class Validator(Protocol):
    """Runs quality checks on a sanitized candidate."""

    def check(self, image: Image.Image, request: GenerationRequest) -> ValidationVerdict: ...


class LineArtValidator:
    """Pillow-based quality gate for binarized line art.

    Args:
        identity_checker: Optional callable performing the character identity
            check for identity-mode requests.
        min_height_coverage: Minimum share of the page height the ink
            bounding box must span.
        bottom_band: Share of the page height, measured from the bottom,
            that must contain ink.
        min_bottom_ink: Minimum ink share inside the bottom band.
    """

    def __init__(
        self,
        identity_checker: IdentityChecker | None = None,
        min_height_coverage: float = 0.70,
        bottom_band: float = 0.15,
        min_bottom_ink: float = 0.005,
    ) -> None:
        self.identity_checker = identity_checker
        self.min_height_coverage = min_height_coverage
        self.bottom_band = bottom_band
        self.min_bottom_ink = min_bottom_ink

    def check(self, image: Image.Image, request: GenerationRequest) -> ValidationVerdict:
        gray = image.convert("L")
        reinforcement: list[str] = []
        defect: DefectKind | None = None

        outline = None
        if request.validate_outline:
            outline, defect = self._check_outline(gray, request.complexity)
            if not outline.passed:
                reinforcement.append(OUTLINE_REINFORCEMENT)

        composition = None
        if request.validate_composition:
            composition = self._check_composition(gray)
            if not composition.passed:
                reinforcement.append(COVERAGE_REINFORCEMENT)

        identity = None
        if request.identity_mode and request.validate_identity:
            identity = self._check_identity(image, request)
            if not identity.passed:
                reinforcement.append(IDENTITY_REINFORCEMENT)

        checks = [c for c in (outline, composition, identity) if c is not None]
        passed = all(c.passed for c in checks)
        logger.info(
            "Validation page=%d passed=%s (outline=%s, composition=%s, identity=%s)",
            request.page_index,
            passed,
            _flag(outline),
            _flag(composition),
            _flag(identity),
        )
        return ValidationVerdict(
            passed=passed,
            outline=outline,
            identity=identity,
            composition=composition,
            reinforcement="\n".join(reinforcement) or None,
            defect=defect,
        )

    def _check_outline(
        self, gray: Image.Image, complexity: str
    ) -> tuple[CheckResult, DefectKind | None]:
        ink_ratio = luminance_ratio_below(gray, DARK_LUMINANCE)
        limit = COMPLEXITY_INK_LIMITS.get(complexity, COMPLEXITY_INK_LIMITS["medium"])
        if ink_ratio >= DARK_PAGE_INK_RATIO:
            return (
                CheckResult(
                    passed=False,
                    notes=f"Page is {ink_ratio:.0%} ink; background is dark.",
                ),
                DefectKind.DARK_BACKGROUND,
            )
        if ink_ratio > limit:
            return (
                CheckResult(
                    passed=False,
                    notes=f"Ink ratio {ink_ratio:.1%} exceeds {limit:.0%} for {complexity} pages; "
                    "likely solid fills.",
                ),
                None,
            )
        return CheckResult(passed=True, notes=f"Ink ratio {ink_ratio:.1%}."), None

    def _check_composition(self, gray: Image.Image) -> CheckResult:
        width, height = gray.size
        # Ink becomes non-zero after inversion, so getbbox() frames the artwork.
        ink_mask = ImageOps.invert(gray).point(lambda p: 255 if p >= 256 - DARK_LUMINANCE else 0)
        bbox = ink_mask.getbbox()
        if bbox is None:
            return CheckResult(passed=False, notes="No artwork found.")

        height_coverage = (bbox[3] - bbox[1]) / height
        band_top = height - max(1, round(height * self.bottom_band))
        bottom_ink = luminance_ratio_below(gray.crop((0, band_top, width, height)), DARK_LUMINANCE)

        problems = []
        if height_coverage < self.min_height_coverage:
            problems.append(f"artwork spans only {height_coverage:.0%} of the page height")
        if bottom_ink < self.min_bottom_ink:
            problems.append("bottom of the page is empty")
        if problems:
            return CheckResult(passed=False, notes="; ".join(problems).capitalize() + ".")
        return CheckResult(passed=True, notes=f"Artwork spans {height_coverage:.0%} of the height.")

    def _check_identity(self, image: Image.Image, request: GenerationRequest) -> CheckResult:
        if self.identity_checker is None:
            return CheckResult(passed=True, notes="Identity check skipped: no checker configured.")
        return self.identity_checker(image, request)


def _flag(check: CheckResult | None) -> str:
    if check is None:
        return "skipped"
    return "pass" if check.passed else "fail"
