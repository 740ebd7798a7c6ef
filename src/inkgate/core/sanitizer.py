"""Candidate normalization to pure black line art on white.

Every raw candidate goes through a sanitizer before validation. The
sanitizer either returns a canonical image (``L`` mode, every pixel 0 or
255) or raises :class:`~inkgate.core.errors.DefectError` with the defect
class, which the orchestrator treats as a persistent defect: the candidate
is never kept.

Detection Rules
---------------
- **Dark background**: more than ``dark_background_ratio`` of pixels have
  luminance below 128. This covers inverted output (white lines on black)
  and fully black frames.
- **Blank canvas**: fewer than ``blank_ink_ratio`` of pixels would become ink
  after binarization.
"""

from __future__ import annotations

import logging
from typing import Protocol

from PIL import Image

from .errors import DefectError, DefectKind
from .imaging import BINARIZATION_THRESHOLD, DARK_LUMINANCE, luminance_ratio_below

logger = logging.getLogger(__name__)


class Sanitizer(Protocol):
    """Normalizes a raw candidate or raises DefectError."""

    def normalize(self, raw_image: Image.Image) -> Image.Image: ...


class ThresholdSanitizer:
    """Pillow-based sanitizer using luminance thresholds.

    Args:
        threshold: Luminance below which a pixel becomes ink.
        dark_background_ratio: Dark-pixel share above which the candidate
            is classified as a dark/inverted background.
        blank_ink_ratio: Ink share below which the candidate is blank.
    """

    def __init__(
        self,
        threshold: int = BINARIZATION_THRESHOLD,
        dark_background_ratio: float = 0.5,
        blank_ink_ratio: float = 0.002,
    ) -> None:
        if not 0 < threshold < 256:
            raise ValueError(f"threshold must be within 1-255, got {threshold}")
        self.threshold = threshold
        self.dark_background_ratio = dark_background_ratio
        self.blank_ink_ratio = blank_ink_ratio

    def normalize(self, raw_image: Image.Image) -> Image.Image:
        """Binarize ``raw_image`` to pure black on white.

        Raises:
            DefectError: For dark/inverted backgrounds and blank canvases.
            ValueError: For zero-sized images.
        """
        if raw_image.width == 0 or raw_image.height == 0:
            raise ValueError("Invalid image dimensions")

        gray = _to_grayscale(raw_image)
        dark_ratio = luminance_ratio_below(gray, DARK_LUMINANCE)
        ink_ratio = luminance_ratio_below(gray, self.threshold)

        if dark_ratio > self.dark_background_ratio:
            logger.warning("Dark background detected (dark_ratio=%.3f)", dark_ratio)
            raise DefectError(
                DefectKind.DARK_BACKGROUND, dark_ratio=dark_ratio, ink_ratio=ink_ratio
            )
        if ink_ratio < self.blank_ink_ratio:
            logger.warning("Blank canvas detected (ink_ratio=%.4f)", ink_ratio)
            raise DefectError(DefectKind.BLANK, dark_ratio=dark_ratio, ink_ratio=ink_ratio)

        threshold = self.threshold
        return gray.point(lambda p: 0 if p < threshold else 255)


def _to_grayscale(image: Image.Image) -> Image.Image:
    # Transparent pixels are flattened onto white so they never count as ink.
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        image = Image.alpha_composite(background, rgba)
    return image.convert("L")
