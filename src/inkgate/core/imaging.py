"""Small Pillow helpers shared by providers, collaborators and the API."""

from __future__ import annotations

import base64
import binascii
import io

from PIL import Image, UnidentifiedImageError

# Luminance below this is "dark" when judging the background.
DARK_LUMINANCE = 128

# Luminance below this becomes ink when binarizing.
BINARIZATION_THRESHOLD = 235


def encode_png_base64(image: Image.Image) -> str:
    """Serialize an image as a base64-encoded PNG string."""
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def decode_image_base64(payload: str) -> Image.Image:
    """Decode a base64 image payload into a loaded PIL image.

    Raises:
        ValueError: If the payload is not valid base64 image data.
    """
    try:
        raw = base64.b64decode(payload, validate=True)
        image = Image.open(io.BytesIO(raw))
        image.load()
    except (binascii.Error, UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Invalid image payload: {e}") from e
    return image


def luminance_ratio_below(gray: Image.Image, threshold: int) -> float:
    """Share of pixels in an ``L`` image with luminance below ``threshold``."""
    histogram = gray.histogram()[:256]
    total = sum(histogram)
    if total == 0:
        return 0.0
    return sum(histogram[:threshold]) / total
