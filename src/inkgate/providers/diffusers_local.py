"""Local diffusers pipeline provider.

:class:`DiffusersImageProvider` runs a HuggingFace diffusers text-to-image
pipeline in-process. It is useful for offline development and for hosts
with a GPU, and it never reports billing or quota failures.

Key Behaviour
-------------
- **Lazy loading** - ``torch`` and ``diffusers`` are imported, and the
  pipeline is loaded, on the first ``generate()`` call.
- **Turbo-model enforcement** - models whose ID contains ``"turbo"``
  (case-insensitive) have ``guidance_scale`` forced to 0.0.
- **Fresh seeds** - every candidate gets its own random seed so retries
  explore different images.
- **Error wrapping** - CUDA out-of-memory becomes
  ``ProviderError(code="out_of_memory")``, any other runtime failure
  ``ProviderError(code="generation_failed")``; both are transient. A model
  that cannot be loaded is ``code="model_unavailable"`` with HTTP-like status
  503, also transient.

Usage
-----
::

    provider = DiffusersImageProvider(
        model_id="Tongyi-MAI/Z-Image-Turbo",
        device="cuda",
        torch_dtype="bfloat16",
    )
    images = provider.generate("A fox in a meadow.", "1024x1024")
    provider.close()
"""

from __future__ import annotations

import gc
import logging
import random
from typing import Any

from PIL import Image

from inkgate.core.errors import ProviderError

from .base import ImageProvider

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Dtype string -> torch dtype mapping, built lazily so torch is only imported
# when the provider is actually used.
# ---------------------------------------------------------------------------
_DTYPE_MAP: dict | None = None


def _get_dtype_map() -> dict:
    """Return the dtype string -> ``torch.dtype`` mapping."""
    global _DTYPE_MAP
    if _DTYPE_MAP is None:
        import torch

        _DTYPE_MAP = {
            "bfloat16": torch.bfloat16,
            "float16": torch.float16,
            "float32": torch.float32,
        }
    return _DTYPE_MAP


class DiffusersImageProvider(ImageProvider):
    """Image provider backed by a local diffusers pipeline.

    Attributes:
        model_id: HuggingFace identifier of the pipeline to load.
        device: Target device (``cuda``, ``mps`` or ``cpu``).
        torch_dtype: Dtype name, one of ``bfloat16``, ``float16``, ``float32``.
        steps: Number of inference steps per image.
        guidance_scale: Classifier-free guidance (forced to 0.0 for turbo models).
    """

    name = "diffusers"

    def __init__(
        self,
        model_id: str,
        device: str = "cuda",
        torch_dtype: str = "bfloat16",
        steps: int = 9,
        guidance_scale: float = 0.0,
    ) -> None:
        self.model_id = model_id
        self.device = device
        self.torch_dtype = torch_dtype
        self.steps = steps
        self.guidance_scale = guidance_scale
        self._pipeline = None

    def _load(self) -> Any:
        if self._pipeline is not None:
            return self._pipeline

        import torch
        from diffusers import AutoPipelineForText2Image

        dtype = _get_dtype_map().get(self.torch_dtype, torch.bfloat16)
        logger.info(
            "Loading model '%s' (dtype=%s, device=%s).", self.model_id, self.torch_dtype, self.device
        )
        try:
            pipeline = AutoPipelineForText2Image.from_pretrained(self.model_id, torch_dtype=dtype)
            self._pipeline = pipeline.to(self.device)
        except (OSError, RuntimeError, ValueError) as e:
            self._pipeline = None
            logger.exception("Failed to load model '%s'.", self.model_id)
            raise ProviderError(str(e), code="model_unavailable", http_status=503) from e
        logger.info("Model '%s' loaded successfully.", self.model_id)
        return self._pipeline

    def generate(self, prompt: str, size: str, count: int = 1) -> list[Image.Image]:
        pipeline = self._load()

        import torch

        width, height = (int(v) for v in size.split("x"))
        guidance = self.guidance_scale
        if "turbo" in self.model_id.lower() and guidance != 0.0:
            logger.warning(
                "Turbo model detected ('%s') - forcing guidance_scale from %.1f to 0.0.",
                self.model_id,
                guidance,
            )
            guidance = 0.0

        images: list[Image.Image] = []
        for _ in range(max(count, 1)):
            seed = random.randint(0, 2**32 - 1)
            generator = torch.Generator(device=self.device).manual_seed(seed)
            logger.info("Generating image: %dx%d, %d steps, seed=%d.", width, height, self.steps, seed)
            try:
                output = pipeline(
                    prompt=prompt,
                    width=width,
                    height=height,
                    num_inference_steps=self.steps,
                    guidance_scale=guidance,
                    generator=generator,
                )
            except torch.cuda.OutOfMemoryError as e:
                raise ProviderError(str(e), code="out_of_memory") from e
            except RuntimeError as e:
                raise ProviderError(str(e), code="generation_failed") from e
            images.extend(output.images[:1])
        return images

    def close(self) -> None:
        """Unload the pipeline and free GPU memory. Safe when nothing is loaded."""
        if self._pipeline is None:
            return

        logger.info("Unloading model '%s'.", self.model_id)
        self._pipeline = None
        gc.collect()

        try:
            import torch

            if torch.cuda.is_available():
                torch.cuda.empty_cache()
        except ImportError:
            pass

    @property
    def is_loaded(self) -> bool:
        return self._pipeline is not None

    def get_info(self) -> dict[str, Any]:
        return {"name": self.name, "model": self.model_id, "loaded": self.is_loaded}
