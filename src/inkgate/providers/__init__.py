"""Image-synthesis providers.

Modules
-------
base
    ``ImageProvider`` abstract base class and its error contract.
openai_images
    OpenAI Images API provider (default).
openai_identity
    OpenAI vision check of character identity for identity-mode pages.
diffusers_local
    Local HuggingFace diffusers pipeline provider (``diffusers`` extra).

Use :func:`create_provider` to build the provider selected by configuration
and :func:`create_identity_checker` for the matching identity checker.
"""

from __future__ import annotations

import logging

from inkgate.core.config import InkgateConfig

from .base import ImageProvider
from .diffusers_local import DiffusersImageProvider
from .openai_identity import OpenAIIdentityChecker
from .openai_images import OpenAIImageProvider

logger = logging.getLogger(__name__)


def create_provider(cfg: InkgateConfig) -> ImageProvider:
    """Instantiate the provider named by ``cfg.provider``.

    Args:
        cfg: Application configuration.

    Returns:
        A ready-to-use provider. Heavy resources (SDK clients, model
        weights) are created lazily on the first ``generate()`` call.

    Raises:
        ValueError: If the provider name is unknown.
    """
    if cfg.provider == "openai":
        provider: ImageProvider = OpenAIImageProvider(
            api_key=cfg.openai_api_key,
            model=cfg.openai_image_model,
            timeout=cfg.openai_timeout_s,
        )
    elif cfg.provider == "diffusers":
        provider = DiffusersImageProvider(
            model_id=cfg.diffusers_model_id,
            device=cfg.device,
            torch_dtype=cfg.torch_dtype,
            steps=cfg.num_inference_steps,
            guidance_scale=cfg.guidance_scale,
        )
    else:
        raise ValueError(f"Unknown provider: {cfg.provider!r}")

    logger.info("Using image provider: %s", provider.get_info())
    return provider


def create_identity_checker(cfg: InkgateConfig) -> OpenAIIdentityChecker | None:
    """Build the character identity checker for ``cfg``.

    The vision check needs OpenAI credentials, so it is only available with
    the ``openai`` provider. Other providers get ``None`` and identity-mode
    pages skip the check.
    """
    if cfg.provider != "openai":
        logger.info("No identity checker for provider %s", cfg.provider)
        return None
    return OpenAIIdentityChecker(
        api_key=cfg.openai_api_key,
        model=cfg.identity_model,
        timeout=cfg.openai_timeout_s,
    )


__all__ = [
    "ImageProvider",
    "OpenAIImageProvider",
    "OpenAIIdentityChecker",
    "DiffusersImageProvider",
    "create_identity_checker",
    "create_provider",
]
