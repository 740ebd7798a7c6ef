"""Base class for image-synthesis providers.

A provider turns a composed prompt into zero or more raw candidate images.
It is the orchestrator's only network-facing collaborator.

Contract
--------
- ``generate(prompt, size, count)`` returns a list of PIL images. The list
  may be empty even when the call succeeds; the orchestrator treats that as
  a transient failure.
- Every failure is raised as :class:`~inkgate.core.errors.ProviderError`
  with the provider's machine-readable ``code`` and ``http_status`` so that
  :func:`~inkgate.core.errors.classify` never needs the message text.
- Providers do not retry on their own. Retrying belongs to the orchestrator.

Creating a custom provider:

    >>> class StaticProvider(ImageProvider):
    ...     name = "static"
    ...
    ...     def generate(self, prompt, size, count=1):
    ...         return [Image.new("L", (64, 64), 255)]
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from PIL import Image


class ImageProvider(ABC):
    """Abstract base class for image providers.

    Attributes
    ----------
    name : str
        Short identifier used in logs and the health endpoint
    """

    name: str = "base"

    @abstractmethod
    def generate(self, prompt: str, size: str, count: int = 1) -> list[Image.Image]:
        """Generate raw candidate images.

        Args:
            prompt: Fully composed prompt for this attempt.
            size: Target size in ``WIDTHxHEIGHT`` form.
            count: Number of candidates requested.

        Returns
        -------
        list[Image.Image]
            Raw candidates, possibly empty.

        Raises
        ------
        ProviderError
            For every failure, carrying code and HTTP status.
        """

    def close(self) -> None:
        """Release provider resources. Default is a no-op."""

    def get_info(self) -> dict[str, Any]:
        return {"name": self.name}
