"""OpenAI Images API provider.

Calls ``client.images.generate`` and decodes the ``b64_json`` payloads with
Pillow. The SDK's own retry loop is disabled (``max_retries=0``) because
retrying, backoff and budgeting belong to the orchestrator.

Error Mapping
-------------
===============================  =====================================
SDK exception                    ProviderError
===============================  =====================================
``APIStatusError``               code from the error body, HTTP status
``APITimeoutError``              ``code="timeout"``, no status
``APIConnectionError``           ``code="network_error"``, no status
malformed payload                ``code="invalid_response"``, no status
===============================  =====================================

Environment:
    INKGATE_OPENAI_API_KEY: API key (falls back to OPENAI_API_KEY).
"""

from __future__ import annotations

import logging
import os
from typing import Any

from PIL import Image

from inkgate.core.errors import ProviderError
from inkgate.core.imaging import decode_image_base64

from .base import ImageProvider

logger = logging.getLogger(__name__)

# The Images API accepts at most this many images per call for GPT image models.
MAX_IMAGES_PER_CALL = 4


class OpenAIImageProvider(ImageProvider):
    """Image provider backed by the OpenAI Images API.

    Example:
        >>> provider = OpenAIImageProvider(api_key="sk-...")
        >>> images = provider.generate("A fox in a meadow.", "1024x1536")
    """

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-image-1",
        timeout: float = 90.0,
        client: Any = None,
    ) -> None:
        """Initialize the provider.

        Args:
            api_key: OpenAI API key. Falls back to OPENAI_API_KEY.
            model: Image model identifier.
            timeout: Per-request timeout in seconds.
            client: Pre-built client (used by tests); built lazily otherwise.
        """
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self._model = model
        self._timeout = timeout
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            if not self._api_key:
                raise ProviderError(
                    "OpenAI API key not configured",
                    code="invalid_api_key",
                    http_status=401,
                )
            from openai import OpenAI

            self._client = OpenAI(api_key=self._api_key, timeout=self._timeout, max_retries=0)
        return self._client

    def generate(self, prompt: str, size: str, count: int = 1) -> list[Image.Image]:
        import openai

        client = self._get_client()
        n = max(1, min(count, MAX_IMAGES_PER_CALL))
        logger.info("Requesting %d image(s) from %s at %s", n, self._model, size)

        try:
            response = client.images.generate(model=self._model, prompt=prompt, n=n, size=size)
        except openai.APITimeoutError as e:
            raise ProviderError(str(e), code="timeout") from e
        except openai.APIConnectionError as e:
            raise ProviderError(str(e), code="network_error") from e
        except openai.APIStatusError as e:
            raise ProviderError(
                e.message,
                code=_error_code(e),
                http_status=e.status_code,
                request_id=e.request_id,
            ) from e

        images: list[Image.Image] = []
        for item in response.data or []:
            payload = getattr(item, "b64_json", None)
            if not payload:
                continue
            try:
                images.append(decode_image_base64(payload))
            except ValueError as e:
                raise ProviderError(str(e), code="invalid_response") from e
        return images

    def get_info(self) -> dict[str, Any]:
        return {"name": self.name, "model": self._model}


def _error_code(error: Any) -> str | None:
    """Extract the machine-readable code from an ``APIStatusError``.

    The SDK exposes ``code`` directly for most errors; older payloads only
    carry it inside ``body["error"]`` or as the error ``type``.
    """
    code = getattr(error, "code", None)
    if code:
        return code
    body = getattr(error, "body", None)
    if isinstance(body, dict):
        inner = body.get("error", body)
        if isinstance(inner, dict):
            return inner.get("code") or inner.get("type")
    return None
