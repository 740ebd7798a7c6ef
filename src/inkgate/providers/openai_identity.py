"""Character identity check backed by an OpenAI vision model.

Identity-mode pages must show the same recurring character on every page.
:class:`OpenAIIdentityChecker` sends the sanitized candidate and the
request's ``character_description`` to a vision-capable chat model and asks
for a strict JSON verdict::

    {
      "detectedSpecies": "unicorn",
      "matchesSpecies": true,
      "matchesFace": true,
      "matchesProportions": true,
      "hasUnexpectedMarkings": false,
      "confidence": 0.9,
      "notes": "..."
    }

The candidate passes when the species matches, the face is not reported as
different, and no unexpected markings were found. An unparseable reply
fails the check. An API failure passes it with a note, so an outage of the
vision model never blocks generation.

The checker is a plain callable and plugs into
:class:`~inkgate.core.validator.LineArtValidator` as its ``identity_checker``.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from PIL import Image

from inkgate.core.imaging import encode_png_base64
from inkgate.core.models import CheckResult, GenerationRequest

logger = logging.getLogger(__name__)

IDENTITY_PROMPT = """You are a strict QA validator for coloring book images.

Analyze this image and determine if the main character matches the required identity.

REQUIRED CHARACTER:
{description}

Respond with ONLY valid JSON (no markdown, no explanation):
{{
  "detectedSpecies": "what animal/creature is shown",
  "matchesSpecies": true/false,
  "matchesFace": true/false,
  "matchesProportions": true/false,
  "hasUnexpectedMarkings": true/false,
  "confidence": 0.0-1.0,
  "notes": "brief explanation"
}}

Be STRICT:
- If the species is different (e.g., expected unicorn but got panda), matchesSpecies = false
- If face features differ significantly, matchesFace = false
- If there are filled black patches not in the description, hasUnexpectedMarkings = true"""


class OpenAIIdentityChecker:
    """Vision-model identity check for identity-mode pages.

    Example:
        >>> checker = OpenAIIdentityChecker(api_key="sk-...")
        >>> validator = LineArtValidator(identity_checker=checker)
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o",
        timeout: float = 30.0,
        client: Any = None,
    ) -> None:
        """Initialize the checker.

        Args:
            api_key: OpenAI API key. Falls back to OPENAI_API_KEY.
            model: Vision-capable chat model identifier.
            timeout: Per-request timeout in seconds.
            client: Pre-built client (used by tests); built lazily otherwise.
        """
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self._model = model
        self._timeout = timeout
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import OpenAI

            self._client = OpenAI(api_key=self._api_key, timeout=self._timeout, max_retries=0)
        return self._client

    def __call__(self, image: Image.Image, request: GenerationRequest) -> CheckResult:
        import openai

        description = (request.character_description or "").strip()
        if not description:
            return CheckResult(
                passed=True, notes="Identity check skipped: no character description."
            )

        try:
            response = self._get_client().chat.completions.create(
                model=self._model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "text",
                                "text": IDENTITY_PROMPT.format(description=description),
                            },
                            {
                                "type": "image_url",
                                "image_url": {
                                    "url": f"data:image/png;base64,{encode_png_base64(image)}",
                                    "detail": "low",
                                },
                            },
                        ],
                    }
                ],
                max_tokens=500,
                temperature=0.1,
            )
        except openai.OpenAIError as e:
            logger.warning("Identity check failed for page %d: %s", request.page_index, e)
            return CheckResult(passed=True, notes=f"Identity check error: {e}")

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""
        logger.debug("Identity check response: %s", content[:200])
        return parse_identity_response(content)


def parse_identity_response(content: str) -> CheckResult:
    """Turn the model's JSON reply into a :class:`CheckResult`.

    Markdown code fences around the JSON are tolerated. Anything that does
    not parse to a JSON object fails the check.
    """
    cleaned = content.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`").strip()
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        data = None
    if not isinstance(data, dict):
        return CheckResult(passed=False, notes="Failed to parse identity check response.")

    passed = (
        data.get("matchesSpecies") is True
        and data.get("matchesFace") is not False
        and data.get("hasUnexpectedMarkings") is not True
    )
    species = data.get("detectedSpecies") or "unknown"
    notes = data.get("notes") or ""
    if passed:
        return CheckResult(passed=True, notes=f"Character matches ({species}). {notes}".strip())
    notes = f"Character mismatch: detected {species}. {notes}".strip()
    return CheckResult(passed=False, notes=notes)
