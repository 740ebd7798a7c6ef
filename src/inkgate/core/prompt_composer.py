"""Escalating prompt composition for retry attempts.

The composer turns a page's base prompt into the instruction actually sent
on a given attempt. Attempt 1 sends the base prompt unmodified; later
attempts append reinforcement sections in a fixed order:

1. a generic reinforcement tier, one step stronger per ordinal until the
   tier cap is reached (tiers are cumulative, each includes the previous);
2. every targeted reinforcement applied so far in the session, oldest
   first. Once applied, a reinforcement stays in every later prompt;
3. from ``strict_mode_ordinal`` onward, a strict-mode addendum restating
   the hard constraints.

Structure (ordinal >= strict_mode_ordinal, two failed verdicts)::

    [Base prompt]

    [Generic reinforcement tier N]

    [Reinforcement from the first failing verdict]

    [Reinforcement from the second failing verdict]

    [Strict-mode addendum]

Sections are separated by double newlines. A prompt over
``max_prompt_length`` is shortened starting from the earliest reinforcement
section; the base prompt is never cut.

Usage
-----
::

    composer = PromptComposer(policy)
    prompt = composer.compose("A fox in a meadow.", 3, session.reinforcements)
"""

from __future__ import annotations

import logging
from typing import Sequence

from .config import RetryPolicy

logger = logging.getLogger(__name__)

_SEPARATOR = "\n\n"

# Each tier adds one line; tier N is the first N lines.
_TIER_LINES = (
    "REMINDER: This is a coloring page. Black outlines only on a pure white background.",
    "IMPORTANT: No filled black areas, no shading, no gray tones. Every shape is an outline "
    "with a white interior.",
    "CRITICAL: Previous attempts failed quality checks. Use clean, closed black outlines, "
    "leave every region white and unfilled, and scale the subject to fill the page.",
)

STRICT_MODE_ADDENDUM = (
    "=== STRICT MODE ===\n"
    "- PURE OUTLINE line art only\n"
    "- NO fills of any kind, NO solid black regions, NO shading or hatching\n"
    "- WHITE background only, no dark or colored canvas\n"
    "- NO border or frame"
)


def reinforcement_tier(ordinal: int, cap: int) -> str:
    """Return the generic reinforcement text for an ordinal.

    Args:
        ordinal: 1-based attempt ordinal.
        cap: Highest tier reachable.

    Returns:
        Empty string for ordinal 1, otherwise the cumulative tier text.
    """
    level = min(max(ordinal - 1, 0), cap, len(_TIER_LINES))
    return "\n".join(_TIER_LINES[:level])


class PromptComposer:
    """Builds the prompt for each attempt from a frozen RetryPolicy."""

    def __init__(self, policy: RetryPolicy) -> None:
        self._policy = policy

    def sections(self, ordinal: int, reinforcements: Sequence[str] = ()) -> list[str]:
        """Return the untruncated reinforcement sections for an ordinal.

        The list excludes the base prompt and is ordered from
        earliest-added to latest-added.
        """
        if ordinal <= 1:
            return []

        parts: list[str] = []
        tier = reinforcement_tier(ordinal, self._policy.reinforcement_tier_cap)
        if tier:
            parts.append(tier)

        for text in reinforcements:
            text = text.strip()
            if text and text not in parts:
                parts.append(text)

        if ordinal >= self._policy.strict_mode_ordinal:
            parts.append(STRICT_MODE_ADDENDUM)
        return parts

    def compose(self, base: str, ordinal: int, reinforcements: Sequence[str] = ()) -> str:
        """Compose the prompt for ``ordinal``.

        Args:
            base: The page's base prompt.
            ordinal: 1-based attempt ordinal.
            reinforcements: Targeted reinforcements applied so far in the
                session, oldest first.

        Returns:
            The composed prompt, at most ``max_prompt_length`` characters
            unless the base prompt alone is longer.
        """
        if ordinal <= 1:
            return base
        parts = self.sections(ordinal, reinforcements)
        return self._fit(base.strip(), parts)

    def _fit(self, base: str, parts: list[str]) -> str:
        limit = self._policy.max_prompt_length
        composed = _SEPARATOR.join([base, *parts])
        if len(composed) <= limit:
            return composed

        if len(base) >= limit:
            logger.warning(
                "Base prompt is %d chars (limit %d); sending it without reinforcement",
                len(base),
                limit,
            )
            return base

        # Shrink from the earliest-added section until the prompt fits. A
        # section is dropped together with its separator; a partial cut only
        # shortens the section text.
        overflow = len(composed) - limit
        kept = list(parts)
        for index, section in enumerate(kept):
            if overflow <= 0:
                break
            if overflow >= len(section):
                kept[index] = ""
                overflow -= len(section) + len(_SEPARATOR)
            else:
                kept[index] = section[: len(section) - overflow].rstrip()
                overflow = 0

        result = _SEPARATOR.join([base, *(p for p in kept if p)])
        logger.debug("Truncated composed prompt to %d chars", len(result))
        return result
