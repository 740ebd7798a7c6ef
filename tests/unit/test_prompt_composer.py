"""Tests for inkgate.core.prompt_composer — retry prompt escalation.

Tests cover:
- Attempt 1 sends the base prompt untouched.
- Cumulative reinforcement tiers and the tier cap.
- Accumulated reinforcements and the strict-mode addendum, in order.
- Deterministic truncation that never cuts the base prompt.
"""

from __future__ import annotations

from inkgate.core.config import RetryPolicy
from inkgate.core.errors import DefectKind
from inkgate.core.models import ValidationVerdict
from inkgate.core.prompt_composer import (
    STRICT_MODE_ADDENDUM,
    PromptComposer,
    reinforcement_tier,
)

BASE = "A cheerful dragon baking cookies in a cozy kitchen."
BOTTOM = "CRITICAL: Fix the bottom of the page."


class TestReinforcementTier:
    """Generic tiers grow with the ordinal until the cap."""

    def test_first_attempt_has_no_tier(self):
        assert reinforcement_tier(1, cap=3) == ""

    def test_tiers_are_cumulative(self):
        tier1 = reinforcement_tier(2, cap=3)
        tier2 = reinforcement_tier(3, cap=3)
        assert tier2.startswith(tier1)
        assert len(tier2) > len(tier1)

    def test_cap_limits_growth(self):
        assert reinforcement_tier(10, cap=2) == reinforcement_tier(3, cap=2)
        assert reinforcement_tier(10, cap=3) == reinforcement_tier(4, cap=3)


class TestCompose:
    """Section order and content."""

    def test_first_attempt_is_unmodified(self):
        composer = PromptComposer(RetryPolicy())
        assert composer.compose("  " + BASE + "  ", 1, [BOTTOM]) == "  " + BASE + "  "

    def test_second_attempt_appends_tier_and_reinforcement(self):
        composer = PromptComposer(RetryPolicy())

        prompt = composer.compose(BASE, 2, [BOTTOM])

        assert prompt.startswith(BASE)
        tier = reinforcement_tier(2, 3)
        assert prompt.index(tier) < prompt.index(BOTTOM)
        assert STRICT_MODE_ADDENDUM not in prompt

    def test_no_reinforcements_adds_only_tier(self):
        composer = PromptComposer(RetryPolicy())
        assert composer.compose(BASE, 2) == BASE + "\n\n" + reinforcement_tier(2, 3)

    def test_strict_mode_from_threshold(self):
        composer = PromptComposer(RetryPolicy(strict_mode_ordinal=3))
        assert STRICT_MODE_ADDENDUM not in composer.compose(BASE, 2)
        prompt = composer.compose(BASE, 3, [BOTTOM])
        assert prompt.endswith(STRICT_MODE_ADDENDUM)

    def test_sections_order(self):
        composer = PromptComposer(RetryPolicy(strict_mode_ordinal=2))
        sections = composer.sections(2, ["First fix.", BOTTOM])
        assert sections == [reinforcement_tier(2, 3), "First fix.", BOTTOM, STRICT_MODE_ADDENDUM]

    def test_duplicate_reinforcements_appear_once(self):
        composer = PromptComposer(RetryPolicy())
        assert composer.compose(BASE, 3, [BOTTOM, BOTTOM + "  "]).count(BOTTOM) == 1

    def test_earlier_reinforcement_survives_later_verdicts(self):
        """A dark-background fix stays after a coverage failure follows it."""
        composer = PromptComposer(RetryPolicy())
        dark = ValidationVerdict.for_defect(DefectKind.DARK_BACKGROUND).reinforcement

        second = composer.compose(BASE, 2, [dark])
        third = composer.compose(BASE, 3, [dark, BOTTOM])

        assert dark in second
        assert dark in third and BOTTOM in third

    def test_composition_is_deterministic(self):
        composer = PromptComposer(RetryPolicy())
        assert composer.compose(BASE, 6, [BOTTOM]) == composer.compose(BASE, 6, [BOTTOM])


class TestTruncation:
    """Prompts over max_prompt_length."""

    def test_long_prompt_fits_limit(self):
        policy = RetryPolicy(max_prompt_length=400, strict_mode_ordinal=2)
        composer = PromptComposer(policy)

        prompt = composer.compose(BASE, 4, ["CRITICAL: " + "keep lines clean " * 30])

        assert len(prompt) <= 400
        assert prompt.startswith(BASE)

    def test_earliest_section_is_cut_first(self):
        """The strict addendum survives while the generic tier is shortened."""
        policy = RetryPolicy(max_prompt_length=400, strict_mode_ordinal=2)
        composer = PromptComposer(policy)
        reinforcement = "CRITICAL: white background."

        prompt = composer.compose(BASE, 4, [reinforcement])

        assert prompt.endswith(STRICT_MODE_ADDENDUM)
        assert reinforcement in prompt
        assert reinforcement_tier(4, 3) not in prompt

    def test_oldest_reinforcement_is_cut_before_newer(self):
        policy = RetryPolicy(max_prompt_length=600, strict_mode_ordinal=2)
        composer = PromptComposer(policy)
        old = "OLD: " + "a" * 300
        new = "NEW: " + "b" * 100

        prompt = composer.compose(BASE, 2, [old, new])

        assert len(prompt) <= 600
        assert new in prompt
        assert old not in prompt
        assert prompt.endswith(STRICT_MODE_ADDENDUM)

    def test_overflow_just_past_a_section_drops_it_whole(self):
        """Dropping the earliest section leaves every later section intact.

        The overflow here is one character longer than the tier section but
        shorter than the tier plus its separator.
        """
        base = "b" * 150
        later = "V" * 120
        tier = reinforcement_tier(2, 3)
        full = len(base) + len(tier) + len(later) + 4
        policy = RetryPolicy(max_prompt_length=full - (len(tier) + 1))
        composer = PromptComposer(policy)

        prompt = composer.compose(base, 2, [later])

        assert prompt == base + "\n\n" + later
        assert len(prompt) <= policy.max_prompt_length

    def test_base_prompt_is_never_cut(self):
        policy = RetryPolicy(max_prompt_length=200)
        composer = PromptComposer(policy)
        base = "x" * 250

        assert composer.compose(base, 3, [BOTTOM]) == base
