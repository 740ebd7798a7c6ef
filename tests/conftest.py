"""Shared pytest fixtures for Inkgate tests."""

from __future__ import annotations

from typing import Callable

import pytest
from PIL import Image, ImageDraw

from inkgate.core.config import RetryPolicy
from inkgate.core.models import CheckResult, GenerationRequest, ValidationVerdict
from inkgate.core.orchestrator import RetryOrchestrator
from inkgate.providers.base import ImageProvider


class FakeClock:
    """Deterministic clock; time only moves when slept or advanced.

    Attributes:
        now: Current reading in seconds.
        sleeps: Every delay passed to :meth:`sleep`, in order.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedProvider(ImageProvider):
    """Provider that replays a script of results.

    Each script entry is an image, a list of images, or an exception to
    raise. The last entry repeats once the script runs out.
    """

    name = "scripted"

    def __init__(self, script: list, on_call: Callable[[], None] | None = None) -> None:
        self.script = list(script)
        self.on_call = on_call
        self.prompts: list[str] = []
        self.closed = False

    @property
    def calls(self) -> int:
        return len(self.prompts)

    def generate(self, prompt: str, size: str, count: int = 1) -> list[Image.Image]:
        self.prompts.append(prompt)
        if self.on_call is not None:
            self.on_call()
        index = min(len(self.prompts), len(self.script)) - 1
        step = self.script[index]
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, list):
            return [img.copy() for img in step]
        return [step.copy()]

    def close(self) -> None:
        self.closed = True


def draw_line_art(width: int = 100, height: int = 150) -> Image.Image:
    """White page with a thin black frame spanning most of the height."""
    image = Image.new("RGB", (width, height), (255, 255, 255))
    draw = ImageDraw.Draw(image)
    draw.rectangle(
        (width // 10, height // 15, width - width // 10 - 1, height - height // 30 - 1),
        outline=(0, 0, 0),
        width=2,
    )
    return image


@pytest.fixture
def fake_clock() -> FakeClock:
    """Create a fake clock for orchestrator timing.

    Returns:
        FakeClock starting at 0.0
    """
    return FakeClock()


@pytest.fixture
def policy() -> RetryPolicy:
    """Default retry policy used by orchestrator tests.

    Returns:
        RetryPolicy with 12 attempts, 120s budget, 1s..8s backoff
    """
    return RetryPolicy(
        max_attempts=12,
        wall_clock_budget_s=120.0,
        backoff_base_s=1.0,
        backoff_max_s=8.0,
    )


@pytest.fixture
def page_request() -> GenerationRequest:
    """A plain, non-identity page request.

    Returns:
        GenerationRequest for page 0
    """
    return GenerationRequest(page_index=0, prompt="A friendly fox reading a book under a tree.")


@pytest.fixture
def line_art() -> Image.Image:
    """Clean black-on-white line art that passes every default check."""
    return draw_line_art()


@pytest.fixture
def dark_page() -> Image.Image:
    """An all-black candidate (dark background defect)."""
    return Image.new("RGB", (100, 150), (0, 0, 0))


@pytest.fixture
def inverted_page() -> Image.Image:
    """White lines on a black page (inverted output)."""
    return Image.eval(draw_line_art(), lambda p: 255 - p)


@pytest.fixture
def blank_page() -> Image.Image:
    """An empty white candidate (blank defect)."""
    return Image.new("RGB", (100, 150), (255, 255, 255))


@pytest.fixture
def filled_page() -> Image.Image:
    """Page with a large solid black fill, under half of the area."""
    image = Image.new("RGB", (100, 150), (255, 255, 255))
    ImageDraw.Draw(image).rectangle((20, 20, 79, 119), fill=(0, 0, 0))
    return image


@pytest.fixture
def passing_verdict() -> ValidationVerdict:
    return ValidationVerdict(
        passed=True,
        outline=CheckResult(passed=True, notes="ok"),
        composition=CheckResult(passed=True, notes="ok"),
    )


@pytest.fixture
def failing_verdict() -> ValidationVerdict:
    """A generic validation failure with no persistent defect."""
    return ValidationVerdict(
        passed=False,
        composition=CheckResult(passed=False, notes="Artwork spans only 40% of the page height."),
        reinforcement="CRITICAL: Scale the subject up to fill the page.",
    )


@pytest.fixture
def make_provider() -> Callable[..., ScriptedProvider]:
    """Factory for scripted providers.

    Returns:
        Callable taking the script list (and optional ``on_call`` hook)
    """
    return ScriptedProvider


@pytest.fixture
def make_orchestrator(
    policy: RetryPolicy, fake_clock: FakeClock
) -> Callable[..., RetryOrchestrator]:
    """Factory for orchestrators wired to the fake clock.

    Returns:
        Callable ``(provider, **overrides) -> RetryOrchestrator``
    """

    def _make(provider: ImageProvider, **overrides) -> RetryOrchestrator:
        overrides.setdefault("policy", policy)
        return RetryOrchestrator(
            provider=provider,
            clock=fake_clock,
            sleep=fake_clock.sleep,
            **overrides,
        )

    return _make
