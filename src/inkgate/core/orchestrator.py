"""Quality-gated retry orchestration for a single page.

:class:`RetryOrchestrator` drives one :class:`GenerationRequest` to exactly
one :class:`Outcome`. Attempts run strictly one after another, because the
prompt escalation and the best-candidate rule depend on their order.

Attempt Loop
------------
For ordinal 1, 2, ... up to ``max_attempts``:

1. Stop if the wall-clock budget is spent (checked only here, so an
   in-flight attempt always finishes).
2. Compose the prompt for this ordinal from the last verdict.
3. Call the provider. Transient failures back off and continue;
   non-retryable failures resolve to :class:`Aborted` at once.
4. An empty candidate list is transient.
5. Sanitize the first candidate. A defect records a synthesized verdict,
   backs off and continues; the candidate is never kept.
6. Offer the sanitized image as best (strictly newer ordinals only).
7. Validate. A pass resolves to :class:`Success`. A fail records the
   verdict; a defect verdict also demotes this attempt's candidate.
8. Requests with validation disabled succeed right after step 6.

Exhaustion
----------
When the loop ends without success:

- a kept candidate resolves to :class:`BestEffort`;
- otherwise, if any candidate was disqualified by a persistent defect,
  :class:`Exhausted` with ``PERSISTENT_DEFECT``;
- otherwise :class:`Exhausted` with ``NO_CANDIDATE``.

Timing
------
Backoff is ``backoff_base_s * 2 ** (ordinal - 1)`` capped at
``backoff_max_s``, recomputed for every failure. The delay is clipped to the
remaining budget and skipped after the final allowed attempt. ``clock`` and
``sleep`` are injectable for tests.

Usage
-----
::

    orchestrator = RetryOrchestrator(
        provider=create_provider(config),
        policy=config.retry_policy(),
    )
    outcome = orchestrator.run(GenerationRequest(prompt="A fox in a meadow."))
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from PIL import Image

from inkgate.providers.base import ImageProvider

from .config import RetryPolicy
from .errors import DefectError, ErrorClass, ProviderError, classify, describe_abort
from .models import (
    Aborted,
    Attempt,
    BestEffort,
    Candidate,
    Exhausted,
    ExhaustionReason,
    GenerationRequest,
    Outcome,
    Success,
    ValidationVerdict,
)
from .prompt_composer import PromptComposer
from .sanitizer import Sanitizer, ThresholdSanitizer
from .session import GenerationSession
from .validator import LineArtValidator, Validator

logger = logging.getLogger(__name__)


class RetryOrchestrator:
    """Runs the bounded, quality-gated attempt loop for one page at a time.

    An orchestrator holds no per-session state, so one instance may serve
    several sessions concurrently from different threads as long as its
    collaborators are thread-safe.

    Attributes:
        provider: Image provider called once per attempt.
        sanitizer: Normalizes raw candidates or raises DefectError.
        validator: Quality gate for sanitized candidates.
        composer: Builds the escalating prompt for each ordinal.
        policy: Frozen retry settings.
    """

    def __init__(
        self,
        provider: ImageProvider,
        policy: RetryPolicy | None = None,
        sanitizer: Sanitizer | None = None,
        validator: Validator | None = None,
        composer: PromptComposer | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider
        self.policy = policy or RetryPolicy()
        self.sanitizer = sanitizer or ThresholdSanitizer()
        self.validator = validator or LineArtValidator()
        self.composer = composer or PromptComposer(self.policy)
        self._clock = clock
        self._sleep = sleep

    # -- Public interface ---------------------------------------------------

    def run(self, request: GenerationRequest) -> Outcome:
        """Run a session for ``request`` and return its single outcome.

        Transient provider failures, validation failures and defects are
        absorbed. Only the returned outcome distinguishes them.

        Args:
            request: Fully formed page request.

        Returns:
            Success, BestEffort, Exhausted or Aborted.
        """
        session = GenerationSession(request, started_at=self._clock())
        logger.info(
            "Session %s started for page %d (max_attempts=%d, budget=%.0fs)",
            session.session_id,
            request.page_index,
            self.policy.max_attempts,
            self.policy.wall_clock_budget_s,
        )

        while session.next_ordinal <= self.policy.max_attempts:
            if self._elapsed(session) >= self.policy.wall_clock_budget_s:
                logger.warning(
                    "Session %s hit the wall-clock budget after %d attempts",
                    session.session_id,
                    session.attempt_count,
                )
                break

            outcome = self._run_attempt(session)
            if outcome is not None:
                return self._finish(session, outcome)

        return self._finish(session, self._exhaust(session))

    # -- Attempt steps ------------------------------------------------------

    def _run_attempt(self, session: GenerationSession) -> Outcome | None:
        request = session.request
        ordinal = session.next_ordinal
        prompt = self.composer.compose(request.prompt, ordinal, session.reinforcements)
        attempt = session.begin_attempt(prompt)
        started = self._clock()
        logger.info(
            "Attempt %s (%d/%d), prompt %d chars",
            attempt.attempt_id,
            ordinal,
            self.policy.max_attempts,
            len(prompt),
        )

        try:
            try:
                images = self.provider.generate(prompt, request.size, 1)
            except (ProviderError, ConnectionError, TimeoutError) as e:
                return self._handle_provider_error(session, attempt, e)

            if not images:
                attempt.error_class = ErrorClass.TRANSIENT
                logger.warning("Attempt %s: provider returned no candidates", attempt.attempt_id)
                self._backoff(session, ordinal)
                return None

            attempt.raw_image = images[0]
            try:
                image = self.sanitizer.normalize(images[0])
            except DefectError as e:
                attempt.defect = e.kind
                attempt.verdict = ValidationVerdict.for_defect(e.kind)
                session.record_verdict(attempt.verdict)
                session.disqualify(attempt.attempt_id, e.kind)
                logger.warning("Attempt %s: discarded, %s", attempt.attempt_id, e)
                self._backoff(session, ordinal)
                return None

            attempt.image = image
            session.offer(Candidate(image=image, attempt_id=attempt.attempt_id))

            if not request.validation_enabled:
                return Success(image=image, attempt_id=attempt.attempt_id, attempts=ordinal)

            return self._validate(session, attempt, image)
        finally:
            attempt.duration_s = self._clock() - started

    def _handle_provider_error(
        self, session: GenerationSession, attempt: Attempt, error: Exception
    ) -> Outcome | None:
        error_class = classify(error)
        attempt.error_class = error_class
        code = getattr(error, "code", None)

        if error_class.retryable:
            logger.warning(
                "Attempt %s: transient provider error (code=%s, status=%s): %s",
                attempt.attempt_id,
                code,
                getattr(error, "http_status", None),
                error,
            )
            self._backoff(session, attempt.ordinal)
            return None

        reason, hint = describe_abort(error_class, code)
        logger.error(
            "Attempt %s: non-retryable provider error (%s, code=%s): %s",
            attempt.attempt_id,
            error_class.value,
            code,
            error,
        )
        return Aborted(
            error_class=error_class,
            attempts=attempt.ordinal,
            code=code,
            message=str(error),
            reason=reason,
            action_hint=hint,
        )

    def _validate(
        self, session: GenerationSession, attempt: Attempt, image: Image.Image
    ) -> Outcome | None:
        verdict = self.validator.check(image, session.request)
        attempt.verdict = verdict
        if verdict.passed:
            return Success(image=image, attempt_id=attempt.attempt_id, attempts=attempt.ordinal)

        session.record_verdict(verdict)
        if verdict.defect is not None:
            attempt.defect = verdict.defect
            session.disqualify(attempt.attempt_id, verdict.defect)
        logger.warning(
            "Attempt %s: validation failed: %s", attempt.attempt_id, verdict.failure_notes()
        )
        self._backoff(session, attempt.ordinal)
        return None

    # -- Helpers ------------------------------------------------------------

    def _elapsed(self, session: GenerationSession) -> float:
        return self._clock() - session.started_at

    def _backoff(self, session: GenerationSession, ordinal: int) -> None:
        if ordinal >= self.policy.max_attempts:
            return
        remaining = self.policy.wall_clock_budget_s - self._elapsed(session)
        delay = min(self.policy.backoff_delay(ordinal), max(remaining, 0.0))
        if delay > 0:
            logger.debug("Backing off %.2fs before attempt %d", delay, ordinal + 1)
            self._sleep(delay)

    def _exhaust(self, session: GenerationSession) -> Outcome:
        best = session.best
        attempts = session.attempt_count
        if best is not None:
            return BestEffort(
                image=best.image,
                attempt_id=best.attempt_id,
                attempts=attempts,
                last_verdict=session.last_verdict,
            )
        if session.last_defect is not None:
            return Exhausted(
                reason=ExhaustionReason.PERSISTENT_DEFECT,
                attempts=attempts,
                defect=session.last_defect,
                detail=f"Every candidate was disqualified ({session.last_defect.value}).",
            )
        return Exhausted(
            reason=ExhaustionReason.NO_CANDIDATE,
            attempts=attempts,
            detail="No candidate image was produced.",
        )

    def _finish(self, session: GenerationSession, outcome: Outcome) -> Outcome:
        session.resolve(outcome)
        logger.info(
            "Session %s resolved: %s after %d attempts in %.1fs",
            session.session_id,
            type(outcome).__name__,
            session.attempt_count,
            self._elapsed(session),
        )
        return outcome
