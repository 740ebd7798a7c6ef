"""Per-request session state for the retry orchestrator.

A :class:`GenerationSession` is created for one :class:`GenerationRequest`,
accumulates attempts strictly sequentially and is finished by exactly one
:class:`Outcome`. It is never reused.

The best-candidate rules live here and nowhere else:

- a candidate replaces the current best only if its ordinal is strictly
  greater (a slow, older attempt can never clobber a newer one);
- a candidate demoted for a persistent defect is cleared and the attempt is
  remembered as disqualified.
"""

from __future__ import annotations

import logging
import uuid

from .errors import DefectKind
from .models import (
    Attempt,
    AttemptId,
    Candidate,
    GenerationRequest,
    Outcome,
    ValidationVerdict,
)

logger = logging.getLogger(__name__)


class SessionClosedError(RuntimeError):
    """Raised when a resolved session is asked to do more work."""


class GenerationSession:
    """Mutable state of one page-generation session.

    Attributes:
        request: The immutable request being serviced.
        session_id: Short random identifier, prefix of every AttemptId.
        started_at: Clock reading when the session began.
        attempts: Attempts made so far, in ordinal order.
        last_verdict: Most recent validation verdict (drives reinforcement).
        last_defect: Most recent persistent defect seen, if any.
        reinforcements: Targeted reinforcements from failing verdicts, oldest
            first and without duplicates. Entries are never removed.
    """

    def __init__(
        self,
        request: GenerationRequest,
        started_at: float,
        session_id: str | None = None,
    ) -> None:
        self.request = request
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.started_at = started_at
        self.attempts: list[Attempt] = []
        self.last_verdict: ValidationVerdict | None = None
        self.last_defect: DefectKind | None = None
        self.reinforcements: list[str] = []
        self._best: Candidate | None = None
        self._outcome: Outcome | None = None

    # -- Attempt bookkeeping ------------------------------------------------

    def begin_attempt(self, prompt: str) -> Attempt:
        """Open the next attempt with a strictly increasing ordinal.

        Raises:
            SessionClosedError: If the session already has an outcome.
        """
        if self._outcome is not None:
            raise SessionClosedError(f"Session {self.session_id} is already resolved")
        attempt = Attempt(
            attempt_id=AttemptId(ordinal=len(self.attempts) + 1, session_id=self.session_id),
            prompt=prompt,
        )
        self.attempts.append(attempt)
        return attempt

    @property
    def next_ordinal(self) -> int:
        return len(self.attempts) + 1

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    def record_verdict(self, verdict: ValidationVerdict) -> None:
        self.last_verdict = verdict
        if verdict.defect is not None:
            self.last_defect = verdict.defect
        text = (verdict.reinforcement or "").strip()
        if not verdict.passed and text and text not in self.reinforcements:
            self.reinforcements.append(text)

    # -- Best candidate -----------------------------------------------------

    @property
    def best(self) -> Candidate | None:
        return self._best

    def offer(self, candidate: Candidate) -> bool:
        """Promote ``candidate`` to best if it is strictly newer.

        Returns:
            True if the candidate became the best.
        """
        if self._best is not None and candidate.attempt_id <= self._best.attempt_id:
            logger.debug(
                "Ignoring stale candidate %s (best is %s)",
                candidate.attempt_id,
                self._best.attempt_id,
            )
            return False
        self._best = candidate
        return True

    def disqualify(self, attempt_id: AttemptId, kind: DefectKind) -> None:
        """Record a persistent defect; clear the best if it came from this attempt."""
        self.last_defect = kind
        if self._best is not None and self._best.attempt_id == attempt_id:
            logger.info("Demoting candidate %s: %s", attempt_id, kind.value)
            self._best = None

    # -- Resolution ---------------------------------------------------------

    @property
    def outcome(self) -> Outcome | None:
        return self._outcome

    @property
    def resolved(self) -> bool:
        return self._outcome is not None

    def resolve(self, outcome: Outcome) -> Outcome:
        """Fix the session's single outcome.

        Raises:
            SessionClosedError: If an outcome was already produced.
        """
        if self._outcome is not None:
            raise SessionClosedError(f"Session {self.session_id} is already resolved")
        self._outcome = outcome
        return outcome
