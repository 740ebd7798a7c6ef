"""Core functionality for quality-gated page generation.

This package holds everything needed to turn one page request into one
outcome, independent of any web layer:

- **RetryOrchestrator**: bounded, sequential attempt loop for one page
- **GenerationSession**: per-request state and the best-candidate rule
- **PromptComposer**: escalating reinforcement for retry prompts
- **ThresholdSanitizer / LineArtValidator**: default Pillow collaborators
- **BookRunner**: bounded worker pool running many pages independently
- **InkgateConfig / RetryPolicy**: settings and the frozen retry policy

Architecture Overview
---------------------
1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with INKGATE_ in .env files
   - ``retry_policy()`` freezes the retry knobs for the orchestrator

2. **Session Layer** (models.py, session.py, errors.py):
   - Request, verdict, attempt and outcome types
   - Error classification into a closed ErrorClass

3. **Orchestration Layer** (orchestrator.py, prompt_composer.py, batch.py):
   - Attempt loop with backoff and a wall-clock budget
   - Multi-page runs with pause propagation

Usage Example
-------------
    from inkgate.core import GenerationRequest, RetryOrchestrator, config
    from inkgate.providers import create_provider

    orchestrator = RetryOrchestrator(create_provider(config), config.retry_policy())
    outcome = orchestrator.run(GenerationRequest(prompt="A fox in a meadow."))

See Also
--------
- inkgate.providers: Image provider implementations
- inkgate.api: FastAPI boundary
"""

from inkgate.core.batch import BookJob, BookRunner, PageStatus, page_status
from inkgate.core.config import InkgateConfig, RetryPolicy, config
from inkgate.core.errors import DefectError, DefectKind, ErrorClass, ProviderError, classify
from inkgate.core.models import (
    Aborted,
    BestEffort,
    Exhausted,
    ExhaustionReason,
    GenerationRequest,
    Outcome,
    Success,
    ValidationVerdict,
)
from inkgate.core.orchestrator import RetryOrchestrator
from inkgate.core.session import GenerationSession

__all__ = [
    "InkgateConfig",
    "RetryPolicy",
    "config",
    "DefectError",
    "DefectKind",
    "ErrorClass",
    "ProviderError",
    "classify",
    "Aborted",
    "BestEffort",
    "Exhausted",
    "ExhaustionReason",
    "GenerationRequest",
    "Outcome",
    "Success",
    "ValidationVerdict",
    "RetryOrchestrator",
    "GenerationSession",
    "BookJob",
    "BookRunner",
    "PageStatus",
    "page_status",
]
