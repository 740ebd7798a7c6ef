"""Inkgate - quality-gated coloring page generation with bounded retries."""

__version__ = "0.3.0"

from inkgate.core.config import InkgateConfig, RetryPolicy
from inkgate.core.models import (
    Aborted,
    BestEffort,
    Exhausted,
    GenerationRequest,
    Outcome,
    Success,
    ValidationVerdict,
)
from inkgate.core.orchestrator import RetryOrchestrator

__all__ = [
    "InkgateConfig",
    "RetryPolicy",
    "GenerationRequest",
    "ValidationVerdict",
    "Outcome",
    "Success",
    "BestEffort",
    "Exhausted",
    "Aborted",
    "RetryOrchestrator",
]
