"""Error types and provider error classification.

Two exception families cross the orchestrator boundary:

- :class:`ProviderError` is raised by image providers. It carries the
  provider's machine-readable ``code`` and ``http_status``; every SDK or
  runtime failure inside a provider is wrapped into one.
- :class:`DefectError` is raised by sanitizers when a candidate has a
  persistent structural defect (blank canvas, dark/inverted background).

:func:`classify` is the single place where a provider failure becomes an
:class:`ErrorClass`. It looks at structured metadata only (code first, then
HTTP status) and never inspects the human-readable message.

Classification Table
--------------------
========================================  ===========
Signal                                    ErrorClass
========================================  ===========
``billing_hard_limit_reached``            BILLING
``insufficient_quota``                    QUOTA
auth / policy / invalid request codes     OTHER
``rate_limit_exceeded``                   TRANSIENT
HTTP 408, 409, 429, 5xx                   TRANSIENT
any other HTTP 4xx                        OTHER
no status (network, timeout)              TRANSIENT
========================================  ===========
"""

from __future__ import annotations

from enum import Enum


class ErrorClass(str, Enum):
    """Closed set of provider failure classes."""

    TRANSIENT = "transient"
    BILLING = "billing"
    QUOTA = "quota"
    OTHER = "other"

    @property
    def retryable(self) -> bool:
        """Whether the orchestrator should back off and try again."""
        return self is ErrorClass.TRANSIENT

    @property
    def pausable(self) -> bool:
        """Whether the abort can be resolved by the user (e.g. topping up billing)."""
        return self in (ErrorClass.BILLING, ErrorClass.QUOTA)


class DefectKind(str, Enum):
    """Persistent structural defects detected on a candidate image."""

    BLANK = "blank"
    DARK_BACKGROUND = "dark_background"


class ProviderError(Exception):
    """Failure reported by an image provider.

    Attributes:
        code: Machine-readable error code from the provider (may be None).
        http_status: HTTP status of the failed call, or None for failures
            that never produced a response (network errors, timeouts).
        message: Human-readable message, for logs only.
        request_id: Provider request identifier when available.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        http_status: int | None = None,
        request_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.request_id = request_id

    def __repr__(self) -> str:
        return (
            f"ProviderError(code={self.code!r}, http_status={self.http_status!r}, "
            f"message={self.message!r})"
        )


class DefectError(Exception):
    """Raised by a sanitizer when a candidate cannot be normalized.

    Attributes:
        kind: The classified defect.
        dark_ratio: Share of dark pixels measured on the raw candidate.
        ink_ratio: Share of ink pixels measured on the raw candidate.
    """

    def __init__(self, kind: DefectKind, *, dark_ratio: float = 0.0, ink_ratio: float = 0.0) -> None:
        super().__init__(
            f"{kind.value} candidate (dark_ratio={dark_ratio:.3f}, ink_ratio={ink_ratio:.3f})"
        )
        self.kind = kind
        self.dark_ratio = dark_ratio
        self.ink_ratio = ink_ratio


_CODE_CLASSES: dict[str, ErrorClass] = {
    "billing_hard_limit_reached": ErrorClass.BILLING,
    "billing_limit": ErrorClass.BILLING,
    "insufficient_quota": ErrorClass.QUOTA,
    "invalid_api_key": ErrorClass.OTHER,
    "unauthorized": ErrorClass.OTHER,
    "account_deactivated": ErrorClass.OTHER,
    "organization_suspended": ErrorClass.OTHER,
    "content_policy_violation": ErrorClass.OTHER,
    "moderation_blocked": ErrorClass.OTHER,
    "invalid_request_error": ErrorClass.OTHER,
    "rate_limit_exceeded": ErrorClass.TRANSIENT,
    "server_error": ErrorClass.TRANSIENT,
    "timeout": ErrorClass.TRANSIENT,
    "network_error": ErrorClass.TRANSIENT,
    "out_of_memory": ErrorClass.TRANSIENT,
    "generation_failed": ErrorClass.TRANSIENT,
}

_TRANSIENT_STATUSES = frozenset({408, 409, 429})


def classify(error: BaseException) -> ErrorClass:
    """Classify a provider failure.

    Args:
        error: Exception raised while calling the provider.

    Returns:
        The ErrorClass for the failure. Builtin ``ConnectionError`` and
        ``TimeoutError`` are transient; any other non-provider exception is
        ``OTHER``.
    """
    if not isinstance(error, ProviderError):
        if isinstance(error, (ConnectionError, TimeoutError)):
            return ErrorClass.TRANSIENT
        return ErrorClass.OTHER

    if error.code is not None and error.code in _CODE_CLASSES:
        return _CODE_CLASSES[error.code]

    status = error.http_status
    if status is None:
        return ErrorClass.TRANSIENT
    if status in _TRANSIENT_STATUSES or status >= 500:
        return ErrorClass.TRANSIENT
    if 400 <= status < 500:
        return ErrorClass.OTHER
    return ErrorClass.TRANSIENT


_PAUSE_REASONS: dict[ErrorClass, str] = {
    ErrorClass.BILLING: (
        "Generation paused: the image provider's billing limit was reached. "
        "Increase your API budget and resume."
    ),
    ErrorClass.QUOTA: (
        "Generation paused: the image provider's quota is exhausted. "
        "Add credits and resume."
    ),
}

_PAUSE_HINT = "Top up billing or credits with the provider, then resume."

_OTHER_REASONS: dict[str, str] = {
    "invalid_api_key": "Generation stopped: the provider API key is invalid.",
    "unauthorized": "Generation stopped: the provider rejected the request as unauthorized.",
    "content_policy_violation": "This prompt was rejected by the provider's content policy.",
    "moderation_blocked": "This prompt was rejected by the provider's content policy.",
    "account_deactivated": "Generation stopped: the provider account is deactivated.",
    "organization_suspended": "Generation stopped: the provider organization is suspended.",
}


def describe_abort(error_class: ErrorClass, code: str | None = None) -> tuple[str, str | None]:
    """Return the user-facing reason and action hint for an aborted session.

    Args:
        error_class: Non-retryable class that caused the abort.
        code: Provider error code, used to word the reason for OTHER.

    Returns:
        Tuple of ``(reason, action_hint)``. Pausable classes always carry a
        hint; OTHER is a hard stop and never does.
    """
    if error_class.pausable:
        return _PAUSE_REASONS[error_class], _PAUSE_HINT
    reason = _OTHER_REASONS.get(code or "")
    if reason is None:
        reason = "Generation stopped: the image provider returned an unrecoverable error."
    return reason, None
