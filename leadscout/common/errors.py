"""
Error taxonomy for the lead-generation engine.

Caller-facing errors (validation, not found, insufficient data) are raised
straight through. Upstream and search failures are absorbed by the stage
fallbacks and only surface as PipelineError once every fallback is spent.
"""

from typing import Any, Dict, Optional


class LeadScoutError(Exception):
    """Base error carrying a machine-readable code and pipeline context."""

    default_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        stage: Optional[str] = None,
        fallback_attempted: bool = False,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.stage = stage
        self.fallback_attempted = fallback_attempted
        self.retryable = retryable

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.stage:
            data["stage"] = self.stage
            data["fallbackAttempted"] = self.fallback_attempted
        return data


class ValidationError(LeadScoutError):
    """Malformed or missing caller input. Never retried."""
    default_code = "VALIDATION_ERROR"


class NotFoundError(LeadScoutError):
    """Session absent or expired."""
    default_code = "SESSION_NOT_FOUND"


class InsufficientDataError(LeadScoutError):
    """Valid session with nothing to search on."""
    default_code = "NO_QA_DATA"


class UpstreamServiceError(LeadScoutError):
    """Embedding or language-model call failed after retries."""

    default_code = "UPSTREAM_SERVICE_ERROR"

    def __init__(self, message: str, *, rate_limited: bool = False, **kwargs) -> None:
        kwargs.setdefault("retryable", rate_limited)
        super().__init__(message, **kwargs)
        self.rate_limited = rate_limited


class SearchExecutionError(LeadScoutError):
    """A single search strategy failed."""

    default_code = "SEARCH_EXECUTION_ERROR"

    def __init__(self, message: str, *, strategy: str = "", **kwargs) -> None:
        kwargs.setdefault("stage", "search")
        super().__init__(message, **kwargs)
        self.strategy = strategy


class DataIntegrityError(LeadScoutError):
    """A corpus record carries an unusable embedding."""

    default_code = "DATA_INTEGRITY_ERROR"

    def __init__(self, message: str, *, record_id: str = "", **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.record_id = record_id


class PipelineError(LeadScoutError):
    """A pipeline stage failed after its fallbacks were exhausted."""
    default_code = "GENERATION_FAILED"


_RETRYABLE_HINTS = ("rate limit", "timeout", "network", "connection", "temporary")


def is_retryable_message(message: str) -> bool:
    """Heuristic used to tag surfaced failures as worth retrying by the caller."""
    lowered = (message or "").lower()
    return any(hint in lowered for hint in _RETRYABLE_HINTS)
