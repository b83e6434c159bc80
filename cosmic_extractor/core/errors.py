"""Error types for the extraction pipeline.

Two layers live here:
- Exceptions that cross component boundaries (configuration problems,
  provider failures, cancellation).
- Issue records accumulated during a run (warnings, absorbed parse
  failures) so the caller can see what went wrong without the run failing.

Only ConfigurationError, ExhaustedAllModelsError and RunCancelledError ever
reach the caller of a run. Everything else is absorbed and recorded.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Classification of a failed provider call. Drives the retry policy."""
    RATE_LIMITED = "rate_limited"
    TOKEN_LIMIT = "token_limit"
    SERVER = "server"
    NETWORK = "network"
    AUTH = "auth"
    OTHER = "other"


REMEDIATION: dict[ErrorKind, str] = {
    ErrorKind.RATE_LIMITED: "Provider rate limit reached. Wait a minute and retry, or switch provider.",
    ErrorKind.TOKEN_LIMIT: "Prompt exceeds the model context. Reduce the document or the target count.",
    ErrorKind.SERVER: "Provider is returning server errors. Retry later or switch provider.",
    ErrorKind.NETWORK: "Network failure reaching the provider. Check connectivity and retry.",
    ErrorKind.AUTH: "Provider rejected the credentials. Check the API key.",
    ErrorKind.OTHER: "Provider call failed. Retry, or switch provider if it persists.",
}


# =============================================================================
# Exceptions
# =============================================================================


class CosmicExtractorError(Exception):
    """Base class for all package errors."""


class ConfigurationError(CosmicExtractorError):
    """Missing or invalid provider configuration. Never retried."""


class RunCancelledError(CosmicExtractorError):
    """The run was cancelled at a suspension point."""


class MalformedOutputError(CosmicExtractorError):
    """Model text could not be turned into the expected structure."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class ProviderError(CosmicExtractorError):
    """A single provider call failed."""

    kind: ErrorKind = ErrorKind.OTHER

    def __init__(self, message: str, model: str = "", original: Exception | None = None):
        super().__init__(message)
        self.model = model
        self.original = original


class TransientProviderError(ProviderError):
    """Failure expected to clear on its own."""


class RateLimitedError(TransientProviderError):
    kind = ErrorKind.RATE_LIMITED


class ServerError(TransientProviderError):
    kind = ErrorKind.SERVER


class NetworkError(TransientProviderError):
    kind = ErrorKind.NETWORK


class TokenLimitExceededError(ProviderError):
    kind = ErrorKind.TOKEN_LIMIT


class AuthError(ProviderError):
    kind = ErrorKind.AUTH


PROVIDER_ERRORS: dict[ErrorKind, type[ProviderError]] = {
    ErrorKind.RATE_LIMITED: RateLimitedError,
    ErrorKind.TOKEN_LIMIT: TokenLimitExceededError,
    ErrorKind.SERVER: ServerError,
    ErrorKind.NETWORK: NetworkError,
    ErrorKind.AUTH: AuthError,
    ErrorKind.OTHER: ProviderError,
}


class ExhaustedAllModelsError(CosmicExtractorError):
    """Every candidate model failed every attempt it was allowed."""

    def __init__(
        self,
        models_tried: list[str],
        last_error: ProviderError | None,
        attempts: int = 0,
    ):
        self.models_tried = list(models_tried)
        self.last_error = last_error
        self.attempts = attempts
        self.classification = last_error.kind if last_error else ErrorKind.OTHER
        self.remediation = REMEDIATION[self.classification]
        detail = str(last_error) if last_error else "no attempt was made"
        super().__init__(
            f"All models failed: {', '.join(self.models_tried) or '(none)'}. "
            f"Last error ({self.classification.value}): {detail}"
        )

    def to_dict(self) -> dict:
        return {
            "models_tried": self.models_tried,
            "attempts": self.attempts,
            "classification": self.classification.value,
            "last_error": str(self.last_error) if self.last_error else None,
            "remediation": self.remediation,
        }


# =============================================================================
# Run issues
# =============================================================================


class ErrorSeverity(Enum):
    """Severity levels for recorded issues."""
    WARNING = "warning"   # Advisory, record kept
    ERROR = "error"       # Round or batch lost, run continued
    CRITICAL = "critical" # Run halted


class ErrorCategory(Enum):
    """Categories of recorded issues."""
    PROVIDER = "provider"                  # Exhaustion, auth, rate limits
    CONFIGURATION = "configuration"        # Missing credentials
    MALFORMED_OUTPUT = "malformed_output"  # Unparseable model text
    VALIDATION = "validation"              # Name quality, missing movements
    CANCELLED = "cancelled"


@dataclass
class RunIssue:
    """One recorded problem with enough context to explain it later."""

    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    stage: str                      # "understanding", "round", "batch", "function_list"
    process_name: str | None = None
    round_number: int | None = None
    original_error: Exception | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.severity.value.upper()}] {self.category.value}: {self.message}"]
        if self.process_name:
            parts.append(f"process={self.process_name}")
        if self.stage:
            parts.append(f"stage={self.stage}")
        if self.round_number is not None:
            parts.append(f"round={self.round_number}")
        return " | ".join(parts)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "stage": self.stage,
            "process_name": self.process_name,
            "round_number": self.round_number,
            "context": self.context,
        }


@dataclass
class RunIssues:
    """Aggregate issues across one run."""

    errors: list[RunIssue] = field(default_factory=list)
    warnings: list[RunIssue] = field(default_factory=list)

    def add(self, issue: RunIssue):
        if issue.severity == ErrorSeverity.WARNING:
            self.warnings.append(issue)
        else:
            self.errors.append(issue)

    def extend(self, issues: list[RunIssue]):
        for issue in issues:
            self.add(issue)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def summary(self) -> dict:
        by_category: dict[str, int] = {}
        for issue in self.errors + self.warnings:
            cat = issue.category.value
            by_category[cat] = by_category.get(cat, 0) + 1

        return {
            "total_errors": self.error_count,
            "total_warnings": self.warning_count,
            "issues_by_category": by_category,
        }

    def to_dict(self) -> dict:
        return {
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "summary": self.summary(),
        }


# Factory functions for common issues

def provider_issue(
    error: ExhaustedAllModelsError,
    stage: str,
    round_number: int | None = None,
) -> RunIssue:
    """Record a provider exhaustion that ended a stage."""
    return RunIssue(
        category=ErrorCategory.PROVIDER,
        severity=ErrorSeverity.ERROR,
        message=str(error),
        stage=stage,
        round_number=round_number,
        original_error=error,
        context=error.to_dict(),
    )


def malformed_output_issue(
    message: str,
    stage: str,
    round_number: int | None = None,
    raw_text: str | None = None,
    attempts: list[dict] | None = None,
) -> RunIssue:
    """Record model output that yielded no usable data."""
    return RunIssue(
        category=ErrorCategory.MALFORMED_OUTPUT,
        severity=ErrorSeverity.ERROR,
        message=message,
        stage=stage,
        round_number=round_number,
        context={
            "raw_text": raw_text[:500] if raw_text else None,
            "attempts": attempts or [],
        },
    )


def validation_warning(
    message: str,
    process_name: str | None = None,
    rule: str | None = None,
    stage: str = "validation",
) -> RunIssue:
    """Record an advisory finding. The record it concerns is kept."""
    return RunIssue(
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.WARNING,
        message=message,
        stage=stage,
        process_name=process_name,
        context={"rule": rule} if rule else {},
    )


def cancelled_issue(stage: str, round_number: int | None = None) -> RunIssue:
    return RunIssue(
        category=ErrorCategory.CANCELLED,
        severity=ErrorSeverity.CRITICAL,
        message="Run cancelled",
        stage=stage,
        round_number=round_number,
    )
