"""Retry, backoff and failover decisions for provider calls.

The policy is a pure decision procedure: given what went wrong and where we
are in the attempt budget, say what to do next. ProviderClient owns the loop
and the I/O; this module owns the rules.

Rules per candidate model (N attempts each):
- rate limited       -> next model at once (limits outlive the request)
- token limit        -> shrink the prompt and retry the same model
- server / network   -> wait, then retry the same model
- auth               -> stop, the key will not start working mid-call
- anything else      -> retry the same model after the backoff
Once a model's attempts are spent, move on; after the last model, give up.
Total attempts never exceed N x number of models.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

import litellm

from cosmic_extractor.core.config import RetryConfig
from cosmic_extractor.core.errors import PROVIDER_ERRORS, ErrorKind, ProviderError

logger = logging.getLogger(__name__)


class RetryAction(Enum):
    RETRY_SAME = "retry_same"
    SHRINK_AND_RETRY = "shrink_and_retry"
    NEXT_MODEL = "next_model"
    ABORT = "abort"


@dataclass(frozen=True)
class RetryDecision:
    action: RetryAction
    delay: float = 0.0


_RATE_LIMIT_HINTS = ("429", "rate limit", "rate_limit", "too many requests", "quota")
_TOKEN_HINTS = ("context length", "context_length", "maximum context", "too many tokens", "token limit", "max_tokens", "token")
_NETWORK_HINTS = ("econnreset", "etimedout", "timed out", "timeout", "network", "connection")
_AUTH_HINTS = ("401", "api key", "api_key", "unauthorized", "authentication", "invalid key")


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception from a provider call onto an ErrorKind.

    litellm's typed exceptions are checked first; provider SDKs that surface
    plain errors are classified from their message.
    """
    if isinstance(exc, ProviderError):
        return exc.kind

    # ContextWindowExceededError subclasses BadRequestError, check it first
    if isinstance(exc, litellm.ContextWindowExceededError):
        return ErrorKind.TOKEN_LIMIT
    if isinstance(exc, litellm.RateLimitError):
        return ErrorKind.RATE_LIMITED
    if isinstance(exc, (litellm.AuthenticationError, litellm.PermissionDeniedError)):
        return ErrorKind.AUTH
    if isinstance(exc, (litellm.Timeout, litellm.APIConnectionError, asyncio.TimeoutError, ConnectionError)):
        return ErrorKind.NETWORK
    if isinstance(exc, (litellm.InternalServerError, litellm.ServiceUnavailableError)):
        return ErrorKind.SERVER

    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        if status == 429:
            return ErrorKind.RATE_LIMITED
        if status in (401, 403):
            return ErrorKind.AUTH
        if status >= 500:
            return ErrorKind.SERVER

    message = str(exc).lower()
    if any(hint in message for hint in _RATE_LIMIT_HINTS):
        return ErrorKind.RATE_LIMITED
    if any(hint in message for hint in _AUTH_HINTS):
        return ErrorKind.AUTH
    if any(hint in message for hint in _TOKEN_HINTS):
        return ErrorKind.TOKEN_LIMIT
    if any(hint in message for hint in _NETWORK_HINTS):
        return ErrorKind.NETWORK
    if any(code in message for code in ("500", "502", "503", "504")):
        return ErrorKind.SERVER
    return ErrorKind.OTHER


def to_provider_error(exc: BaseException, model: str) -> ProviderError:
    """Wrap any call failure in the matching ProviderError subclass."""
    if isinstance(exc, ProviderError):
        return exc
    kind = classify_error(exc)
    message = str(exc) or type(exc).__name__
    return PROVIDER_ERRORS[kind](message, model=model, original=exc if isinstance(exc, Exception) else None)


class RetryPolicy:
    """Attempt budget and per-error actions for one logical call."""

    def __init__(
        self,
        max_attempts_per_model: int = RetryConfig.MAX_ATTEMPTS_PER_MODEL,
        backoff_seconds: float = RetryConfig.BACKOFF_SECONDS,
        shrink_ratio: float = RetryConfig.SHRINK_RATIO,
        truncation_marker: str = RetryConfig.TRUNCATION_MARKER,
    ):
        if max_attempts_per_model < 1:
            raise ValueError("max_attempts_per_model must be at least 1")
        self.max_attempts_per_model = max_attempts_per_model
        self.backoff_seconds = backoff_seconds
        self.shrink_ratio = shrink_ratio
        self.truncation_marker = truncation_marker

    def max_total_attempts(self, model_count: int) -> int:
        return self.max_attempts_per_model * model_count

    def decide(self, kind: ErrorKind, attempt: int) -> RetryDecision:
        """Decide the next step after a failed attempt.

        Args:
            kind: Classification of the failure.
            attempt: Zero-based attempt number on the current model.
        """
        has_attempts_left = attempt + 1 < self.max_attempts_per_model

        if kind == ErrorKind.AUTH:
            return RetryDecision(RetryAction.ABORT)
        if kind == ErrorKind.RATE_LIMITED or not has_attempts_left:
            return RetryDecision(RetryAction.NEXT_MODEL)
        if kind == ErrorKind.TOKEN_LIMIT:
            return RetryDecision(RetryAction.SHRINK_AND_RETRY)
        return RetryDecision(RetryAction.RETRY_SAME, delay=self.backoff_seconds)

    def shrink(self, prompt: str) -> str:
        """Cut ``prompt`` to ``shrink_ratio`` of its length and mark the cut."""
        if prompt.endswith(self.truncation_marker):
            prompt = prompt[: -len(self.truncation_marker)]
        keep = int(len(prompt) * self.shrink_ratio)
        return prompt[:keep] + self.truncation_marker
