"""Provider client for the extraction pipeline.

One call signature, ``complete(system_prompt, user_prompt) -> Completion``,
regardless of backend. Chat-style providers get a messages list and answer
in ``choices[0].message.content``; generative-style providers (Gemini) get a
single concatenated prompt and answer in ``choices[0].text``. Both shapes are
reduced to one plain string here, so nothing downstream branches on the
provider again.

Retry and failover follow RetryPolicy (core/retry_policy.py): every
candidate model gets a fixed number of attempts, rate limits skip straight
to the next model, token-limit errors shrink the prompt, and when nothing
is left ExhaustedAllModelsError carries the whole story to the caller.

Usage:
    registry = ClientRegistry.from_env()
    client = ProviderClient(registry.get(), cost_tracker=tracker)

    completion = await client.complete(
        system_prompt=COSMIC_SYSTEM_PROMPT,
        user_prompt=build_first_round_prompt(document, target=30),
        stage="round",
    )
    completion.text           # plain reply text
    completion.used_fallback  # True if a fallback model answered

    understanding = await client.complete_structured(
        system_prompt=UNDERSTANDING_SYSTEM_PROMPT,
        user_prompt=build_understanding_prompt(document),
        response_model=DocumentUnderstanding,
        stage="understanding",
    )
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from litellm import acompletion, atext_completion
from pydantic import BaseModel

from cosmic_extractor.core.cancellation import CancellationToken
from cosmic_extractor.core.config import LLMConfig
from cosmic_extractor.core.cost_tracker import CostTracker
from cosmic_extractor.core.errors import (
    ConfigurationError,
    ExhaustedAllModelsError,
    MalformedOutputError,
    ProviderError,
    RunCancelledError,
)
from cosmic_extractor.core.provider_registry import CallStyle, ProviderConfig
from cosmic_extractor.core.response_parser import parse_json
from cosmic_extractor.core.retry_policy import RetryAction, RetryPolicy, to_provider_error

logger = logging.getLogger(__name__)

# Suppress LiteLLM debug noise (done once at module load)
logging.getLogger("litellm").setLevel(logging.ERROR)
logging.getLogger("LiteLLM").setLevel(logging.ERROR)
logging.getLogger("httpx").setLevel(logging.ERROR)

M = TypeVar("M", bound=BaseModel)
V = TypeVar("V")


@dataclass(frozen=True)
class ChatStyleResult:
    """Raw reply from a chat-completion backend."""
    text: str


@dataclass(frozen=True)
class GenerativeStyleResult:
    """Raw reply from a single-prompt backend."""
    text: str


ProviderResult = ChatStyleResult | GenerativeStyleResult


@dataclass
class Completion:
    """A successful call after retries and failover.

    Attributes:
        text: Reply text, whatever the backend shape.
        model: Model that produced the reply (without litellm prefix).
        provider: Provider kind.
        used_fallback: True when a model other than the first candidate answered.
        attempts: Attempts made, including failed ones.
        prompt_truncated: True when a token-limit error forced a shrink.
    """

    text: str
    model: str
    provider: str
    used_fallback: bool = False
    attempts: int = 1
    prompt_truncated: bool = False


@dataclass
class _Outcome:
    value: Any
    model: str
    used_fallback: bool
    attempts: int
    prompt_truncated: bool


def _message_text(response: Any) -> str:
    choice = response.choices[0]
    message = getattr(choice, "message", None)
    return (getattr(message, "content", None) or "") if message is not None else ""


def _generative_text(response: Any) -> str:
    choice = response.choices[0]
    text = getattr(choice, "text", None)
    if text is None:
        # Some litellm adapters answer text completions in chat shape
        return _message_text(response)
    return text or ""


def generative_prompt(system_prompt: str, user_prompt: str) -> str:
    """Fold system and user prompts into one for single-prompt backends."""
    return f"SYSTEM: {system_prompt}\n\nUSER: {user_prompt}"


class ProviderClient:
    """Client bound to one configured provider.

    Stateless between calls apart from the usage it records. Safe to share
    across concurrent runs.
    """

    def __init__(
        self,
        provider: ProviderConfig,
        cost_tracker: CostTracker | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float = LLMConfig.REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the client.

        Args:
            provider: Provider to call. Must have credentials.
            cost_tracker: Optional tracker; every successful call is recorded.
            retry_policy: Attempt budget and error actions. Defaults to RetryConfig values.
            timeout: Per-request timeout in seconds, treated as a network error when hit.

        Raises:
            ConfigurationError: If the provider has no key or model.
        """
        self.provider = provider.require_configured()
        self.cost_tracker = cost_tracker
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout

    @property
    def style(self) -> CallStyle:
        return self.provider.style

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        models: list[str] | None = None,
        stage: str = "",
        temperature: float | None = None,
        max_tokens: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> Completion:
        """Make a call with retries and model failover.

        Args:
            system_prompt: Instructions.
            user_prompt: The request. Shrunk from the end on token-limit errors.
            models: Candidate models in order. Defaults to the provider's primary + fallbacks.
            stage: Stage name for usage tracking and logs.
            temperature: Sampling temperature. Defaults to LLMConfig.TEMPERATURE.
            max_tokens: Reply token cap. Defaults to LLMConfig.MAX_TOKENS.
            cancel: Token that aborts the in-flight call and any backoff wait.

        Returns:
            Completion with the reply text.

        Raises:
            ExhaustedAllModelsError: Every candidate failed every allowed attempt,
                or the provider rejected the credentials.
            RunCancelledError: ``cancel`` fired.
        """
        async def attempt(model: str, prompt: str) -> tuple[str, Any]:
            result, usage = await self._call(system_prompt, prompt, model, temperature, max_tokens)
            return result.text, usage

        outcome = await self._with_failover(user_prompt, models, stage, cancel, attempt)
        return Completion(
            text=outcome.value,
            model=outcome.model,
            provider=self.provider.provider_kind.value,
            used_fallback=outcome.used_fallback,
            attempts=outcome.attempts,
            prompt_truncated=outcome.prompt_truncated,
        )

    async def complete_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        response_model: type[M],
        models: list[str] | None = None,
        stage: str = "",
        temperature: float | None = None,
        max_retries: int = 2,
        cancel: CancellationToken | None = None,
    ) -> M:
        """Make a call that returns a validated pydantic model.

        Chat-style providers go through Instructor, which sends validation
        errors back to the model so it can fix its own JSON. Single-prompt
        providers have no tool or JSON mode, so their text goes through the
        ResponseParser JSON cascade and then the model's ``from_payload``
        (or ``model_validate``).

        Raises:
            MalformedOutputError: The reply never validated.
            ExhaustedAllModelsError: As for complete().
            RunCancelledError: ``cancel`` fired.
        """
        if self.style == CallStyle.GENERATIVE:
            completion = await self.complete(
                system_prompt, user_prompt, models=models, stage=stage,
                temperature=temperature, cancel=cancel,
            )
            outcome = parse_json(completion.text)
            if not outcome.ok or not isinstance(outcome.value, dict):
                raise MalformedOutputError(
                    f"No JSON object in {stage or 'structured'} reply", raw_text=completion.text,
                )
            build = getattr(response_model, "from_payload", response_model.model_validate)
            try:
                return build(outcome.value)
            except ValueError as exc:
                raise MalformedOutputError(str(exc), raw_text=completion.text) from exc

        import instructor
        from instructor.exceptions import InstructorRetryException

        instructor_client = instructor.from_litellm(acompletion)

        async def attempt(model: str, prompt: str) -> tuple[M, Any]:
            try:
                result, raw_completion = await asyncio.wait_for(
                    instructor_client.chat.completions.create_with_completion(
                        messages=[
                            {"role": "system", "content": system_prompt},
                            {"role": "user", "content": prompt},
                        ],
                        response_model=response_model,
                        max_retries=max_retries,
                        **self._request_kwargs(model, temperature, None),
                    ),
                    timeout=self.timeout,
                )
            except InstructorRetryException as exc:
                raise MalformedOutputError(f"Structured reply failed validation: {exc}") from exc
            return result, getattr(raw_completion, "usage", None)

        outcome = await self._with_failover(user_prompt, models, stage, cancel, attempt)
        return outcome.value

    # =========================================================================
    # Internals
    # =========================================================================

    def _request_kwargs(self, model: str, temperature: float | None, max_tokens: int | None) -> dict:
        kwargs: dict[str, Any] = {
            "model": self.provider.litellm_model(model),
            "api_key": self.provider.api_key,
            "temperature": temperature if temperature is not None else LLMConfig.TEMPERATURE,
        }
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if self.provider.base_url:
            kwargs["api_base"] = self.provider.base_url
        if self.provider.extra_headers:
            kwargs["extra_headers"] = dict(self.provider.extra_headers)
        return kwargs

    async def _call(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float | None,
        max_tokens: int | None,
    ) -> tuple[ProviderResult, Any]:
        """One request, no retries. Returns the normalized reply and usage."""
        kwargs = self._request_kwargs(model, temperature, max_tokens or LLMConfig.MAX_TOKENS)

        if self.style == CallStyle.GENERATIVE:
            response = await asyncio.wait_for(
                atext_completion(prompt=generative_prompt(system_prompt, user_prompt), **kwargs),
                timeout=self.timeout,
            )
            result: ProviderResult = GenerativeStyleResult(_generative_text(response))
        else:
            response = await asyncio.wait_for(
                acompletion(
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    **kwargs,
                ),
                timeout=self.timeout,
            )
            result = ChatStyleResult(_message_text(response))

        return result, getattr(response, "usage", None)

    async def _with_failover(
        self,
        user_prompt: str,
        models: list[str] | None,
        stage: str,
        cancel: CancellationToken | None,
        attempt: Callable[[str, str], Awaitable[tuple[V, Any]]],
    ) -> _Outcome:
        """Run ``attempt`` over the candidate models under the retry policy."""
        candidates = list(models) if models else self.provider.candidate_models
        if not candidates:
            raise ConfigurationError(f"No model configured for provider '{self.provider.provider_kind.value}'")

        policy = self.retry_policy
        prompt = user_prompt
        truncated = False
        total_attempts = 0
        tried: list[str] = []
        last_error: ProviderError | None = None

        for index, model in enumerate(candidates):
            tried.append(model)
            model_attempt = 0
            while model_attempt < policy.max_attempts_per_model:
                if cancel is not None:
                    cancel.raise_if_cancelled()
                total_attempts += 1
                try:
                    call = attempt(model, prompt)
                    value, usage = await (cancel.run(call) if cancel is not None else call)
                except (RunCancelledError, MalformedOutputError, ConfigurationError):
                    raise
                except Exception as exc:
                    error = to_provider_error(exc, model)
                    last_error = error
                    decision = policy.decide(error.kind, model_attempt)
                    logger.warning(
                        f"[{stage or 'call'}] {model} attempt {model_attempt + 1} failed "
                        f"({error.kind.value}): {error}"
                    )

                    if decision.action == RetryAction.ABORT:
                        raise ExhaustedAllModelsError(tried, error, total_attempts) from exc
                    if decision.action == RetryAction.NEXT_MODEL:
                        if index + 1 < len(candidates):
                            logger.info(f"[{stage or 'call'}] switching to fallback model {candidates[index + 1]}")
                        break
                    if decision.action == RetryAction.SHRINK_AND_RETRY:
                        before = len(prompt)
                        prompt = policy.shrink(prompt)
                        truncated = True
                        logger.info(f"[{stage or 'call'}] prompt shrunk {before} -> {len(prompt)} chars")
                    elif decision.delay > 0:
                        if cancel is not None:
                            await cancel.sleep(decision.delay)
                        else:
                            await asyncio.sleep(decision.delay)
                    model_attempt += 1
                    continue

                used_fallback = index > 0
                if self.cost_tracker is not None:
                    self.cost_tracker.record(
                        self.provider.litellm_model(model),
                        usage,
                        stage=stage,
                        provider=self.provider.provider_kind.value,
                        used_fallback=used_fallback,
                    )
                return _Outcome(
                    value=value,
                    model=model,
                    used_fallback=used_fallback,
                    attempts=total_attempts,
                    prompt_truncated=truncated,
                )

        raise ExhaustedAllModelsError(tried, last_error, total_attempts)
