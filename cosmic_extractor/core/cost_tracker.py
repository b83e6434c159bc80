"""Token, cost and fallback accounting for provider calls.

Every successful ProviderClient call is recorded with the stage that made it
(understanding, round, batch, function_list) and whether a fallback model
answered, so a run summary can show where the tokens went and how often the
primary model was unavailable.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

_warned_models: set[str] = set()


def _pricing_name(model: str) -> str:
    """litellm's pricing table keys OpenRouter models without the prefix."""
    if model.startswith("openrouter/"):
        return model[len("openrouter/"):]
    return model


@dataclass
class CallUsage:
    """Usage for a single provider call."""

    model: str
    prompt_tokens: int
    completion_tokens: int
    stage: str = ""
    provider: str = ""
    used_fallback: bool = False

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    @property
    def cost(self) -> float:
        """Cost in USD from litellm's pricing table, 0 when unknown."""
        try:
            from litellm import cost_per_token
            prompt_cost, completion_cost = cost_per_token(
                model=_pricing_name(self.model),
                prompt_tokens=self.prompt_tokens,
                completion_tokens=self.completion_tokens,
            )
            return prompt_cost + completion_cost
        except Exception:
            if self.model not in _warned_models:
                _warned_models.add(self.model)
                logger.warning(f"No pricing available for model '{self.model}', cost will show as $0")
            return 0.0


@dataclass
class CostTracker:
    """Accumulates usage across a run."""

    calls: list[CallUsage] = field(default_factory=list)

    def record(
        self,
        model: str,
        usage: Any,
        stage: str = "",
        provider: str = "",
        used_fallback: bool = False,
    ) -> CallUsage:
        """Record usage from a litellm response.

        Args:
            model: Model that produced the response.
            usage: The ``usage`` object from the response (may be None).
            stage: Which stage made the call.
            provider: Provider kind.
            used_fallback: True if a fallback model answered.
        """
        call = CallUsage(
            model=model,
            prompt_tokens=(getattr(usage, "prompt_tokens", 0) or 0) if usage is not None else 0,
            completion_tokens=(getattr(usage, "completion_tokens", 0) or 0) if usage is not None else 0,
            stage=stage,
            provider=provider,
            used_fallback=used_fallback,
        )
        self.calls.append(call)
        return call

    @property
    def total_prompt_tokens(self) -> int:
        return sum(c.prompt_tokens for c in self.calls)

    @property
    def total_completion_tokens(self) -> int:
        return sum(c.completion_tokens for c in self.calls)

    @property
    def total_tokens(self) -> int:
        return self.total_prompt_tokens + self.total_completion_tokens

    @property
    def total_cost(self) -> float:
        return sum(c.cost for c in self.calls)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def fallback_count(self) -> int:
        """Calls answered by a model other than the primary."""
        return sum(1 for c in self.calls if c.used_fallback)

    def by_stage(self) -> dict[str, dict[str, Any]]:
        breakdown: dict[str, dict[str, Any]] = {}
        for call in self.calls:
            stage = call.stage or "unknown"
            entry = breakdown.setdefault(
                stage, {"calls": 0, "prompt_tokens": 0, "completion_tokens": 0, "fallbacks": 0, "cost": 0.0}
            )
            entry["calls"] += 1
            entry["prompt_tokens"] += call.prompt_tokens
            entry["completion_tokens"] += call.completion_tokens
            entry["fallbacks"] += int(call.used_fallback)
            entry["cost"] += call.cost
        return breakdown

    def summary(self) -> str:
        """Formatted usage block for the CLI."""
        lines = [
            "=" * 50,
            "USAGE SUMMARY",
            "=" * 50,
            f"Provider calls: {self.call_count} ({self.fallback_count} via fallback)",
            f"Total tokens: {self.total_tokens:,}",
            f"  - Prompt: {self.total_prompt_tokens:,}",
            f"  - Completion: {self.total_completion_tokens:,}",
            f"Total cost: ${self.total_cost:.4f}",
            "",
            "By stage:",
        ]
        for stage, stats in sorted(self.by_stage().items()):
            lines.append(
                f"  {stage}: {stats['calls']} calls, "
                f"{stats['prompt_tokens'] + stats['completion_tokens']:,} tokens, "
                f"${stats['cost']:.4f}"
            )
        lines.append("=" * 50)
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "total_calls": self.call_count,
            "fallback_calls": self.fallback_count,
            "total_tokens": self.total_tokens,
            "prompt_tokens": self.total_prompt_tokens,
            "completion_tokens": self.total_completion_tokens,
            "total_cost_usd": round(self.total_cost, 6),
            "by_stage": self.by_stage(),
        }
