"""Provider configuration and the registry that holds it.

A ClientRegistry is built once (explicitly, or from the environment) and
handed to whoever needs a ProviderClient. There is no module-level client:
tests build a registry with fake keys, the CLI builds one from .env.

Each provider maps onto a litellm model prefix and a call style:
- chat style: messages list, answer in ``choices[0].message.content``
- generative style: one concatenated prompt, answer in ``choices[0].text``
"""

import os
from collections.abc import Mapping
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from cosmic_extractor.core.config import (
    API_KEY_ENV_VARS,
    BASE_URL_ENV_VARS,
    DEFAULT_OPENROUTER_FALLBACKS,
    FALLBACK_MODELS_ENV_VAR,
    MODEL_ENV_VARS,
    PROVIDER_PRIORITY,
)
from cosmic_extractor.core.errors import ConfigurationError


class ProviderKind(str, Enum):
    GEMINI = "gemini"
    ZHIPU = "zhipu"
    OPENROUTER = "openrouter"
    GROQ = "groq"
    OPENAI = "openai"


class CallStyle(Enum):
    CHAT = "chat"
    GENERATIVE = "generative"


_LITELLM_PREFIX: dict[ProviderKind, str] = {
    ProviderKind.GEMINI: "gemini/",
    ProviderKind.ZHIPU: "openai/",       # OpenAI-compatible endpoint
    ProviderKind.OPENROUTER: "openrouter/",
    ProviderKind.GROQ: "groq/",
    ProviderKind.OPENAI: "openai/",
}

_CALL_STYLE: dict[ProviderKind, CallStyle] = {
    ProviderKind.GEMINI: CallStyle.GENERATIVE,
}


class ProviderConfig(BaseModel):
    """Everything needed to talk to one provider."""

    model_config = ConfigDict(frozen=True)

    provider_kind: ProviderKind = Field(description="Which backend to call")
    api_key: str = Field(default="", repr=False, description="Credential; empty means unconfigured")
    base_url: str | None = Field(default=None, description="Endpoint override for OpenAI-compatible providers")
    model: str = Field(description="Primary model name, without litellm prefix")
    fallback_models: list[str] = Field(default_factory=list, description="Tried in order after the primary")
    extra_headers: dict[str, str] = Field(default_factory=dict)

    @property
    def style(self) -> CallStyle:
        return _CALL_STYLE.get(self.provider_kind, CallStyle.CHAT)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key.strip()) and bool(self.model.strip())

    @property
    def candidate_models(self) -> list[str]:
        """Primary first, then fallbacks, duplicates removed."""
        seen: list[str] = []
        for model in [self.model, *self.fallback_models]:
            if model and model not in seen:
                seen.append(model)
        return seen

    def litellm_model(self, model: str) -> str:
        """Model string as litellm expects it (provider-prefixed)."""
        prefix = _LITELLM_PREFIX[self.provider_kind]
        return model if model.startswith(prefix) else f"{prefix}{model}"

    def require_configured(self) -> "ProviderConfig":
        if not self.api_key.strip():
            raise ConfigurationError(f"Provider '{self.provider_kind.value}' has no API key configured")
        if not self.model.strip():
            raise ConfigurationError(f"Provider '{self.provider_kind.value}' has no model configured")
        return self


class ClientRegistry:
    """The set of configured providers plus which one is the default."""

    def __init__(self, providers: list[ProviderConfig], default: ProviderKind | str | None = None):
        self._providers: dict[ProviderKind, ProviderConfig] = {p.provider_kind: p for p in providers}
        self._default = ProviderKind(default) if default else None

    @property
    def kinds(self) -> list[ProviderKind]:
        return list(self._providers)

    def get(self, kind: ProviderKind | str | None = None) -> ProviderConfig:
        """Return a configured provider.

        Args:
            kind: Provider to fetch. None means the default, or the first
                  configured provider in priority order.

        Raises:
            ConfigurationError: No such provider, or it lacks credentials.
        """
        if kind is None:
            kind = self._default
        if kind is None:
            for name in PROVIDER_PRIORITY:
                candidate = self._providers.get(ProviderKind(name))
                if candidate and candidate.is_configured:
                    return candidate
            raise ConfigurationError(
                "No LLM provider configured. Set one of: "
                + ", ".join(v[0] for v in API_KEY_ENV_VARS.values())
            )

        kind = ProviderKind(kind)
        config = self._providers.get(kind)
        if config is None:
            raise ConfigurationError(f"Provider '{kind.value}' is not configured")
        return config.require_configured()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, provider: str | None = None) -> "ClientRegistry":
        """Build a registry from environment variables.

        Providers without a key are skipped. ``provider`` (or COSMIC_PROVIDER)
        picks the default; "auto" leaves it to priority order.
        """
        env = os.environ if environ is None else environ
        providers = []
        for name in PROVIDER_PRIORITY:
            kind = ProviderKind(name)
            api_key = next((env[var] for var in API_KEY_ENV_VARS[name] if env.get(var)), "")
            if not api_key:
                continue

            model_var, default_model = MODEL_ENV_VARS[name]
            model = env.get(model_var) or default_model
            if kind == ProviderKind.ZHIPU:
                model = env.get(model_var) or env.get("OPENAI_MODEL") or default_model

            base_url = None
            if name in BASE_URL_ENV_VARS:
                url_var, default_url = BASE_URL_ENV_VARS[name]
                base_url = env.get(url_var) or default_url

            fallbacks: list[str] = []
            headers: dict[str, str] = {}
            if kind == ProviderKind.OPENROUTER:
                raw = env.get(FALLBACK_MODELS_ENV_VAR)
                fallbacks = (
                    [m.strip() for m in raw.split(",") if m.strip()]
                    if raw is not None
                    else list(DEFAULT_OPENROUTER_FALLBACKS)
                )
                headers = {
                    "HTTP-Referer": env.get("OPENROUTER_REFERER", "http://localhost"),
                    "X-Title": env.get("OPENROUTER_TITLE", "COSMIC Extractor"),
                }

            providers.append(ProviderConfig(
                provider_kind=kind,
                api_key=api_key,
                base_url=base_url,
                model=model,
                fallback_models=fallbacks,
                extra_headers=headers,
            ))

        selected = (provider or env.get("COSMIC_PROVIDER") or "auto").lower()
        if selected != "auto" and selected not in {k.value for k in ProviderKind}:
            raise ConfigurationError(f"Unknown provider '{selected}'")
        return cls(providers, default=None if selected == "auto" else selected)
