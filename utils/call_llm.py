"""
LLM gateway: every pipeline prompt goes through LlmGateway.call.

Order of operations per call:
1. Resolve the provider by name (UnknownProviderError).
2. If use_cache, return the cached response for the exact prompt text when present.
3. Resolve the credential: explicit argument, then the credential resolver
   (MissingCredentialError when the provider needs one and none is found).
4. Resolve the model: explicit, else the provider's first listed model.
5. Send the completion; provider failures become LlmRequestFailedError. No retry here.
6. If use_cache, store the response. A cache write failure is logged, not raised.
"""

import logging
import os
from typing import Any, Protocol

from errors import LlmRequestFailedError, MissingCredentialError, ProviderRequestError
from utils.llm_providers import LlmProvider, ModelInfo, ProviderRegistry
from utils.response_cache import ResponseCache

logger = logging.getLogger("agentic_wiki.llm")

PROVIDER_CREDENTIAL_ENV = {
    "OpenRouter": "OPENROUTER_API_KEY",
    "Gemini": "GEMINI_API_KEY",
    "Cursor Agent": "CURSOR_API_KEY",
}


class CredentialResolver(Protocol):
    def get_credential(self, provider_name: str | None = None) -> str | None: ...


class EnvCredentialResolver:
    """Reads API keys from the environment (a .env file is loaded by the CLI)."""

    def __init__(self, env_vars: dict[str, str] | None = None) -> None:
        self.env_vars = env_vars or PROVIDER_CREDENTIAL_ENV

    def get_credential(self, provider_name: str | None = None) -> str | None:
        var = self.env_vars.get(provider_name or "")
        if not var:
            return None
        return (os.environ.get(var) or "").strip() or None


class StaticCredentialResolver:
    """Always returns the same credential (API requests, tests)."""

    def __init__(self, credential: str | None) -> None:
        self.credential = credential

    def get_credential(self, provider_name: str | None = None) -> str | None:
        return self.credential


class LlmGateway:
    def __init__(
        self,
        registry: ProviderRegistry,
        cache: ResponseCache | None = None,
        credential_resolver: CredentialResolver | None = None,
        default_provider: str = "OpenRouter",
    ) -> None:
        self.registry = registry
        self.cache = cache
        self.credential_resolver = credential_resolver or EnvCredentialResolver()
        self.default_provider = default_provider
        self._first_models: dict[str, str] = {}

    def call(
        self,
        prompt: str,
        provider_name: str | None = None,
        model: str | None = None,
        use_cache: bool = True,
        credential: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> str:
        """Send prompt to the selected provider and return its response text."""
        name = provider_name or self.default_provider
        provider = self.registry.get(name)
        logger.debug("Prompt (%s chars): %s", len(prompt), prompt[:500])

        cache_active = use_cache and self.cache is not None
        if cache_active:
            cached = self.cache.get(prompt)
            if cached is not None:
                logger.info("LLM response served from cache (%s chars)", len(cached))
                return cached

        api_key = self.resolve_credential(provider, credential)
        model_to_use = model or self.first_model(provider, api_key)

        try:
            response = provider.send_completion(model_to_use, prompt, api_key, options)
        except ProviderRequestError as e:
            logger.error("LLM API call failed (%s/%s): %s", name, model_to_use, e)
            raise LlmRequestFailedError(f"LLM request failed: {e}") from e
        logger.debug("Response (%s chars): %s", len(response), response[:500])

        if cache_active and response:
            try:
                self.cache.set(prompt, response)
            except (OSError, ValueError) as e:
                logger.warning("Failed to update cache: %s", e)
        return response

    def resolve_credential(self, provider: LlmProvider, credential: str | None = None) -> str | None:
        api_key = credential or self.credential_resolver.get_credential(provider.provider_name())
        if not api_key and provider.requires_credential:
            raise MissingCredentialError(
                f"API key for {provider.provider_name()} is not set. "
                f"Set {PROVIDER_CREDENTIAL_ENV.get(provider.provider_name(), 'the provider API key')} "
                "or pass a credential explicitly."
            )
        return api_key

    def list_models(self, provider_name: str | None = None, credential: str | None = None) -> list[ModelInfo]:
        provider = self.registry.get(provider_name or self.default_provider)
        return provider.list_models(self.resolve_credential(provider, credential))

    def first_model(self, provider: LlmProvider, credential: str | None) -> str:
        """The provider's first listed model, memoized per provider for this gateway."""
        name = provider.provider_name()
        if name not in self._first_models:
            try:
                models = provider.list_models(credential)
            except ProviderRequestError as e:
                raise LlmRequestFailedError(f"LLM request failed: {e}") from e
            if not models:
                raise LlmRequestFailedError(f"LLM request failed: provider {name} lists no models")
            self._first_models[name] = models[0].id
            logger.info("No model configured; using %s default model %s", name, models[0].id)
        return self._first_models[name]
