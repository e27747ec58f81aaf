"""
LLM provider backends behind one interface.

- OpenRouterProvider: hosted HTTP API (OpenAI-compatible chat completions) via requests.
- GeminiProvider: google-genai client; GEMINI_API_KEY.
- CursorAgentProvider: editor-native model access through the Cursor CLI agent
  (subprocess, prompt on stdin); CURSOR_TIMEOUT, CURSOR_API_KEY.

Providers raise ProviderRequestError for transport/auth/rate-limit failures and return
"" (with a warning) when the upstream call succeeds without any text. On a 429, the
HTTP providers wait and retry up to LLM_RATE_LIMIT_MAX_RETRIES attempts (default 1,
i.e. no retry).
"""

import logging
import math
import os
import re
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import requests

from errors import ProviderRequestError, UnknownProviderError

logger = logging.getLogger("agentic_wiki.llm")

OPENROUTER_API_URL = "https://openrouter.ai/api/v1"
CURSOR_DEFAULT_MODEL = "default"


@dataclass(frozen=True)
class ModelPricing:
    prompt: str
    completion: str


@dataclass(frozen=True)
class ModelInfo:
    id: str
    display_name: str
    context_length: int
    pricing: ModelPricing | None = None


class LlmProvider(ABC):
    """Capability interface every backend implements."""

    # Whether the gateway must resolve a credential before calling this provider.
    requires_credential = True

    @abstractmethod
    def provider_name(self) -> str: ...

    @abstractmethod
    def list_models(self, credential: str | None) -> list[ModelInfo]:
        """Available models in a reproducible order; the first one is the default."""

    @abstractmethod
    def send_completion(
        self,
        model: str,
        prompt: str,
        credential: str | None,
        options: dict[str, Any] | None = None,
    ) -> str: ...


def _max_rate_limit_attempts() -> int:
    n = int(os.environ.get("LLM_RATE_LIMIT_MAX_RETRIES", "1") or "1")
    return max(1, min(n, 10))


def _request_timeout() -> float:
    return float(os.environ.get("LLM_REQUEST_TIMEOUT", "300") or "300")


def _parse_retry_delay_seconds(error_message: str) -> int:
    """Retry delay from a 429 body: retryDelay '57s', then 'retry in 36.7s', else 60."""
    match = re.search(r"retryDelay['\"]?\s*:\s*['\"]?(\d+)s", error_message, re.IGNORECASE)
    if match:
        return max(1, int(match.group(1)))
    match = re.search(r"retry in (\d+(?:\.\d+)?)\s*s", error_message, re.IGNORECASE)
    if match:
        return max(1, int(float(match.group(1))) + 1)
    return 60


def _is_rate_limited(exc: BaseException) -> bool:
    msg = str(exc)
    return "429" in msg or "RESOURCE_EXHAUSTED" in msg or getattr(exc, "code", None) == 429


def _total_price(model: ModelInfo) -> float:
    if model.pricing is None:
        return math.inf
    try:
        return float(model.pricing.prompt) + float(model.pricing.completion)
    except (TypeError, ValueError):
        return math.inf


class OpenRouterProvider(LlmProvider):
    """OpenRouter hosted API. Models are listed cheapest first (free models lead)."""

    def __init__(self, base_url: str | None = None) -> None:
        self.base_url = (base_url or os.environ.get("OPENROUTER_BASE_URL") or OPENROUTER_API_URL).rstrip("/")

    def provider_name(self) -> str:
        return "OpenRouter"

    def _headers(self, credential: str | None) -> dict[str, str]:
        return {"Authorization": f"Bearer {credential}", "Content-Type": "application/json"}

    def list_models(self, credential: str | None) -> list[ModelInfo]:
        try:
            r = requests.get(f"{self.base_url}/models", headers=self._headers(credential), timeout=60)
        except requests.RequestException as e:
            raise ProviderRequestError(f"Failed to fetch models: {e}") from e
        if r.status_code != 200:
            raise ProviderRequestError(f"Failed to fetch models: {r.status_code} {r.text[:500]}")
        models = []
        for m in (r.json() or {}).get("data") or []:
            pricing = m.get("pricing") or None
            models.append(
                ModelInfo(
                    id=m["id"],
                    display_name=m.get("name") or m["id"],
                    context_length=int(m.get("context_length") or 0),
                    pricing=ModelPricing(str(pricing.get("prompt")), str(pricing.get("completion"))) if pricing else None,
                )
            )
        # sorted() is stable: equally priced models keep the API's order.
        return sorted(models, key=_total_price)

    def send_completion(
        self,
        model: str,
        prompt: str,
        credential: str | None,
        options: dict[str, Any] | None = None,
    ) -> str:
        payload = {"model": model, "messages": [{"role": "user", "content": prompt}], **(options or {})}
        attempts = _max_rate_limit_attempts()
        for attempt in range(attempts):
            try:
                r = requests.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(credential),
                    timeout=_request_timeout(),
                )
            except requests.RequestException as e:
                raise ProviderRequestError(f"OpenRouter request failed: {e}") from e
            if r.status_code == 429 and attempt < attempts - 1:
                delay = _parse_retry_delay_seconds(r.text)
                logger.warning(
                    "OpenRouter 429 (rate limit); retrying in %ds (attempt %d/%d)", delay, attempt + 1, attempts
                )
                time.sleep(delay)
                continue
            if r.status_code != 200:
                raise ProviderRequestError(f"OpenRouter returned {r.status_code}: {r.text[:500]}")
            body = r.json()
            if isinstance(body, dict) and body.get("error"):
                err = body["error"]
                message = err.get("message") if isinstance(err, dict) else str(err)
                raise ProviderRequestError(f"OpenRouter returned error: {message}")
            choices = (body or {}).get("choices") or []
            text = ((choices[0].get("message") or {}).get("content") if choices else None) or ""
            if not text:
                logger.warning("OpenRouter returned empty response (model=%s)", model)
            return text
        raise ProviderRequestError("OpenRouter rate limit retries exhausted")


class GeminiProvider(LlmProvider):
    """Google Gemini via the google-genai client."""

    def provider_name(self) -> str:
        return "Gemini"

    def _client(self, credential: str | None):
        from google import genai

        return genai.Client(api_key=credential)

    def list_models(self, credential: str | None) -> list[ModelInfo]:
        try:
            listed = list(self._client(credential).models.list())
        except Exception as e:
            raise ProviderRequestError(f"Failed to fetch models: {e}") from e
        models = []
        for m in listed:
            actions = getattr(m, "supported_actions", None) or []
            if actions and "generateContent" not in actions:
                continue
            model_id = (m.name or "").removeprefix("models/")
            models.append(
                ModelInfo(
                    id=model_id,
                    display_name=getattr(m, "display_name", None) or model_id,
                    context_length=int(getattr(m, "input_token_limit", None) or 0),
                )
            )
        return sorted(models, key=lambda m: m.id)

    def send_completion(
        self,
        model: str,
        prompt: str,
        credential: str | None,
        options: dict[str, Any] | None = None,
    ) -> str:
        client = self._client(credential)
        attempts = _max_rate_limit_attempts()
        last_exc: Optional[Exception] = None
        for attempt in range(attempts):
            try:
                response = client.models.generate_content(model=model, contents=[prompt], config=options or None)
            except Exception as e:
                last_exc = e
                if _is_rate_limited(e) and attempt < attempts - 1:
                    delay = _parse_retry_delay_seconds(str(e))
                    logger.warning(
                        "Gemini 429 (quota/rate limit); retrying in %ds (attempt %d/%d): %s",
                        delay,
                        attempt + 1,
                        attempts,
                        str(e)[:200],
                    )
                    time.sleep(delay)
                    continue
                raise ProviderRequestError(f"Gemini request failed: {e}") from e
            text = (response.text if response else None) or ""
            if not text:
                logger.warning("Gemini returned empty response (model=%s)", model)
            return text
        raise ProviderRequestError(f"Gemini request failed: {last_exc}")


class CursorAgentProvider(LlmProvider):
    """Cursor CLI agent; the CLI's own login or CURSOR_API_KEY authenticates it."""

    requires_credential = False

    def provider_name(self) -> str:
        return "Cursor Agent"

    def list_models(self, credential: str | None) -> list[ModelInfo]:
        return [ModelInfo(id=CURSOR_DEFAULT_MODEL, display_name="Cursor default model", context_length=0)]

    def send_completion(
        self,
        model: str,
        prompt: str,
        credential: str | None,
        options: dict[str, Any] | None = None,
    ) -> str:
        timeout_sec = int(os.environ.get("CURSOR_TIMEOUT", "120") or "120")
        env = dict(os.environ)
        if credential:
            env["CURSOR_API_KEY"] = credential
        cmd = ["cursor", "agent", "--output-format", "text"]
        if model and model != CURSOR_DEFAULT_MODEL:
            cmd.extend(["--model", model])
        try:
            result = subprocess.run(
                cmd,
                input=prompt,
                capture_output=True,
                text=True,
                timeout=timeout_sec,
                env=env,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ProviderRequestError(f"Cursor agent failed: {e}") from e
        if result.returncode != 0:
            raise ProviderRequestError(
                f"Cursor agent exited with code {result.returncode}: {result.stderr or result.stdout or 'no output'}"
            )
        out = (result.stdout or "").strip()
        if not out:
            logger.warning("Cursor agent returned empty response")
        return out


def default_providers() -> list[LlmProvider]:
    """The fixed provider list, in registration order."""
    return [OpenRouterProvider(), GeminiProvider(), CursorAgentProvider()]


class ProviderRegistry:
    """Name -> provider lookup over a fixed list."""

    def __init__(self, providers: list[LlmProvider] | None = None) -> None:
        self._providers = list(providers) if providers is not None else default_providers()

    def names(self) -> list[str]:
        return [p.provider_name() for p in self._providers]

    def get(self, name: str) -> LlmProvider:
        for provider in self._providers:
            if provider.provider_name() == name:
                return provider
        raise UnknownProviderError(f"Provider {name} not found (registered: {', '.join(self.names())})")
