"""
Generative-text adapter.

Architecture:
  - ProviderConfig: model, api_key, base_url, timeout (built from PipelineSettings)
  - Degradation chain: primary model -> fallback model (never on timeout)
  - Usage tracking: token counts and latency per call
  - Supports: OpenAI and any OpenAI-compatible API (vLLM, LiteLLM, etc.)

Every failure leaves this module as ``AdapterFailure("llm", ...)``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from claimletter.adapters.deadline import call_with_deadline
from claimletter.errors import AdapterFailure
from claimletter.settings import PipelineSettings

logger = logging.getLogger(__name__)

ADAPTER_NAME = "llm"


@dataclass
class ProviderConfig:
    model: str = "gpt-4o-mini"
    fallback_model: str = ""
    api_key: str = ""
    base_url: str = ""
    temperature: float = 0.8
    timeout_s: float = 60.0

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> "ProviderConfig":
        return cls(
            model=settings.llm_model,
            fallback_model=settings.llm_fallback_model,
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            temperature=settings.llm_temperature,
            timeout_s=settings.llm_timeout_s,
        )


@dataclass(frozen=True)
class CompletionOptions:
    system: str = ""
    json_mode: bool = False
    max_tokens: int = 1024
    temperature: float | None = None
    top_p: float | None = None
    task: str = ""


@dataclass
class LLMUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    model: str = ""
    latency_ms: float = 0.0
    degraded: bool = False
    degrade_reason: str = ""


@dataclass
class Completion:
    text: str
    usage: LLMUsage = field(default_factory=LLMUsage)

    @property
    def model(self) -> str:
        return self.usage.model

    @property
    def latency_ms(self) -> float:
        return self.usage.latency_ms


def _create_client(config: ProviderConfig):
    try:
        import openai
    except ImportError:
        raise RuntimeError("openai package is required. Install with: pip install openai")

    kwargs: dict[str, Any] = {"timeout": config.timeout_s, "max_retries": 0}
    if config.api_key:
        kwargs["api_key"] = config.api_key
    if config.base_url:
        kwargs["base_url"] = config.base_url
    return openai.OpenAI(**kwargs)


def _build_messages(prompt: str, options: CompletionOptions) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = []
    if options.system:
        messages.append({"role": "system", "content": options.system})
    messages.append({"role": "user", "content": prompt})
    return messages


def _call_chat(
    *,
    client,
    model: str,
    messages: list[dict[str, str]],
    options: CompletionOptions,
    default_temperature: float,
) -> Completion:
    """Call chat completions and return the trimmed text with usage."""
    t0 = time.monotonic()
    kwargs: dict[str, Any] = {
        "model": model,
        "temperature": default_temperature if options.temperature is None else options.temperature,
        "messages": messages,
        "max_tokens": options.max_tokens,
    }
    if options.top_p is not None:
        kwargs["top_p"] = options.top_p
    if options.json_mode:
        kwargs["response_format"] = {"type": "json_object"}

    response = client.chat.completions.create(**kwargs)
    elapsed_ms = (time.monotonic() - t0) * 1000

    choices = getattr(response, "choices", None) or []
    content = (choices[0].message.content or "").strip() if choices else ""
    if not content:
        raise AdapterFailure(ADAPTER_NAME, "empty completion")
    usage_data = getattr(response, "usage", None)
    usage = LLMUsage(
        prompt_tokens=getattr(usage_data, "prompt_tokens", 0) if usage_data else 0,
        completion_tokens=getattr(usage_data, "completion_tokens", 0) if usage_data else 0,
        total_tokens=getattr(usage_data, "total_tokens", 0) if usage_data else 0,
        model=model,
        latency_ms=round(elapsed_ms, 1),
    )
    return Completion(text=content, usage=usage)


class OpenAITextProvider:
    backend_name = "openai"

    def __init__(self, config: ProviderConfig, *, client=None) -> None:
        self._config = config
        self._client = client

    @property
    def config(self) -> ProviderConfig:
        return self._config

    def _get_client(self):
        if not self._config.api_key and not self._config.base_url:
            raise AdapterFailure(ADAPTER_NAME, "OPENAI_API_KEY is not configured", http_status=503)
        if self._client is None:
            try:
                self._client = _create_client(self._config)
            except Exception as exc:
                reason = f"client setup failed: {type(exc).__name__}: {exc}"
                raise AdapterFailure(ADAPTER_NAME, reason, http_status=503) from exc
        return self._client

    def _complete_once(self, *, model: str, prompt: str, options: CompletionOptions) -> Completion:
        client = self._get_client()
        messages = _build_messages(prompt, options)
        return call_with_deadline(
            ADAPTER_NAME,
            lambda: _call_chat(
                client=client,
                model=model,
                messages=messages,
                options=options,
                default_temperature=self._config.temperature,
            ),
            timeout_s=self._config.timeout_s,
        )

    def complete(self, prompt: str, options: CompletionOptions | None = None) -> Completion:
        """Try the primary model, then the fallback model; raise on total failure."""
        opts = options or CompletionOptions()
        try:
            return self._complete_once(model=self._config.model, prompt=prompt, options=opts)
        except AdapterFailure as primary_exc:
            if primary_exc.timeout or not self._config.fallback_model:
                raise
            logger.warning(
                "Primary model %s failed (%s), degrading to %s",
                self._config.model,
                primary_exc.reason,
                self._config.fallback_model,
            )
            completion = self._complete_once(model=self._config.fallback_model, prompt=prompt, options=opts)
            completion.usage.degraded = True
            completion.usage.degrade_reason = f"primary_failed:{primary_exc.code}"
            return completion

    def probe(self) -> str:
        completion = self.complete(
            "Generate a sample sentence.",
            CompletionOptions(max_tokens=20, task="probe"),
        )
        return f"model {completion.model} responded"

    def info(self) -> dict[str, Any]:
        """Current provider configuration, safe for logging (no secrets)."""
        return {
            "provider": self.backend_name,
            "model": self._config.model,
            "fallback_model": self._config.fallback_model or None,
            "base_url": self._config.base_url or "(default)",
            "has_api_key": bool(self._config.api_key),
            "timeout_s": self._config.timeout_s,
        }
