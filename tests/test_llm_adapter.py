"""Tests for the text adapter: request shape, degradation, timeouts and failure mapping."""

from __future__ import annotations

import time
from types import SimpleNamespace
from unittest import mock

import pytest

from claimletter.adapters.llm import CompletionOptions, OpenAITextProvider, ProviderConfig
from claimletter.errors import AdapterFailure
from claimletter.settings import PipelineSettings


def _response(content: str | None, *, total_tokens: int = 12):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=5, completion_tokens=7, total_tokens=total_tokens),
    )


def _client(*side_effect):
    client = mock.MagicMock()
    client.chat.completions.create.side_effect = list(side_effect)
    return client


class TestProviderConfig:
    def test_from_settings(self):
        settings = PipelineSettings.from_env(
            {
                "OPENAI_API_KEY": "sk-test",
                "LLM_MODEL": "gpt-4o",
                "LLM_FALLBACK_MODEL": "gpt-4o-mini",
                "LLM_TIMEOUT_S": "30",
            }
        )
        config = ProviderConfig.from_settings(settings)
        assert config.model == "gpt-4o"
        assert config.fallback_model == "gpt-4o-mini"
        assert config.api_key == "sk-test"
        assert config.timeout_s == 30.0
        assert config.temperature == 0.8


class TestComplete:
    def test_sends_system_prompt_and_json_mode(self):
        client = _client(_response('{"summary": "x"}'))
        provider = OpenAITextProvider(ProviderConfig(api_key="sk-test"), client=client)

        completion = provider.complete(
            "letter text",
            CompletionOptions(system="analyst", json_mode=True, max_tokens=300, temperature=0.2),
        )

        assert completion.text == '{"summary": "x"}'
        assert completion.model == "gpt-4o-mini"
        assert completion.usage.total_tokens == 12
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"] == [
            {"role": "system", "content": "analyst"},
            {"role": "user", "content": "letter text"},
        ]
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 300
        assert "top_p" not in kwargs

    def test_default_temperature_and_top_p(self):
        client = _client(_response("Dear insurer"))
        provider = OpenAITextProvider(ProviderConfig(api_key="sk-test", temperature=0.8), client=client)

        provider.complete("summary", CompletionOptions(top_p=0.9))

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["temperature"] == 0.8
        assert kwargs["top_p"] == 0.9
        assert "response_format" not in kwargs

    def test_empty_completion_is_a_failure(self):
        provider = OpenAITextProvider(ProviderConfig(api_key="sk-test"), client=_client(_response("   ")))

        with pytest.raises(AdapterFailure) as exc_info:
            provider.complete("prompt")

        assert exc_info.value.code == "ADAPTER_LLM_FAILED"
        assert "empty completion" in exc_info.value.message

    def test_library_error_is_wrapped(self):
        provider = OpenAITextProvider(
            ProviderConfig(api_key="sk-test"),
            client=_client(RuntimeError("Error code: 429 - rate limited")),
        )

        with pytest.raises(AdapterFailure) as exc_info:
            provider.complete("prompt")

        assert exc_info.value.http_status == 500
        assert "RuntimeError: Error code: 429" in exc_info.value.reason

    def test_missing_credentials_is_unavailable(self):
        provider = OpenAITextProvider(ProviderConfig(api_key=""))

        with pytest.raises(AdapterFailure) as exc_info:
            provider.complete("prompt")

        assert exc_info.value.http_status == 503
        assert "OPENAI_API_KEY" in exc_info.value.reason

    def test_client_setup_error_is_unavailable(self, monkeypatch):
        def _broken(config):
            raise RuntimeError("openai package is required")

        monkeypatch.setattr("claimletter.adapters.llm._create_client", _broken)
        provider = OpenAITextProvider(ProviderConfig(api_key="sk-test"))

        with pytest.raises(AdapterFailure) as exc_info:
            provider.complete("prompt")

        assert exc_info.value.http_status == 503
        assert "RuntimeError: openai package is required" in exc_info.value.reason


class TestDegradation:
    def test_falls_back_to_secondary_model(self):
        client = _client(RuntimeError("model overloaded"), _response("fallback text"))
        provider = OpenAITextProvider(
            ProviderConfig(api_key="sk-test", model="gpt-4o", fallback_model="gpt-4o-mini"),
            client=client,
        )

        completion = provider.complete("prompt")

        assert completion.text == "fallback text"
        assert completion.model == "gpt-4o-mini"
        assert completion.usage.degraded is True
        assert completion.usage.degrade_reason == "primary_failed:ADAPTER_LLM_FAILED"
        models = [call.kwargs["model"] for call in client.chat.completions.create.call_args_list]
        assert models == ["gpt-4o", "gpt-4o-mini"]

    def test_timeout_is_not_retried(self):
        def _slow(**_kwargs):
            time.sleep(1.0)
            return _response("late")

        client = mock.MagicMock()
        client.chat.completions.create.side_effect = _slow
        provider = OpenAITextProvider(
            ProviderConfig(api_key="sk-test", fallback_model="gpt-4o", timeout_s=0.1),
            client=client,
        )

        started = time.monotonic()
        with pytest.raises(AdapterFailure) as exc_info:
            provider.complete("prompt")

        assert time.monotonic() - started < 0.9
        assert exc_info.value.timeout is True
        assert exc_info.value.http_status == 503
        assert client.chat.completions.create.call_count == 1


class TestProbe:
    def test_probe_uses_tiny_completion(self):
        client = _client(_response("A sample sentence."))
        provider = OpenAITextProvider(ProviderConfig(api_key="sk-test"), client=client)

        assert provider.probe() == "model gpt-4o-mini responded"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["max_tokens"] == 20
        assert kwargs["messages"] == [{"role": "user", "content": "Generate a sample sentence."}]

    def test_info_has_no_secrets(self):
        info = OpenAITextProvider(ProviderConfig(api_key="sk-secret-value")).info()
        assert info["has_api_key"] is True
        assert "sk-secret-value" not in str(info)
