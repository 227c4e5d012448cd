from __future__ import annotations

import logging

import pytest

from claimletter.context import build_context_from_env, build_store
from claimletter.errors import AdapterFailure, ConfigurationMissing
from claimletter.mock_llm import MockTextProvider
from claimletter.repositories.letters import InMemoryLettersRepository, PostgresLettersRepository
from claimletter.settings import (
    REQUIRED_SETTINGS,
    PipelineSettings,
    check_required_settings,
    config_strict_required,
)

FULL_ENV = {spec.name: f"value-{spec.name.lower()}" for spec in REQUIRED_SETTINGS}


def test_required_settings_report_presence():
    env = dict(FULL_ENV)
    env.pop("OPENAI_API_KEY")

    presence = check_required_settings(env)

    assert presence["OPENAI_API_KEY"] is False
    assert presence["STRIPE_SECRET_KEY"] is True
    assert PipelineSettings.from_env(env).missing_keys == ("OPENAI_API_KEY",)


def test_primary_name_wins_over_alias():
    env = dict(FULL_ENV)
    env["STRIPE_PUBLISHABLE_KEY"] = "pk_primary"
    env["STRIPE_PUBLIC_KEY"] = "pk_alias"

    settings = PipelineSettings.from_env(env)

    assert settings.stripe_publishable_key == "pk_primary"


def test_blank_primary_falls_back_to_alias():
    env = dict(FULL_ENV)
    env["SUPPORT_EMAIL"] = "  "
    env["EMAIL_FROM"] = "support@example.com"

    settings = PipelineSettings.from_env(env)

    assert settings.support_email == "support@example.com"
    assert settings.missing_keys == ()


def test_defaults_and_tuning():
    settings = PipelineSettings.from_env(
        {
            "LLM_TEMPERATURE": "not-a-number",
            "LLM_TIMEOUT_S": "0.2",
            "ADAPTER_TIMEOUT_S": "7.5",
            "CLA_STORE_BACKEND": " Postgres ",
            "CLA_REQUIRE_PAYMENT": "yes",
        }
    )

    assert settings.environment == "development"
    assert settings.llm_model == "gpt-4o-mini"
    assert settings.llm_temperature == 0.8
    assert settings.llm_timeout_s == 1.0
    assert settings.adapter_timeout_s == 7.5
    assert settings.store_backend == "postgres"
    assert settings.require_payment is True
    assert settings.mock_llm_enabled is False
    assert "OPENAI_API_KEY" in settings.missing_keys


def test_strict_flag():
    assert config_strict_required({"CLA_REQUIRE_CONFIG": "true"}) is True
    assert config_strict_required({"CLA_REQUIRE_CONFIG": "0"}) is False
    assert config_strict_required({}) is False


def test_strict_mode_fails_fast_on_missing_keys(tmp_path):
    env = {"CLA_REQUIRE_CONFIG": "true", "OBJECT_STORAGE_ROOT": str(tmp_path)}

    with pytest.raises(ConfigurationMissing) as exc_info:
        build_context_from_env(env)

    assert exc_info.value.http_status == 503
    assert "OPENAI_API_KEY" in exc_info.value.keys


def test_lenient_mode_builds_context(tmp_path):
    env = {"MOCK_LLM_ENABLED": "true", "OBJECT_STORAGE_ROOT": str(tmp_path)}

    context = build_context_from_env(env)

    assert isinstance(context.store, InMemoryLettersRepository)
    assert isinstance(context.text, MockTextProvider)
    assert context.settings.missing_keys


def test_postgres_backend_requires_dsn(tmp_path):
    env = {"CLA_STORE_BACKEND": "postgres", "OBJECT_STORAGE_ROOT": str(tmp_path)}

    with pytest.raises(ConfigurationMissing):
        build_context_from_env(env)


def test_resolved_dsn_selects_postgres_store():
    env = {**FULL_ENV, "ENVIRONMENT": "production", "DATABASE_URL": "postgresql://app:pw@db/letters"}
    env.pop("POSTGRES_DSN")

    settings = PipelineSettings.from_env(env)
    store = build_store(settings)

    assert settings.store_backend == "postgres"
    assert isinstance(store, PostgresLettersRepository)
    assert PipelineSettings.from_env({**env, "CLA_STORE_BACKEND": "memory"}).store_backend == "memory"
    assert PipelineSettings.from_env({}).store_backend == "memory"


def test_in_memory_store_fails_readiness_in_production(tmp_path):
    env = {
        **FULL_ENV,
        "ENVIRONMENT": "production",
        "CLA_STORE_BACKEND": "memory",
        "OBJECT_STORAGE_ROOT": str(tmp_path),
    }

    context = build_context_from_env(env)
    store_check = context.readiness_probes()["store"]

    with pytest.raises(AdapterFailure, match="not durable"):
        store_check()


def test_context_build_logs_provider_and_redacted_settings(tmp_path, caplog):
    env = {**FULL_ENV, "OPENAI_API_KEY": "sk-livesecret12345", "OBJECT_STORAGE_ROOT": str(tmp_path)}

    with caplog.at_level(logging.DEBUG, logger="claimletter.context"):
        build_context_from_env(env)

    assert "text provider" in caplog.text
    assert "'has_api_key': True" in caplog.text
    assert "pipeline settings" in caplog.text
    assert "sk-livesecret12345" not in caplog.text
