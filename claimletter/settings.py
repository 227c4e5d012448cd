"""
Process configuration, read once from environment variables.

Every credential and endpoint the pipeline needs is declared in
``REQUIRED_SETTINGS``. A logical setting may be supplied under several names
(for example ``STRIPE_PUBLISHABLE_KEY`` or the older ``STRIPE_PUBLIC_KEY``);
the candidates are tried in order and the first non-blank value wins.

Optional tuning:
  CLA_STORE_BACKEND       = memory | postgres          (default: memory)
  LETTERS_TABLE           = letters
  LLM_MODEL               = gpt-4o-mini
  LLM_FALLBACK_MODEL      = (empty)
  LLM_TEMPERATURE         = 0.8
  LLM_TIMEOUT_S           = 60
  ADAPTER_TIMEOUT_S       = 15                          (payments, email, storage)
  READINESS_PROBE_TIMEOUT_S = 10
  CLA_REQUIRE_CONFIG      = false                       (fail startup on missing keys)
  CLA_REQUIRE_PAYMENT     = false                       (reject unpaid records)
  MOCK_LLM_ENABLED        = false                       (deterministic offline text provider)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(env: Mapping[str, str], name: str, *, default: float, minimum: float = 0.0) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return max(minimum, value)


@dataclass(frozen=True)
class SettingSpec:
    name: str
    aliases: tuple[str, ...] = ()

    @property
    def candidates(self) -> tuple[str, ...]:
        return (self.name, *self.aliases)


REQUIRED_SETTINGS: tuple[SettingSpec, ...] = (
    SettingSpec("OPENAI_API_KEY"),
    SettingSpec("POSTGRES_DSN", aliases=("DATABASE_URL",)),
    SettingSpec("STRIPE_PUBLISHABLE_KEY", aliases=("STRIPE_PUBLIC_KEY",)),
    SettingSpec("STRIPE_SECRET_KEY"),
    SettingSpec("STRIPE_PRICE_RESPONSE"),
    SettingSpec("STRIPE_WEBHOOK_SECRET"),
    SettingSpec("SENDGRID_API_KEY"),
    SettingSpec("SUPPORT_EMAIL", aliases=("EMAIL_FROM",)),
    SettingSpec("SITE_URL"),
    SettingSpec("ENVIRONMENT"),
)


def resolve_setting(spec: SettingSpec, environ: Mapping[str, str] | None = None) -> str:
    env = os.environ if environ is None else environ
    for key in spec.candidates:
        value = str(env.get(key, "") or "").strip()
        if value:
            return value
    return ""


def check_required_settings(environ: Mapping[str, str] | None = None) -> dict[str, bool]:
    """Map each canonical required key to whether any of its names is set."""
    env = os.environ if environ is None else environ
    return {spec.name: bool(resolve_setting(spec, env)) for spec in REQUIRED_SETTINGS}


def config_strict_required(environ: Mapping[str, str] | None = None) -> bool:
    env = os.environ if environ is None else environ
    return _as_bool(env.get("CLA_REQUIRE_CONFIG", "false"))


@dataclass(frozen=True)
class PipelineSettings:
    environment: str = "development"
    site_url: str = ""
    openai_api_key: str = ""
    openai_base_url: str = ""
    llm_model: str = "gpt-4o-mini"
    llm_fallback_model: str = ""
    llm_temperature: float = 0.8
    llm_timeout_s: float = 60.0
    stripe_secret_key: str = ""
    stripe_publishable_key: str = ""
    stripe_price_response: str = ""
    stripe_webhook_secret: str = ""
    sendgrid_api_key: str = ""
    support_email: str = ""
    postgres_dsn: str = ""
    store_backend: str = "memory"
    letters_table: str = "letters"
    adapter_timeout_s: float = 15.0
    probe_timeout_s: float = 10.0
    require_config: bool = False
    require_payment: bool = False
    mock_llm_enabled: bool = False
    missing_keys: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PipelineSettings":
        env = os.environ if environ is None else environ
        resolved = {spec.name: resolve_setting(spec, env) for spec in REQUIRED_SETTINGS}
        return cls(
            environment=resolved["ENVIRONMENT"] or "development",
            site_url=resolved["SITE_URL"],
            openai_api_key=resolved["OPENAI_API_KEY"],
            openai_base_url=env.get("OPENAI_BASE_URL", "").strip(),
            llm_model=env.get("LLM_MODEL", "").strip() or "gpt-4o-mini",
            llm_fallback_model=env.get("LLM_FALLBACK_MODEL", "").strip(),
            llm_temperature=_env_float(env, "LLM_TEMPERATURE", default=0.8),
            llm_timeout_s=_env_float(env, "LLM_TIMEOUT_S", default=60.0, minimum=1.0),
            stripe_secret_key=resolved["STRIPE_SECRET_KEY"],
            stripe_publishable_key=resolved["STRIPE_PUBLISHABLE_KEY"],
            stripe_price_response=resolved["STRIPE_PRICE_RESPONSE"],
            stripe_webhook_secret=resolved["STRIPE_WEBHOOK_SECRET"],
            sendgrid_api_key=resolved["SENDGRID_API_KEY"],
            support_email=resolved["SUPPORT_EMAIL"],
            postgres_dsn=resolved["POSTGRES_DSN"],
            store_backend=env.get("CLA_STORE_BACKEND", "").strip().lower()
            or ("postgres" if resolved["POSTGRES_DSN"] else "memory"),
            letters_table=env.get("LETTERS_TABLE", "letters").strip() or "letters",
            adapter_timeout_s=_env_float(env, "ADAPTER_TIMEOUT_S", default=15.0, minimum=0.1),
            probe_timeout_s=_env_float(env, "READINESS_PROBE_TIMEOUT_S", default=10.0, minimum=0.1),
            require_config=config_strict_required(env),
            require_payment=_as_bool(env.get("CLA_REQUIRE_PAYMENT", "false")),
            mock_llm_enabled=_as_bool(env.get("MOCK_LLM_ENABLED", "false")),
            missing_keys=tuple(name for name, value in resolved.items() if not value),
        )
