from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

from claimletter.adapters.email import SendGridEmailAdapter
from claimletter.adapters.llm import OpenAITextProvider, ProviderConfig
from claimletter.adapters.object_storage import ObjectStorageBackend, create_object_storage_from_env
from claimletter.adapters.payments import StripePaymentsAdapter
from claimletter.adapters.rendering import PdfRenderer
from claimletter.adapters.site import SiteReachabilityProbe
from claimletter.db.postgres import PostgresTxRunner
from claimletter.delivery import DeliveryFinalizer
from claimletter.errors import AdapterFailure, ConfigurationMissing
from claimletter.lifecycle import LetterLifecycle
from claimletter.mock_llm import MockTextProvider
from claimletter.ops.readiness import Probe, ReadinessAggregator
from claimletter.repositories.letters import InMemoryLettersRepository, PostgresLettersRepository
from claimletter.security import redact_sensitive
from claimletter.settings import PipelineSettings

logger = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    """Every collaborator the lifecycle, finalizer and readiness check need."""

    settings: PipelineSettings
    store: Any
    text: Any
    payments: Any
    email: Any
    renderer: Any
    storage: ObjectStorageBackend | None = None
    site: Any = None
    environ: Mapping[str, str] | None = None

    def __post_init__(self) -> None:
        self.delivery = DeliveryFinalizer(renderer=self.renderer, email=self.email, storage=self.storage)
        self.lifecycle = LetterLifecycle(store=self.store, text_provider=self.text, delivery=self.delivery)

    def readiness_probes(self) -> dict[str, Probe]:
        probes: dict[str, Probe] = {
            "payments": self.payments.probe,
            "llm": self.text.probe,
            "store": self._store_probe,
            "email": self.email.probe,
        }
        if self.site is not None:
            probes["site"] = self.site.probe
        if self.storage is not None:
            probes["storage"] = self.storage.probe
        return probes

    def _store_probe(self) -> str:
        if self.settings.environment.lower() == "production" and isinstance(self.store, InMemoryLettersRepository):
            raise AdapterFailure(
                "store", "in-memory store is not durable; set CLA_STORE_BACKEND=postgres", http_status=503
            )
        return self.store.ping()

    def readiness(self) -> ReadinessAggregator:
        return ReadinessAggregator(
            self.readiness_probes(),
            timeout_s=self.settings.probe_timeout_s,
            environ=self.environ,
        )


def build_store(settings: PipelineSettings) -> Any:
    if settings.store_backend == "postgres":
        if not settings.postgres_dsn:
            raise ConfigurationMissing(["POSTGRES_DSN"])
        tx_runner = PostgresTxRunner(settings.postgres_dsn, timeout_s=settings.adapter_timeout_s)
        return PostgresLettersRepository(tx_runner=tx_runner, table_name=settings.letters_table)
    return InMemoryLettersRepository()


def build_text_provider(settings: PipelineSettings) -> Any:
    if settings.mock_llm_enabled:
        logger.warning("MOCK_LLM_ENABLED is set; using the deterministic mock text provider")
        return MockTextProvider()
    provider = OpenAITextProvider(ProviderConfig.from_settings(settings))
    logger.info("text provider %s", provider.info())
    return provider


def build_context_from_env(environ: Mapping[str, str] | None = None) -> PipelineContext:
    env = os.environ if environ is None else environ
    settings = PipelineSettings.from_env(env)
    if settings.missing_keys:
        if settings.require_config:
            raise ConfigurationMissing(list(settings.missing_keys))
        logger.warning("required configuration missing: %s", ", ".join(settings.missing_keys))
    logger.debug("pipeline settings %s", redact_sensitive(asdict(settings)))
    return PipelineContext(
        settings=settings,
        store=build_store(settings),
        text=build_text_provider(settings),
        payments=StripePaymentsAdapter(
            secret_key=settings.stripe_secret_key,
            price_id=settings.stripe_price_response,
            webhook_secret=settings.stripe_webhook_secret,
            timeout_s=settings.adapter_timeout_s,
        ),
        email=SendGridEmailAdapter(
            api_key=settings.sendgrid_api_key,
            sender=settings.support_email,
            timeout_s=settings.adapter_timeout_s,
        ),
        renderer=PdfRenderer(),
        storage=create_object_storage_from_env(env),
        site=SiteReachabilityProbe(site_url=settings.site_url, timeout_s=settings.probe_timeout_s),
        environ=env,
    )
