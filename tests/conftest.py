import json
import pathlib
import sys
import threading
import time

import pytest
from fastapi.testclient import TestClient

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from claimletter.adapters.llm import Completion, CompletionOptions, LLMUsage
from claimletter.adapters.object_storage import LocalObjectStorage, ObjectStorageConfig
from claimletter.adapters.rendering import PdfRenderer
from claimletter.context import PipelineContext
from claimletter.errors import AdapterFailure
from claimletter.main import create_app
from claimletter.mock_llm import MockTextProvider
from claimletter.repositories.letters import InMemoryLettersRepository
from claimletter.settings import REQUIRED_SETTINGS, PipelineSettings

SAMPLE_LETTER = """Acme Health Insurance
Claim Number: CLM-20391
Policy Number: POL-7781

We have reviewed your claim for physical therapy services. The claim is denied because
the services were deemed not medically necessary and prior authorization was not obtained.
You may appeal this decision within 180 days."""

FULL_ENV = {spec.name: f"test-{spec.name.lower()}" for spec in REQUIRED_SETTINGS}


class ScriptedTextProvider:
    """Text provider that replays queued outcomes, then delegates to the mock provider."""

    backend_name = "scripted"

    def __init__(self) -> None:
        self.calls: list[tuple[str, CompletionOptions]] = []
        self._outcomes: list[object] = []
        self._fallback = MockTextProvider()
        self.delay_s = 0.0
        self._lock = threading.Lock()

    def queue(self, *outcomes: object) -> None:
        self._outcomes.extend(outcomes)

    def complete(self, prompt: str, options: CompletionOptions | None = None) -> Completion:
        opts = options or CompletionOptions()
        with self._lock:
            self.calls.append((prompt, opts))
            outcome = self._outcomes.pop(0) if self._outcomes else None
        if self.delay_s:
            time.sleep(self.delay_s)
        if callable(outcome):
            outcome = outcome()
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, dict):
            return Completion(text=json.dumps(outcome), usage=LLMUsage(model="scripted"))
        if isinstance(outcome, str):
            return Completion(text=outcome, usage=LLMUsage(model="scripted"))
        return self._fallback.complete(prompt, opts)

    def probe(self) -> str:
        return "scripted provider ready"


class FakePayments:
    def __init__(self) -> None:
        self.probe_error: Exception | None = None

    def construct_event(self, payload: bytes, signature: str):
        if signature != "valid":
            raise AdapterFailure("payments", "bad signature", http_status=400)
        return json.loads(payload)

    def probe(self) -> str:
        if self.probe_error is not None:
            raise self.probe_error
        return "price ok"


class FakeEmail:
    def __init__(self) -> None:
        self.sent: list[object] = []
        self.fail_with: Exception | None = None

    def send(self, message) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(message)
        return f"msg-{len(self.sent)}"

    def probe(self) -> str:
        return "sandbox ok"


class FakeSite:
    def probe(self) -> str:
        return "HTTP 200"


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("CLA_OBJECT_STORAGE_BACKEND", "local")
    monkeypatch.setenv("OBJECT_STORAGE_ROOT", str(tmp_path / "object_store"))
    monkeypatch.delenv("CLA_REQUIRE_CONFIG", raising=False)
    monkeypatch.delenv("CLA_REQUIRE_PAYMENT", raising=False)
    yield


@pytest.fixture
def sample_letter() -> str:
    return SAMPLE_LETTER


@pytest.fixture
def settings() -> PipelineSettings:
    return PipelineSettings.from_env(FULL_ENV)


@pytest.fixture
def store() -> InMemoryLettersRepository:
    return InMemoryLettersRepository()


@pytest.fixture
def text_provider() -> ScriptedTextProvider:
    return ScriptedTextProvider()


@pytest.fixture
def email() -> FakeEmail:
    return FakeEmail()


@pytest.fixture
def payments() -> FakePayments:
    return FakePayments()


@pytest.fixture
def object_storage(tmp_path: pathlib.Path) -> LocalObjectStorage:
    return LocalObjectStorage(config=ObjectStorageConfig(root=str(tmp_path / "archive")))


@pytest.fixture
def context(settings, store, text_provider, payments, email, object_storage) -> PipelineContext:
    return PipelineContext(
        settings=settings,
        store=store,
        text=text_provider,
        payments=payments,
        email=email,
        renderer=PdfRenderer(),
        storage=object_storage,
        site=FakeSite(),
        environ=FULL_ENV,
    )


@pytest.fixture
def lifecycle(context):
    return context.lifecycle


@pytest.fixture
def client(context) -> TestClient:
    return TestClient(create_app(context))
