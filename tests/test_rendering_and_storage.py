from __future__ import annotations

import json
import sys
from unittest.mock import MagicMock, patch

import pytest

from claimletter.adapters.object_storage import (
    LocalObjectStorage,
    ObjectStorageConfig,
    S3ObjectStorage,
    StorageLocation,
    create_object_storage_from_env,
)
from claimletter.adapters.rendering import PdfRenderer, to_latin1
from claimletter.errors import AdapterFailure


def test_render_to_document_returns_pdf_bytes():
    document = PdfRenderer().render_to_document("Dear Claims Review Department,\n\nPlease reconsider.\n\nSincerely,")

    assert isinstance(document, bytes)
    assert document.startswith(b"%PDF")
    assert len(document) > 500


def test_render_handles_long_text_and_typographic_characters():
    text = "“Quoted” appeal — it’s long.\n" * 400

    document = PdfRenderer().render_to_document(text)

    assert document.startswith(b"%PDF")


def test_render_rejects_blank_text():
    with pytest.raises(AdapterFailure, match="nothing to render"):
        PdfRenderer().render_to_document("  \n ")


def test_to_latin1_replaces_unsupported_characters():
    assert to_latin1("‘a’ – b…") == "'a' - b..."
    assert to_latin1("中") == "?"


def test_local_storage_archive_read_and_key_layout(tmp_path):
    storage = LocalObjectStorage(config=ObjectStorageConfig(root=str(tmp_path), prefix="prod"))

    uri = storage.archive_document(
        record_id="rec 1",
        filename="Insurance_Appeal.pdf",
        document=b"%PDF-1.4",
        media_type="application/pdf",
    )

    assert uri == "object://local/claimletter/prod/letters/rec_1/delivery/Insurance_Appeal.pdf"
    assert storage.read_document(uri) == b"%PDF-1.4"
    sidecar = tmp_path / "claimletter/prod/letters/rec_1/delivery/Insurance_Appeal.pdf.meta.json"
    assert json.loads(sidecar.read_text(encoding="utf-8"))["content_type"] == "application/pdf"


def test_local_storage_overwrites_on_resend(tmp_path):
    storage = LocalObjectStorage(config=ObjectStorageConfig(root=str(tmp_path)))

    first = storage.archive_document(record_id="rec", filename="a.pdf", document=b"one")
    second = storage.archive_document(record_id="rec", filename="a.pdf", document=b"two")

    assert first == second
    assert storage.read_document(second) == b"two"


def test_local_storage_missing_document_and_foreign_uri(tmp_path):
    storage = LocalObjectStorage(config=ObjectStorageConfig(root=str(tmp_path)))

    with pytest.raises(AdapterFailure) as exc_info:
        storage.read_document("object://local/claimletter/letters/rec/delivery/none.pdf")
    assert exc_info.value.http_status == 404

    with pytest.raises(ValueError):
        storage.read_document("object://s3/claimletter/letters/rec/delivery/a.pdf")


def test_local_storage_probe(tmp_path):
    storage = LocalObjectStorage(config=ObjectStorageConfig(root=str(tmp_path)))

    assert "writable" in storage.probe()


def test_storage_location_parsing():
    location = StorageLocation.parse("object://s3/bucket/letters/rec/delivery/a.pdf")

    assert location == StorageLocation(backend="s3", bucket="bucket", key="letters/rec/delivery/a.pdf")
    assert location.uri == "object://s3/bucket/letters/rec/delivery/a.pdf"
    with pytest.raises(ValueError):
        StorageLocation.parse("s3://bucket/key")
    with pytest.raises(ValueError):
        StorageLocation.parse("object://local/only")


def test_storage_from_env_defaults_to_local(tmp_path):
    storage = create_object_storage_from_env({"OBJECT_STORAGE_ROOT": str(tmp_path), "OBJECT_STORAGE_BUCKET": "b"})

    assert isinstance(storage, LocalObjectStorage)
    assert storage.bucket == "b"


@pytest.fixture
def mock_boto3():
    module = MagicMock()
    client = MagicMock()
    module.session.Session.return_value.client.return_value = client
    with patch.dict(sys.modules, {"boto3": module}):
        yield module, client


def test_s3_archive_read_and_probe(mock_boto3):
    module, client = mock_boto3
    config = ObjectStorageConfig(backend="s3", bucket="letters-bucket", endpoint="http://localhost:9000", timeout_s=3.0)
    storage = S3ObjectStorage(config=config)
    client.get_object.return_value = {"Body": MagicMock(read=MagicMock(return_value=b"pdf"))}

    uri = storage.archive_document(record_id="rec_1", filename="Insurance_Appeal.pdf", document=b"pdf")

    assert uri == "object://s3/letters-bucket/letters/rec_1/delivery/Insurance_Appeal.pdf"
    client.put_object.assert_called_once_with(
        Bucket="letters-bucket",
        Key="letters/rec_1/delivery/Insurance_Appeal.pdf",
        Body=b"pdf",
        ContentType="application/octet-stream",
    )
    assert storage.read_document(uri) == b"pdf"
    assert storage.probe() == "bucket letters-bucket reachable"
    client.head_bucket.assert_called_once_with(Bucket="letters-bucket")
    assert module.session.Session.return_value.client.call_args.kwargs["endpoint_url"] == "http://localhost:9000"


def test_s3_errors_become_adapter_failures():
    client = MagicMock()
    client.head_bucket.side_effect = RuntimeError("AccessDenied")
    storage = S3ObjectStorage(config=ObjectStorageConfig(backend="s3", bucket="letters-bucket"), client=client)

    with pytest.raises(AdapterFailure) as exc_info:
        storage.probe()

    assert exc_info.value.adapter == "storage"
    assert "AccessDenied" in exc_info.value.reason
