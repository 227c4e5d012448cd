"""
Archive for rendered appeal documents.

Every delivered PDF is written under ``letters/<record>/delivery/<filename>``
and addressed by an ``object://<backend>/<bucket>/<key>`` location. Re-sending a
letter overwrites the previous copy at the same key.
"""

from __future__ import annotations

import json
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from claimletter.adapters.deadline import call_with_deadline
from claimletter.errors import AdapterFailure

ADAPTER_NAME = "storage"
URI_SCHEME = "object://"
DEFAULT_BUCKET = "claimletter"
DEFAULT_ROOT = "/tmp/claimletter-object-storage"
DEFAULT_MEDIA_TYPE = "application/octet-stream"
READINESS_KEY = "readiness/probe.txt"

_UNSAFE_SEGMENT = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_segment(value: str) -> str:
    return _UNSAFE_SEGMENT.sub("_", value.strip()) or "object"


def _flag(value: str) -> bool:
    return value.strip().lower() not in {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ObjectStorageConfig:
    backend: str = "local"
    bucket: str = DEFAULT_BUCKET
    root: str = DEFAULT_ROOT
    prefix: str = ""
    endpoint: str = ""
    region: str = ""
    access_key: str = ""
    secret_key: str = ""
    force_path_style: bool = True
    timeout_s: float = 15.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ObjectStorageConfig":
        env = os.environ if environ is None else environ

        def read(name: str, default: str = "") -> str:
            return env.get(name, default).strip() or default

        try:
            timeout_s = max(0.1, float(read("ADAPTER_TIMEOUT_S", "15")))
        except ValueError:
            timeout_s = 15.0
        return cls(
            backend=read("CLA_OBJECT_STORAGE_BACKEND", "local").lower(),
            bucket=read("OBJECT_STORAGE_BUCKET", DEFAULT_BUCKET),
            root=read("OBJECT_STORAGE_ROOT", DEFAULT_ROOT),
            prefix=read("OBJECT_STORAGE_PREFIX").strip("/"),
            endpoint=read("OBJECT_STORAGE_ENDPOINT"),
            region=read("OBJECT_STORAGE_REGION"),
            access_key=read("OBJECT_STORAGE_ACCESS_KEY"),
            secret_key=read("OBJECT_STORAGE_SECRET_KEY"),
            force_path_style=_flag(read("OBJECT_STORAGE_FORCE_PATH_STYLE", "true")),
            timeout_s=timeout_s,
        )


@dataclass(frozen=True)
class StorageLocation:
    backend: str
    bucket: str
    key: str

    @property
    def uri(self) -> str:
        return f"{URI_SCHEME}{self.backend}/{self.bucket}/{self.key}"

    @classmethod
    def parse(cls, uri: str) -> "StorageLocation":
        if not uri.startswith(URI_SCHEME):
            raise ValueError(f"not an object storage uri: {uri}")
        backend, _, rest = uri[len(URI_SCHEME) :].partition("/")
        bucket, _, key = rest.partition("/")
        if not (backend and bucket and key):
            raise ValueError(f"incomplete object storage uri: {uri}")
        return cls(backend=backend, bucket=bucket, key=key)


class ObjectStorageBackend:
    """Base archive: subclasses move bytes, this class owns key layout."""

    backend_name = "base"

    def __init__(self, *, config: ObjectStorageConfig) -> None:
        self._config = config

    @property
    def bucket(self) -> str:
        return self._config.bucket

    def location_for(self, *, record_id: str, filename: str) -> StorageLocation:
        parts = [self._config.prefix] if self._config.prefix else []
        parts += ["letters", _safe_segment(record_id), "delivery", _safe_segment(filename)]
        return StorageLocation(backend=self.backend_name, bucket=self.bucket, key="/".join(parts))

    def archive_document(
        self,
        *,
        record_id: str,
        filename: str,
        document: bytes,
        media_type: str = DEFAULT_MEDIA_TYPE,
    ) -> str:
        """Store ``document`` for a record and return its ``object://`` uri."""
        location = self.location_for(record_id=record_id, filename=filename)
        self._write(location, document, media_type)
        return location.uri

    def read_document(self, uri: str) -> bytes:
        location = StorageLocation.parse(uri)
        if location.backend != self.backend_name:
            raise ValueError(f"{uri} does not belong to the {self.backend_name} backend")
        return self._read(location)

    def probe(self) -> str:
        raise NotImplementedError

    def _write(self, location: StorageLocation, document: bytes, media_type: str) -> None:
        raise NotImplementedError

    def _read(self, location: StorageLocation) -> bytes:
        raise NotImplementedError


class LocalObjectStorage(ObjectStorageBackend):
    """Filesystem archive for development and tests, with a JSON sidecar per document."""

    backend_name = "local"

    def __init__(self, *, config: ObjectStorageConfig) -> None:
        super().__init__(config=config)
        self._root = Path(config.root)

    def probe(self) -> str:
        target = self._path(StorageLocation(self.backend_name, self.bucket, READINESS_KEY))
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(datetime.now(tz=UTC).isoformat(), encoding="utf-8")
        except OSError as exc:
            raise AdapterFailure(ADAPTER_NAME, f"{type(exc).__name__}: {exc}") from exc
        return f"local root {self._root} writable"

    def _path(self, location: StorageLocation) -> Path:
        return self._root / location.bucket / location.key

    def _write(self, location: StorageLocation, document: bytes, media_type: str) -> None:
        target = self._path(location)
        sidecar = {"content_type": media_type, "size": len(document), "stored_at": datetime.now(tz=UTC).isoformat()}
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(document)
            target.with_name(f"{target.name}.meta.json").write_text(
                json.dumps(sidecar, sort_keys=True), encoding="utf-8"
            )
        except OSError as exc:
            raise AdapterFailure(ADAPTER_NAME, f"{type(exc).__name__}: {exc}") from exc

    def _read(self, location: StorageLocation) -> bytes:
        try:
            return self._path(location).read_bytes()
        except FileNotFoundError as exc:
            raise AdapterFailure(ADAPTER_NAME, f"no document at {location.uri}", http_status=404) from exc


class S3ObjectStorage(ObjectStorageBackend):
    """S3-compatible archive (AWS, MinIO); every call is bounded by the adapter timeout."""

    backend_name = "s3"

    def __init__(self, *, config: ObjectStorageConfig, client: Any | None = None) -> None:
        super().__init__(config=config)
        self._client = client if client is not None else _s3_client(config)

    def probe(self) -> str:
        self._call(lambda: self._client.head_bucket(Bucket=self.bucket))
        return f"bucket {self.bucket} reachable"

    def _call(self, fn: Any) -> Any:
        return call_with_deadline(ADAPTER_NAME, fn, timeout_s=self._config.timeout_s)

    def _write(self, location: StorageLocation, document: bytes, media_type: str) -> None:
        self._call(
            lambda: self._client.put_object(
                Bucket=location.bucket,
                Key=location.key,
                Body=document,
                ContentType=media_type,
            )
        )

    def _read(self, location: StorageLocation) -> bytes:
        response = self._call(lambda: self._client.get_object(Bucket=location.bucket, Key=location.key))
        return response["Body"].read()


def _s3_client(config: ObjectStorageConfig) -> Any:
    try:
        import boto3  # type: ignore
        from botocore.config import Config  # type: ignore
    except ImportError as exc:
        raise RuntimeError("boto3 is required for the s3 object storage backend") from exc
    session = boto3.session.Session(
        aws_access_key_id=config.access_key or None,
        aws_secret_access_key=config.secret_key or None,
        region_name=config.region or None,
    )
    return session.client(
        "s3",
        endpoint_url=config.endpoint or None,
        config=Config(
            s3={"addressing_style": "path" if config.force_path_style else "auto"},
            connect_timeout=config.timeout_s,
            read_timeout=config.timeout_s,
            retries={"max_attempts": 1},
        ),
    )


def create_object_storage(config: ObjectStorageConfig) -> ObjectStorageBackend:
    if config.backend == "s3":
        return S3ObjectStorage(config=config)
    return LocalObjectStorage(config=config)


def create_object_storage_from_env(environ: Mapping[str, str] | None = None) -> ObjectStorageBackend:
    return create_object_storage(ObjectStorageConfig.from_env(environ))
