from __future__ import annotations

import io
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from hashlib import sha256
from pathlib import Path

from minio import Minio
from minio.error import S3Error

from plantasy.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredObject:
    object_key: str
    content_hash: str
    stored_at: datetime
    backend: str


def _json_bytes(payload: dict) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True, default=str).encode("utf-8")


class ObjectStore:
    backend = "base"

    def put_bytes(self, object_key: str, data: bytes, content_type: str) -> StoredObject:  # pragma: no cover - interface
        raise NotImplementedError

    def get_bytes(self, object_key: str) -> bytes | None:  # pragma: no cover - interface
        raise NotImplementedError

    def put_json(self, object_key: str, payload: dict) -> StoredObject:
        return self.put_bytes(object_key, _json_bytes(payload), "application/json")

    def put_text(self, object_key: str, text: str, content_type: str = "text/plain; charset=utf-8") -> StoredObject:
        return self.put_bytes(object_key, text.encode("utf-8"), content_type)


class LocalObjectStore(ObjectStore):
    backend = "local"

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def put_bytes(self, object_key: str, data: bytes, content_type: str) -> StoredObject:
        path = self.root / object_key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return StoredObject(
            object_key=object_key,
            content_hash=sha256(data).hexdigest(),
            stored_at=datetime.now(timezone.utc),
            backend=self.backend,
        )

    def get_bytes(self, object_key: str) -> bytes | None:
        path = self.root / object_key
        if not path.exists():
            return None
        return path.read_bytes()


class MinioObjectStore(ObjectStore):
    backend = "minio"

    def __init__(self, endpoint: str, access_key: str, secret_key: str, bucket: str, secure: bool = False):
        self.client = Minio(endpoint, access_key=access_key, secret_key=secret_key, secure=secure)
        self.bucket = bucket
        self._ensure_bucket()

    def _ensure_bucket(self) -> None:
        found = self.client.bucket_exists(bucket_name=self.bucket)
        if not found:
            self.client.make_bucket(bucket_name=self.bucket)

    def put_bytes(self, object_key: str, data: bytes, content_type: str) -> StoredObject:
        self.client.put_object(
            bucket_name=self.bucket,
            object_name=object_key,
            data=io.BytesIO(data),
            length=len(data),
            content_type=content_type,
        )
        return StoredObject(
            object_key=object_key,
            content_hash=sha256(data).hexdigest(),
            stored_at=datetime.now(timezone.utc),
            backend=self.backend,
        )

    def get_bytes(self, object_key: str) -> bytes | None:
        try:
            response = self.client.get_object(bucket_name=self.bucket, object_name=object_key)
        except S3Error as exc:
            if exc.code == "NoSuchKey":
                return None
            raise
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()


def build_object_store(settings: Settings | None = None) -> ObjectStore:
    cfg = settings or get_settings()
    if cfg.object_store_backend == "minio":
        try:
            return MinioObjectStore(
                endpoint=cfg.minio_endpoint,
                access_key=cfg.minio_access_key,
                secret_key=cfg.minio_secret_key,
                bucket=cfg.minio_bucket,
                secure=cfg.minio_secure,
            )
        except Exception as exc:
            # MinIO unreachable (local runs, tests): degrade to the local directory.
            logger.warning("minio unavailable, using local object store: %s", exc)
    return LocalObjectStore(cfg.object_store_dir)
