from __future__ import annotations

from collections.abc import Iterable
from typing import Any, BinaryIO
from urllib.parse import quote

import boto3
import structlog
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import ClientError

from bulkimport.storage.base import StorageAdapter

logger = structlog.get_logger(__name__)

# DeleteObjects accepts at most 1000 keys per request
_DELETE_BATCH_SIZE = 1000


class S3StorageAdapter(StorageAdapter):
    def __init__(
        self,
        bucket: str,
        *,
        region: str | None = None,
        endpoint_url: str | None = None,
        public_base_url: str | None = None,
        client: BaseClient | None = None,
    ) -> None:
        self._bucket = bucket
        self._region = region
        self._endpoint_url = endpoint_url
        self._public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self._client = client or self._build_client()

    def _build_client(self) -> BaseClient:
        client_kwargs: dict[str, Any] = {
            "config": Config(signature_version="s3v4", s3={"addressing_style": "virtual"}),
        }
        if self._region:
            client_kwargs["region_name"] = self._region
        if self._endpoint_url:
            client_kwargs["endpoint_url"] = self._endpoint_url
        return boto3.client("s3", **client_kwargs)

    def put_file(self, key: str, fileobj: BinaryIO, content_type: str | None = None) -> str:
        extra: dict[str, Any] = {}
        if content_type:
            extra["ContentType"] = content_type
        self._client.put_object(Bucket=self._bucket, Key=key, Body=fileobj.read(), **extra)
        return self.resolve_uri(key)

    def open(self, key: str) -> BinaryIO:
        response = self._client.get_object(Bucket=self._bucket, Key=key)
        return response["Body"]

    def delete(self, key: str) -> None:
        self._client.delete_object(Bucket=self._bucket, Key=key)

    def delete_many(self, keys: Iterable[str]) -> int:
        pending = list(keys)
        deleted = 0
        for start in range(0, len(pending), _DELETE_BATCH_SIZE):
            batch = pending[start : start + _DELETE_BATCH_SIZE]
            response = self._client.delete_objects(
                Bucket=self._bucket,
                Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
            )
            errors = response.get("Errors") or []
            if errors:
                logger.warning(
                    "s3_delete_objects_partial_failure",
                    bucket=self._bucket,
                    failed=len(errors),
                    first_error=errors[0].get("Code"),
                )
            deleted += len(batch) - len(errors)
        return deleted

    def exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise
        return True

    def resolve_uri(self, key: str) -> str:
        return f"s3://{self._bucket}/{key}"

    def public_url(self, key: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{quote(key)}"
        if self._endpoint_url:
            return f"{self._endpoint_url.rstrip('/')}/{self._bucket}/{quote(key)}"
        region = self._region or "us-east-1"
        return f"https://{self._bucket}.s3.{region}.amazonaws.com/{quote(key)}"
