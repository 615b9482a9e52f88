"""Raw payload storage: a local directory tree or an S3-compatible bucket."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

from core.contracts import ObjectStore

log = logging.getLogger(__name__)


class LocalJsonObjectStore(ObjectStore):
    """Objects live at ``<root>/<bucket>/<key>``; writes replace atomically."""

    def __init__(self, root: str | Path, bucket: str) -> None:
        self._bucket_dir = Path(root) / bucket

    @property
    def bucket_dir(self) -> Path:
        return self._bucket_dir

    def path_for(self, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not parts or key.startswith("/") or ".." in parts:
            raise ValueError(f"Invalid object key: {key!r}")
        return self._bucket_dir.joinpath(*parts)

    async def ensure_bucket(self) -> None:
        await asyncio.to_thread(self._bucket_dir.mkdir, parents=True, exist_ok=True)
        log.debug("Object store bucket ready at %s", self._bucket_dir)

    async def put_json(self, key: str, value: Any) -> None:
        path = self.path_for(key)
        body = json.dumps(value, ensure_ascii=False, default=str)
        await asyncio.to_thread(self._write, path, body)

    async def get_json(self, key: str) -> Any:
        path = self.path_for(key)
        text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        return json.loads(text)

    @staticmethod
    def _write(path: Path, body: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(body)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class S3JsonObjectStore(ObjectStore):
    """Raw payloads in an S3-compatible bucket (AWS S3, MinIO).

    boto3 is blocking, so every call is pushed to a worker thread.
    """

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None = None,
        region: str = "us-east-1",
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        force_path_style: bool = True,
        client: Any = None,
    ) -> None:
        self._bucket = bucket
        self._region = region
        self._client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=BotoConfig(
                s3={"addressing_style": "path" if force_path_style else "auto"}
            ),
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    async def ensure_bucket(self) -> None:
        try:
            await asyncio.to_thread(self._client.head_bucket, Bucket=self._bucket)
            return
        except ClientError as exc:
            status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            if status not in (400, 404):
                raise

        kwargs: dict[str, Any] = {"Bucket": self._bucket}
        # us-east-1 rejects an explicit location constraint
        if self._region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self._region}
        await asyncio.to_thread(self._client.create_bucket, **kwargs)
        log.info("Created object store bucket %s", self._bucket)

    async def put_json(self, key: str, value: Any) -> None:
        if not key:
            raise ValueError("Object key must not be empty")
        body = json.dumps(value, ensure_ascii=False, default=str).encode("utf-8")
        await asyncio.to_thread(
            self._client.put_object,
            Bucket=self._bucket,
            Key=key,
            Body=body,
            ContentType="application/json",
        )

    async def get_json(self, key: str) -> Any:
        response = await asyncio.to_thread(
            self._client.get_object, Bucket=self._bucket, Key=key
        )
        body = await asyncio.to_thread(response["Body"].read)
        return json.loads(body)
