from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Mapping, Protocol
from urllib.parse import quote

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError

_MISSING_CODES = {"404", "nosuchkey", "notfound"}


@dataclass(slots=True)
class StoredFile:
    url: str
    size: int


class FileStore(Protocol):
    async def upload(
        self,
        data: bytes,
        filename: str,
        content_type: str,
        path_prefix: str,
        metadata: Mapping[str, str] | None = None,
    ) -> StoredFile:
        ...

    async def download(self, path_prefix: str, filename: str) -> bytes | None:
        ...

    async def delete(self, path_prefix: str, filename: str) -> bool:
        ...

    async def exists(self, path_prefix: str, filename: str) -> bool:
        ...

    def url_for(self, path_prefix: str, filename: str) -> str:
        ...


def object_key(path_prefix: str, filename: str) -> str:
    prefix = path_prefix.strip("/")
    return f"{prefix}/{filename}" if prefix else filename


def content_disposition(filename: str) -> str:
    """``attachment`` disposition with an ASCII fallback and an RFC 5987 UTF-8 name."""

    fallback = filename.encode("ascii", "replace").decode("ascii").replace("\\", "_").replace('"', "_")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def encode_metadata(metadata: Mapping[str, str] | None) -> dict[str, str]:
    """S3 user metadata must be ASCII; values are stored percent-encoded."""

    return {key: quote(str(value), safe="") for key, value in (metadata or {}).items()}


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", "")).lower()


class S3FileStore:
    """Blob storage on an S3 compatible bucket.

    boto3 is blocking, so every call is pushed to a worker thread.
    """

    def __init__(
        self,
        *,
        bucket: str,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        region: str,
        client=None,
    ) -> None:
        self._bucket = bucket
        self._endpoint_url = endpoint_url.rstrip("/")
        self._client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
            config=Config(signature_version="s3v4"),
        )

    @property
    def root_marker(self) -> str:
        """Path segment that precedes object keys in every public URL."""

        return f"/{self._bucket}/"

    def url_for(self, path_prefix: str, filename: str) -> str:
        return f"{self._endpoint_url}/{self._bucket}/{quote(object_key(path_prefix, filename))}"

    async def ensure_bucket(self) -> None:
        try:
            await asyncio.to_thread(self._client.head_bucket, Bucket=self._bucket)
        except ClientError as exc:
            if _error_code(exc) not in {"404", "nosuchbucket", "notfound"}:
                raise
            await asyncio.to_thread(self._client.create_bucket, Bucket=self._bucket)

    async def upload(
        self,
        data: bytes,
        filename: str,
        content_type: str,
        path_prefix: str,
        metadata: Mapping[str, str] | None = None,
    ) -> StoredFile:
        key = object_key(path_prefix, filename)
        await asyncio.to_thread(
            self._client.put_object,
            Bucket=self._bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            ContentDisposition=content_disposition(filename),
            Metadata=encode_metadata(metadata),
        )
        return StoredFile(url=self.url_for(path_prefix, filename), size=len(data))

    async def download(self, path_prefix: str, filename: str) -> bytes | None:
        if not filename:
            return None
        key = object_key(path_prefix, filename)
        try:
            response = await asyncio.to_thread(self._client.get_object, Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                return None
            raise
        return await asyncio.to_thread(response["Body"].read)

    async def delete(self, path_prefix: str, filename: str) -> bool:
        if not filename:
            return False
        if not await self.exists(path_prefix, filename):
            return False
        key = object_key(path_prefix, filename)
        await asyncio.to_thread(self._client.delete_object, Bucket=self._bucket, Key=key)
        return True

    async def exists(self, path_prefix: str, filename: str) -> bool:
        if not filename:
            return False
        key = object_key(path_prefix, filename)
        try:
            await asyncio.to_thread(self._client.head_object, Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                return False
            raise
        return True
