"""
S3 / MinIO object store.

Requires ``boto3`` (optional dependency: ``pip install goproxy[s3]``).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

from ..faults import StoreReadFault, StoreWriteFault
from .base import ObjectStore

logger = logging.getLogger("goproxy.storage.s3")

_MISSING_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class S3ObjectStore(ObjectStore):
    """
    Store objects in an S3-compatible bucket under an optional key prefix.

    Usage::

        store = S3ObjectStore(
            bucket="go-modules",
            endpoint_url="http://localhost:9000",  # for MinIO
            aws_access_key_id="minioadmin",
            aws_secret_access_key="minioadmin",
        )
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        endpoint_url: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region_name: str = "us-east-1",
        client: Any = None,
    ):
        self.bucket = bucket
        self.prefix = prefix.strip("/") + "/" if prefix.strip("/") else ""
        self._endpoint_url = endpoint_url
        self._aws_access_key_id = aws_access_key_id
        self._aws_secret_access_key = aws_secret_access_key
        self._region_name = region_name
        self._client = client

    @property
    def name(self) -> str:
        return f"s3://{self.bucket}/{self.prefix}"

    def _get_client(self):
        if self._client is None:
            try:
                import boto3
            except ImportError:
                raise ImportError(
                    "S3ObjectStore requires boto3. Install with: pip install boto3"
                )
            kwargs = {"region_name": self._region_name}
            if self._endpoint_url:
                kwargs["endpoint_url"] = self._endpoint_url
            if self._aws_access_key_id:
                kwargs["aws_access_key_id"] = self._aws_access_key_id
            if self._aws_secret_access_key:
                kwargs["aws_secret_access_key"] = self._aws_secret_access_key
            self._client = boto3.client("s3", **kwargs)
        return self._client

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def _call(self, method: str, **kwargs: Any) -> Any:
        func = getattr(self._get_client(), method)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: func(**kwargs))

    @staticmethod
    def _is_missing(exc: Exception) -> bool:
        response = getattr(exc, "response", None)
        if not isinstance(response, dict):
            return False
        return str(response.get("Error", {}).get("Code", "")) in _MISSING_CODES

    @staticmethod
    def _transient():
        try:
            from botocore.exceptions import BotoCoreError, ClientError
        except ImportError:
            return ()
        return (BotoCoreError, ClientError)

    # ── CRUD ─────────────────────────────────────────────────────────

    async def get(self, key: str) -> Optional[bytes]:
        try:
            resp = await self._call("get_object", Bucket=self.bucket, Key=self._key(key))
            return resp["Body"].read()
        except self._transient() as exc:
            if self._is_missing(exc):
                return None
            raise StoreReadFault(key, str(exc), backend=self.name)

    async def put(self, key: str, data: bytes) -> None:
        try:
            await self._call("put_object", Bucket=self.bucket, Key=self._key(key), Body=data)
        except self._transient() as exc:
            raise StoreWriteFault(key, str(exc), backend=self.name)
        logger.debug("Stored s3://%s/%s (%d bytes)", self.bucket, self._key(key), len(data))

    async def exists(self, key: str) -> bool:
        try:
            await self._call("head_object", Bucket=self.bucket, Key=self._key(key))
            return True
        except self._transient() as exc:
            if self._is_missing(exc):
                return False
            raise StoreReadFault(key, str(exc), backend=self.name)

    async def modified(self, key: str) -> Optional[float]:
        try:
            resp = await self._call("head_object", Bucket=self.bucket, Key=self._key(key))
        except self._transient() as exc:
            if self._is_missing(exc):
                return None
            raise StoreReadFault(key, str(exc), backend=self.name)
        return resp["LastModified"].timestamp()

    async def delete(self, key: str) -> bool:
        existed = await self.exists(key)
        if not existed:
            return False
        try:
            await self._call("delete_object", Bucket=self.bucket, Key=self._key(key))
        except self._transient() as exc:
            raise StoreWriteFault(key, str(exc), backend=self.name)
        return True

    async def list(self, prefix: str = "") -> List[str]:
        def _collect() -> List[str]:
            paginator = self._get_client().get_paginator("list_objects_v2")
            keys: List[str] = []
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self._key(prefix)):
                for obj in page.get("Contents", []):
                    keys.append(obj["Key"][len(self.prefix):])
            return keys

        try:
            loop = asyncio.get_running_loop()
            keys = await loop.run_in_executor(None, _collect)
        except self._transient() as exc:
            raise StoreReadFault(prefix, str(exc), backend=self.name)
        return sorted(keys)
