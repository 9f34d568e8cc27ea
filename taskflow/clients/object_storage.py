"""
Object storage for task attachments.

``S3ObjectStorage`` talks to any S3-compatible endpoint through boto3; the
in-memory variant backs tests and the memory store backend.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..core.exceptions import StorageError
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

_NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")


class ObjectStorage(ABC):
    """Abstract bucket of attachment objects addressed by key."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: Optional[str] = None, overwrite: bool = False) -> str:
        """
        Store an object.

        Raises:
            StorageError: if the key exists and ``overwrite`` is False, or the backend fails
        """
        pass

    @abstractmethod
    def get(self, key: str) -> bytes:
        pass

    @abstractmethod
    def remove(self, keys: Iterable[str]) -> int:
        """Remove objects; missing keys are ignored. Returns the number of keys requested."""
        pass

    @abstractmethod
    def signed_url(self, key: str, expires_in: int = 3600) -> str:
        pass


class S3ObjectStorage(ObjectStorage):
    """Bucket on an S3-compatible service."""

    def __init__(self, bucket: str, endpoint_url: Optional[str] = None, region_name: Optional[str] = None,
                 client=None):
        self.bucket = bucket
        self.s3 = client or boto3.client("s3", endpoint_url=endpoint_url, region_name=region_name)
        logger.info(f"🪣 S3ObjectStorage ready for bucket '{bucket}'")

    def _fail(self, operation: str, key: Optional[str], error: Exception) -> StorageError:
        logger.error(f"❌ Storage {operation} failed for '{key}': {error}")
        return StorageError(f"Storage {operation} failed for '{key}': {error}", key=key, operation=operation)

    def exists(self, key: str) -> bool:
        try:
            self.s3.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if str(e.response.get("Error", {}).get("Code")) in _NOT_FOUND_CODES:
                return False
            raise self._fail("head", key, e) from e
        except BotoCoreError as e:
            raise self._fail("head", key, e) from e

    def put(self, key: str, data: bytes, content_type: Optional[str] = None, overwrite: bool = False) -> str:
        if not overwrite and self.exists(key):
            raise StorageError(f"Object already exists: {key}", key=key, operation="put")

        extra = {"ContentType": content_type} if content_type else {}
        try:
            self.s3.put_object(Bucket=self.bucket, Key=key, Body=data, **extra)
        except (ClientError, BotoCoreError) as e:
            raise self._fail("put", key, e) from e

        logger.info(f"✅ Uploaded {key} ({len(data)} bytes)")
        return key

    def get(self, key: str) -> bytes:
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise self._fail("get", key, e) from e

    def remove(self, keys: Iterable[str]) -> int:
        keys = list(keys)
        if not keys:
            return 0
        try:
            # delete_objects accepts at most 1000 keys per call
            for start in range(0, len(keys), 1000):
                batch = keys[start:start + 1000]
                self.s3.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                )
        except (ClientError, BotoCoreError) as e:
            raise self._fail("remove", ", ".join(keys), e) from e

        logger.info(f"🗑️ Removed {len(keys)} object(s) from '{self.bucket}'")
        return len(keys)

    def signed_url(self, key: str, expires_in: int = 3600) -> str:
        try:
            return self.s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise self._fail("sign", key, e) from e


class InMemoryObjectStorage(ObjectStorage):
    """Dictionary-backed bucket for tests and the memory backend."""

    def __init__(self, bucket: str = "memory"):
        self.bucket = bucket
        self._objects: Dict[str, Tuple[bytes, Optional[str]]] = {}
        self._mutex = threading.RLock()

    def exists(self, key: str) -> bool:
        with self._mutex:
            return key in self._objects

    def put(self, key: str, data: bytes, content_type: Optional[str] = None, overwrite: bool = False) -> str:
        with self._mutex:
            if not overwrite and key in self._objects:
                raise StorageError(f"Object already exists: {key}", key=key, operation="put")
            self._objects[key] = (bytes(data), content_type)
            return key

    def get(self, key: str) -> bytes:
        with self._mutex:
            if key not in self._objects:
                raise StorageError(f"Object not found: {key}", key=key, operation="get")
            return self._objects[key][0]

    def remove(self, keys: Iterable[str]) -> int:
        keys = list(keys)
        with self._mutex:
            for key in keys:
                self._objects.pop(key, None)
        return len(keys)

    def signed_url(self, key: str, expires_in: int = 3600) -> str:
        if not self.exists(key):
            raise StorageError(f"Object not found: {key}", key=key, operation="sign")
        return f"memory://{self.bucket}/{key}?expires_in={expires_in}"

    def keys(self) -> List[str]:
        with self._mutex:
            return sorted(self._objects)
