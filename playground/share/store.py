from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional, Protocol

from playground.core.errors import StorageError


@dataclass(frozen=True)
class ShareBlob:
    key: str
    digest: str
    data: bytes


class ShareStore(Protocol):
    """Write-once object store for share blobs.

    Contract: `put_if_absent` stores `data` under `key` only if the key is free.
    Storing the same bytes again is a no-op (returns False); storing different
    bytes under a taken key raises StorageError.
    """

    def put_if_absent(self, key: str, data: bytes) -> bool:
        ...

    def get(self, key: str) -> Optional[bytes]:
        ...


def _check_same(key: str, existing: Optional[bytes], data: bytes) -> None:
    if existing is not None and existing != data:
        raise StorageError(f"share key collision: {key}")


class InMemoryShareStore:
    def __init__(self) -> None:
        self._objects: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put_if_absent(self, key: str, data: bytes) -> bool:
        with self._lock:
            existing = self._objects.get(key)
            _check_same(key, existing, data)
            if existing is not None:
                return False
            self._objects[key] = bytes(data)
            return True

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._objects.get(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)


class RedisShareStore:
    def __init__(self, redis_client, *, key_prefix: str = "playground", ttl_seconds: Optional[int] = None):
        self._client = redis_client
        self._prefix = key_prefix.rstrip(":")
        self._ttl = ttl_seconds

    @classmethod
    def from_url(cls, redis_url: str, **kwargs) -> "RedisShareStore":
        import redis  # type: ignore

        # Blobs are binary; keep responses as bytes.
        return cls(redis.Redis.from_url(redis_url, decode_responses=False), **kwargs)

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def put_if_absent(self, key: str, data: bytes) -> bool:
        try:
            # SET NX makes concurrent writers of the same key race safely.
            created = self._client.set(self._key(key), data, ex=self._ttl, nx=True)
            if created:
                return True
            existing = self._client.get(self._key(key))
        except Exception as e:
            raise StorageError(f"share store write failed: {e}") from e
        _check_same(key, existing, data)
        return False

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self._client.get(self._key(key))
        except Exception as e:
            raise StorageError(f"share store read failed: {e}") from e
