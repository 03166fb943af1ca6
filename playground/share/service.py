"""Share persistence: bounded ingest -> content key -> write-once store -> locator.

The service is transport-agnostic; `playground.share.api` adapts it to HTTP.
Order of checks matters:
1. Origin is verified before the body is read or the store is touched, so a
   refused caller learns nothing about existing objects.
2. The body is read chunk by chunk and abandoned the moment it passes the
   ceiling. Nothing is stored for an oversized body.
3. Only a complete, bounded body is hashed and stored.
"""

from __future__ import annotations

import base64
import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterable, Optional

from playground.core.errors import AuthorizationError, EmptyPayloadError, PayloadTooLargeError, ShareNotFoundError
from playground.core.settings import DEFAULT_MAX_SHARE_BYTES, Settings

from .keys import SHARE_KEY_PREFIX, derive_share_key, sha256_digest
from .origin import OriginPolicy
from .store import ShareBlob, ShareStore

logger = logging.getLogger(__name__)

SHARE_ROUTE = "/api/share"


@dataclass(frozen=True)
class ShareReceipt:
    key: str
    locator: str
    encoded_locator: str
    created: bool


def encode_locator(locator: str) -> str:
    return base64.b64encode(locator.encode("utf-8")).decode("ascii")


class ShareService:
    def __init__(
        self,
        store: ShareStore,
        policy: OriginPolicy,
        *,
        public_base_url: str,
        max_bytes: int = DEFAULT_MAX_SHARE_BYTES,
        key_encoding: str = "hex",
        short_key_length: int = 16,
    ) -> None:
        self._store = store
        self._policy = policy
        self._public_base_url = public_base_url.rstrip("/")
        self._max_bytes = max_bytes
        self._key_encoding = key_encoding
        self._short_key_length = short_key_length

    @classmethod
    def from_settings(cls, settings: Settings, store: ShareStore) -> "ShareService":
        return cls(
            store,
            OriginPolicy.from_settings(settings),
            public_base_url=settings.public_base_url,
            max_bytes=settings.max_share_bytes,
            key_encoding=settings.key_encoding,
            short_key_length=settings.short_key_length,
        )

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def authorize(self, origin: Optional[str]) -> None:
        if not self._policy.is_allowed(origin):
            logger.warning("share_origin_rejected", extra={"origin": origin})
            raise AuthorizationError("origin not allowed")

    async def read_bounded(self, chunks: AsyncIterable[bytes]) -> bytes:
        buf = bytearray()
        async for chunk in chunks:
            if not chunk:
                continue
            buf.extend(chunk)
            if len(buf) > self._max_bytes:
                logger.warning("share_payload_too_large", extra={"limit": self._max_bytes, "read": len(buf)})
                raise PayloadTooLargeError(f"Data exceeds the maximum allowed size of {self._max_bytes} bytes")
        if not buf:
            raise EmptyPayloadError("request body is empty")
        return bytes(buf)

    def to_blob(self, data: bytes) -> ShareBlob:
        key = derive_share_key(data, encoding=self._key_encoding, short_length=self._short_key_length)
        return ShareBlob(key=key, digest=sha256_digest(data).hex(), data=data)

    def locator_for(self, key: str) -> str:
        return f"{self._public_base_url}{SHARE_ROUTE}/{key}"

    async def ingest(
        self,
        chunks: AsyncIterable[bytes],
        origin: Optional[str],
        *,
        declared_length: Optional[int] = None,
    ) -> ShareReceipt:
        self.authorize(origin)
        # A declared length is a hint only; the streamed count is what is enforced.
        if declared_length is not None and declared_length > self._max_bytes:
            raise PayloadTooLargeError(f"Data exceeds the maximum allowed size of {self._max_bytes} bytes")
        data = await self.read_bounded(chunks)

        blob = self.to_blob(data)
        # Store backends block on I/O; keep them off the event loop.
        created = await asyncio.to_thread(self._store.put_if_absent, blob.key, blob.data)
        locator = self.locator_for(blob.key)
        logger.info("share_stored key=%s bytes=%d created=%s", blob.key, len(data), created)
        return ShareReceipt(key=blob.key, locator=locator, encoded_locator=encode_locator(locator), created=created)

    def fetch(self, key: str) -> bytes:
        if not key.startswith(SHARE_KEY_PREFIX):
            raise ShareNotFoundError(key)
        data = self._store.get(key)
        if data is None:
            raise ShareNotFoundError(key)
        return data
