from __future__ import annotations

import asyncio
import base64
import hashlib
import threading
from typing import AsyncIterator, Iterable, Optional

import pytest

from playground.core.errors import AuthorizationError, EmptyPayloadError, PayloadTooLargeError, StorageError
from playground.share.keys import derive_share_key, encode_digest
from playground.share.origin import OriginPolicy
from playground.share.service import ShareService
from playground.share.store import InMemoryShareStore, RedisShareStore

ALLOWED = "http://localhost:5173"
MiB = 1024 * 1024


async def _stream(chunks: Iterable[bytes]) -> AsyncIterator[bytes]:
    for c in chunks:
        yield c


def _service(store=None, **kwargs) -> ShareService:
    return ShareService(
        store if store is not None else InMemoryShareStore(),
        OriginPolicy.of(ALLOWED, ["overlay.example.com"]),
        public_base_url="https://share.example.com",
        **kwargs,
    )


def test_identical_bytes_share_one_key_and_one_object() -> None:
    store = InMemoryShareStore()
    service = _service(store)
    body = b"\x1f\x8b compressed session"

    first = asyncio.run(service.ingest(_stream([body]), ALLOWED))
    second = asyncio.run(service.ingest(_stream([body[:5], body[5:]]), ALLOWED))

    assert first.key == second.key == "share-urls/" + hashlib.sha256(body).hexdigest()
    assert first.created is True
    assert second.created is False
    assert len(store) == 1
    assert store.get(first.key) == body


def test_receipt_locator_is_base64_of_retrieval_url() -> None:
    receipt = asyncio.run(_service().ingest(_stream([b"payload"]), ALLOWED))
    assert receipt.locator == f"https://share.example.com/api/share/{receipt.key}"
    assert base64.b64decode(receipt.encoded_locator).decode("utf-8") == receipt.locator


def test_disallowed_origin_is_refused_and_nothing_stored() -> None:
    store = InMemoryShareStore()
    service = _service(store)
    for origin in ("http://evil.example", None, "", "null", "http://localhost:5173.evil.example"):
        with pytest.raises(AuthorizationError):
            asyncio.run(service.ingest(_stream([b"payload"]), origin))
    assert len(store) == 0


def test_origin_is_checked_before_reading_body() -> None:
    read = False

    async def body() -> AsyncIterator[bytes]:
        nonlocal read
        read = True
        yield b"payload"

    with pytest.raises(AuthorizationError):
        asyncio.run(_service().ingest(body(), "http://evil.example"))
    assert read is False


def test_production_host_is_allowed() -> None:
    receipt = asyncio.run(_service().ingest(_stream([b"payload"]), "https://overlay.example.com"))
    assert receipt.created is True


def test_oversized_stream_aborts_early_and_stores_nothing() -> None:
    store = InMemoryShareStore()
    service = _service(store)
    pulled = 0

    async def body() -> AsyncIterator[bytes]:
        nonlocal pulled
        for _ in range(12):
            pulled += 1
            yield b"\0" * (MiB // 2)

    with pytest.raises(PayloadTooLargeError):
        asyncio.run(service.ingest(body(), ALLOWED))
    # 5 MiB ceiling: the 11th half-MiB chunk crosses it; the 12th is never pulled.
    assert pulled == 11
    assert len(store) == 0


def test_payload_at_ceiling_is_accepted() -> None:
    service = _service(max_bytes=1024)
    receipt = asyncio.run(service.ingest(_stream([b"a" * 1024]), ALLOWED))
    assert receipt.created is True
    with pytest.raises(PayloadTooLargeError):
        asyncio.run(service.ingest(_stream([b"a" * 1025]), ALLOWED))


def test_declared_length_over_ceiling_is_refused_without_reading() -> None:
    service = _service(max_bytes=10)
    with pytest.raises(PayloadTooLargeError):
        asyncio.run(service.ingest(_stream([b"tiny"]), ALLOWED, declared_length=11))


def test_empty_body_is_a_client_error() -> None:
    with pytest.raises(EmptyPayloadError):
        asyncio.run(_service().ingest(_stream([]), ALLOWED))


def test_short_base64_keys() -> None:
    data = b"payload"
    key = derive_share_key(data, encoding="base64", short_length=10)
    assert key.startswith("share-urls/")
    assert len(key) == len("share-urls/") + 10
    assert "=" not in key and "+" not in key and "/" not in key[len("share-urls/") :]
    assert derive_share_key(data, encoding="base64", short_length=10) == key
    with pytest.raises(ValueError):
        encode_digest(b"x", encoding="rot13")


def test_short_key_collision_is_rejected_not_overwritten() -> None:
    store = InMemoryShareStore()
    store.put_if_absent("share-urls/abc", b"first")
    with pytest.raises(StorageError, match="collision"):
        store.put_if_absent("share-urls/abc", b"second")
    assert store.get("share-urls/abc") == b"first"


class _FakeRedis:
    def __init__(self, fail: bool = False) -> None:
        self.data: dict[str, bytes] = {}
        self.fail = fail
        self.ttls: dict[str, Optional[int]] = {}

    def set(self, key: str, value: bytes, ex: Optional[int] = None, nx: bool = False) -> Optional[bool]:
        if self.fail:
            raise ConnectionError("redis down")
        if nx and key in self.data:
            return None
        self.data[key] = value
        self.ttls[key] = ex
        return True

    def get(self, key: str) -> Optional[bytes]:
        if self.fail:
            raise ConnectionError("redis down")
        return self.data.get(key)


def test_redis_store_is_write_once() -> None:
    client = _FakeRedis()
    store = RedisShareStore(client, key_prefix="playground:", ttl_seconds=60)
    assert store.put_if_absent("share-urls/k", b"v") is True
    assert store.put_if_absent("share-urls/k", b"v") is False
    assert client.data == {"playground:share-urls/k": b"v"}
    assert client.ttls["playground:share-urls/k"] == 60
    assert store.get("share-urls/k") == b"v"
    assert store.get("share-urls/missing") is None


def test_backend_failure_surfaces_as_storage_error() -> None:
    service = _service(RedisShareStore(_FakeRedis(fail=True)))
    with pytest.raises(StorageError):
        asyncio.run(service.ingest(_stream([b"payload"]), ALLOWED))


class _GatedStore(InMemoryShareStore):
    """Blocks each write until the event loop opens the gate."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.gate = threading.Event()
        self.opened_in_time: Optional[bool] = None

    def put_if_absent(self, key: str, data: bytes) -> bool:
        self.entered.set()
        self.opened_in_time = self.gate.wait(timeout=1.0)
        return super().put_if_absent(key, data)


def test_slow_store_write_does_not_block_the_event_loop() -> None:
    store = _GatedStore()
    service = _service(store)

    async def scenario() -> None:
        task = asyncio.ensure_future(service.ingest(_stream([b"payload"]), ALLOWED))
        while not store.entered.is_set():
            await asyncio.sleep(0.001)
        # Only reachable while the write is pending if the loop is still free.
        store.gate.set()
        receipt = await task
        assert receipt.created is True

    asyncio.run(scenario())
    assert store.opened_in_time is True
