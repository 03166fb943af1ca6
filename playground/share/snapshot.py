"""Session snapshots and the `s` share-link parameter.

A snapshot is `{"original": ..., "result": ...}` serialized as JSON and gzipped.
The share endpoint answers with a base64 locator; the playground URL carries it
as `?s=<locator>`, and resolving it fetches, decompresses and decodes the blob.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import asdict, dataclass
from http import HTTPStatus
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlsplit

import httpx

from playground.codec import adecompress, compress, decompress
from playground.core.errors import AuthorizationError, PayloadTooLargeError, ShareNotFoundError, StorageError

from .service import SHARE_ROUTE

logger = logging.getLogger(__name__)

SHARE_PARAM = "s"


@dataclass(frozen=True)
class SessionSnapshot:
    original: str
    result: str


def _snapshot_from_json(text: str) -> SessionSnapshot:
    d = json.loads(text)
    if not isinstance(d, dict):
        raise ValueError("snapshot must be object")
    original, result = d.get("original"), d.get("result")
    if not isinstance(original, str) or not isinstance(result, str):
        raise ValueError("snapshot requires string fields original and result")
    return SessionSnapshot(original=original, result=result)


def encode_snapshot(snapshot: SessionSnapshot) -> bytes:
    return compress(json.dumps(asdict(snapshot), ensure_ascii=False))


def decode_snapshot(data: bytes) -> SessionSnapshot:
    return _snapshot_from_json(decompress(data))


def share_query(encoded_locator: str) -> str:
    return urlencode({SHARE_PARAM: encoded_locator})


def share_param_from_url(url: str) -> Optional[str]:
    values = parse_qs(urlsplit(url).query).get(SHARE_PARAM)
    return values[0] if values else None


def decode_share_param(s: str) -> str:
    try:
        locator = base64.b64decode(s, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError(f"invalid share parameter: {e}") from e
    if urlsplit(locator).scheme not in ("http", "https"):
        raise ValueError("share parameter does not point to an http(s) URL")
    return locator


def _raise_for_status(response: httpx.Response) -> None:
    status = response.status_code
    if status < 400:
        return
    if status == HTTPStatus.FORBIDDEN:
        raise AuthorizationError("origin not allowed")
    if status == HTTPStatus.REQUEST_ENTITY_TOO_LARGE:
        raise PayloadTooLargeError("share payload too large")
    if status == HTTPStatus.NOT_FOUND:
        raise ShareNotFoundError(str(response.url))
    raise StorageError(f"share request failed with HTTP {status}")


class ShareClient:
    """Creates and resolves share links against a running share endpoint."""

    def __init__(self, base_url: str, *, origin: str, client: Optional[httpx.AsyncClient] = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._origin = origin
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None

    async def create_link(self, snapshot: SessionSnapshot) -> str:
        """Upload the snapshot and return the base64 locator for the `s` parameter."""
        response = await self._client.post(
            self._base_url + SHARE_ROUTE,
            content=encode_snapshot(snapshot),
            headers={"Origin": self._origin, "Content-Type": "application/octet-stream"},
        )
        _raise_for_status(response)
        encoded = response.json()
        if not isinstance(encoded, str):
            raise StorageError("share endpoint returned a non-string body")
        return encoded

    async def resolve(self, s: str) -> SessionSnapshot:
        locator = decode_share_param(s)
        logger.info("Resolving share link %s", locator)
        async with self._client.stream("GET", locator) as response:
            _raise_for_status(response)
            text = await adecompress(response.aiter_bytes())
        return _snapshot_from_json(text)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
