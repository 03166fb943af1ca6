from __future__ import annotations

import hashlib
from http import HTTPStatus
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from .service import SHARE_ROUTE, ShareService

router = APIRouter()


def get_share_service(request: Request) -> ShareService:
    return request.app.state.share_service


def _content_length(request: Request) -> Optional[int]:
    raw = request.headers.get("content-length")
    try:
        return int(raw) if raw is not None else None
    except ValueError:
        return None


@router.post(SHARE_ROUTE)
async def create_share(request: Request) -> JSONResponse:
    """Store the compressed session body and return its base64 locator as a JSON string."""
    service = get_share_service(request)
    receipt = await service.ingest(
        request.stream(),
        request.headers.get("origin"),
        declared_length=_content_length(request),
    )
    return JSONResponse(receipt.encoded_locator, status_code=HTTPStatus.OK)


@router.get(SHARE_ROUTE + "/{key:path}")
def get_share(key: str, request: Request) -> Response:
    data = get_share_service(request).fetch(key)
    etag = f'"{hashlib.sha256(data).hexdigest()}"'
    headers = {"ETag": etag, "Cache-Control": "public, max-age=31536000, immutable"}
    if request.headers.get("if-none-match") == etag:
        return Response(status_code=HTTPStatus.NOT_MODIFIED, headers=headers)
    return Response(content=data, media_type="application/octet-stream", headers=headers)
