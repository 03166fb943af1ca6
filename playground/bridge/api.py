"""HTTP surface over the shared compute bridge.

Each editor pane posts its edits here with `supersede=true`, so a burst of
keystrokes collapses to the latest request per pane.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, assert_never

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from playground.contracts.messages import (
    ApplyOverlayIncomplete,
    ApplyOverlayOutcome,
    ApplyOverlayPathError,
    ApplyOverlaySuccess,
)

from .bridge import ComputeBridge

router = APIRouter(prefix="/api")


class CalculateOverlayBody(BaseModel):
    from_doc: str = Field(alias="from")
    to_doc: str = Field(alias="to")
    existing: str = ""
    supersede: bool = False


class ApplyOverlayBody(BaseModel):
    source: str
    overlay: str
    supersede: bool = False


class GetInfoBody(BaseModel):
    document: str
    supersede: bool = False


class QueryJSONPathBody(BaseModel):
    source: str
    jsonpath: str
    supersede: bool = False


def get_bridge(request: Request) -> ComputeBridge:
    return request.app.state.bridge


def _outcome_dict(outcome: ApplyOverlayOutcome) -> Dict[str, Any]:
    if isinstance(outcome, ApplyOverlaySuccess):
        kind = "success"
    elif isinstance(outcome, ApplyOverlayIncomplete):
        kind = "incomplete"
    elif isinstance(outcome, ApplyOverlayPathError):
        kind = "error"
    else:
        assert_never(outcome)
    return {"type": kind, **asdict(outcome)}


@router.post("/overlay/calculate")
async def calculate_overlay(body: CalculateOverlayBody, request: Request) -> Dict[str, str]:
    overlay = await get_bridge(request).calculate_overlay(
        body.from_doc, body.to_doc, body.existing, supersede=body.supersede
    )
    return {"overlay": overlay}


@router.post("/overlay/apply")
async def apply_overlay(body: ApplyOverlayBody, request: Request) -> Dict[str, Any]:
    outcome = await get_bridge(request).apply_overlay(body.source, body.overlay, supersede=body.supersede)
    return _outcome_dict(outcome)


@router.post("/info")
async def get_info(body: GetInfoBody, request: Request) -> Dict[str, str]:
    return {"info": await get_bridge(request).get_info(body.document, supersede=body.supersede)}


@router.post("/jsonpath")
async def query_jsonpath(body: QueryJSONPathBody, request: Request) -> Dict[str, str]:
    result = await get_bridge(request).query_jsonpath(body.source, body.jsonpath, supersede=body.supersede)
    return {"result": result}
