from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Union, assert_never


# Wire tags (frozen; the engine answers with tag + "Result" / tag + "Error").

CALCULATE_OVERLAY = "CalculateOverlay"
APPLY_OVERLAY = "ApplyOverlay"
GET_INFO = "GetInfo"
QUERY_JSONPATH = "QueryJSONPath"

ALL_KINDS = (CALCULATE_OVERLAY, APPLY_OVERLAY, GET_INFO, QUERY_JSONPATH)


def result_tag(kind: str) -> str:
    return f"{kind}Result"


def error_tag(kind: str) -> str:
    return f"{kind}Error"


@dataclass(frozen=True)
class CalculateOverlay:
    """Compute the overlay that turns `from_doc` into `to_doc`."""

    kind: ClassVar[str] = CALCULATE_OVERLAY
    from_doc: str
    to_doc: str
    existing: str = ""


@dataclass(frozen=True)
class ApplyOverlay:
    kind: ClassVar[str] = APPLY_OVERLAY
    source: str
    overlay: str


@dataclass(frozen=True)
class GetInfo:
    kind: ClassVar[str] = GET_INFO
    document: str


@dataclass(frozen=True)
class QueryJSONPath:
    kind: ClassVar[str] = QUERY_JSONPATH
    source: str
    jsonpath: str


EngineRequest = Union[CalculateOverlay, ApplyOverlay, GetInfo, QueryJSONPath]


def to_wire(request: EngineRequest) -> Dict[str, Any]:
    if isinstance(request, CalculateOverlay):
        payload = {"from": request.from_doc, "to": request.to_doc, "existing": request.existing}
    elif isinstance(request, ApplyOverlay):
        payload = {"source": request.source, "overlay": request.overlay}
    elif isinstance(request, GetInfo):
        payload = {"openapi": request.document}
    elif isinstance(request, QueryJSONPath):
        payload = {"source": request.source, "jsonpath": request.jsonpath}
    else:
        assert_never(request)
    return {"type": request.kind, "payload": payload}


# ApplyOverlay returns a JSON document describing how far the overlay applied.


@dataclass(frozen=True)
class ApplyOverlaySuccess:
    result: str


@dataclass(frozen=True)
class ApplyOverlayIncomplete:
    """Overlay applied up to `line`/`col`; `result` is the partial document."""

    line: int
    col: int
    result: str


@dataclass(frozen=True)
class ApplyOverlayPathError:
    line: int
    col: int
    error: str


ApplyOverlayOutcome = Union[ApplyOverlaySuccess, ApplyOverlayIncomplete, ApplyOverlayPathError]


def parse_apply_outcome(raw: str) -> ApplyOverlayOutcome:
    try:
        d = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"apply result is not JSON: {e}") from e
    if not isinstance(d, dict):
        raise ValueError("apply result must be object")

    t = d.get("type")
    if t == "success":
        return ApplyOverlaySuccess(result=str(d.get("result", "")))
    try:
        if t == "incomplete":
            return ApplyOverlayIncomplete(line=int(d["line"]), col=int(d["col"]), result=str(d.get("result", "")))
        if t == "error":
            return ApplyOverlayPathError(line=int(d["line"]), col=int(d["col"]), error=str(d.get("error", "")))
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"malformed {t} apply result: {e}") from e
    raise ValueError(f"unknown apply result type: {t!r}")
