from __future__ import annotations

from typing import Any

from .messages import ALL_KINDS, error_tag, result_tag


RESULT_KEYS = {"type", "payload"}
ERROR_KEYS = {"type", "error"}


def _require_exact_keys(obj: dict[str, Any], *, required: set[str]) -> None:
    keys = set(obj.keys())
    missing = required - keys
    extra = keys - required
    if missing:
        raise ValueError(f"missing keys: {sorted(missing)}")
    if extra:
        raise ValueError(f"extra keys not allowed: {sorted(extra)}")


def _require_str(d: dict[str, Any], k: str, *, allow_empty: bool = False) -> str:
    v = d.get(k)
    if not isinstance(v, str):
        raise ValueError(f"{k} must be string")
    if not allow_empty and not v.strip():
        raise ValueError(f"{k} must be non-empty string")
    return v


def validate_request_dict(message: dict[str, Any]) -> None:
    _require_exact_keys(message, required={"type", "payload"})
    kind = _require_str(message, "type")
    if kind not in ALL_KINDS:
        raise ValueError(f"unknown message type: {kind}")
    if not isinstance(message.get("payload"), dict):
        raise ValueError("payload must be object")


def validate_response_dict(kind: str, message: Any) -> bool:
    """Strict engine response validation.

    Returns True for `<kind>Result`, False for `<kind>Error`; anything else
    (another request's tag, extra keys, non-string payload) raises ValueError.
    """

    if not isinstance(message, dict):
        raise ValueError("response must be object")
    t = _require_str(message, "type")
    if t == result_tag(kind):
        _require_exact_keys(message, required=RESULT_KEYS)
        # Empty documents are legitimate results.
        _require_str(message, "payload", allow_empty=True)
        return True
    if t == error_tag(kind):
        _require_exact_keys(message, required=ERROR_KEYS)
        _require_str(message, "error", allow_empty=True)
        return False
    raise ValueError(f"unexpected response type {t!r} for {kind}")
