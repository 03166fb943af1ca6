from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import yaml


DEFAULT_MAX_SHARE_BYTES = 5 * 1024 * 1024


@dataclass(frozen=True)
class Settings:
    env: str = "dev"
    allowed_origin: str = "localhost"
    production_hosts: tuple[str, ...] = field(default_factory=tuple)
    public_base_url: str = "http://localhost:8000"
    max_share_bytes: int = DEFAULT_MAX_SHARE_BYTES
    key_encoding: str = "hex"
    short_key_length: int = 16
    redis_url: Optional[str] = None
    redis_ttl_seconds: Optional[int] = None
    engine_handlers: Optional[str] = None
    engine_call_timeout: Optional[float] = None
    api_host: str = "0.0.0.0"
    api_port: int = 8000


def normalize_host(value: str) -> str:
    """Reduce `https://host:port/...` or a bare `host:port` to its network location."""
    value = value.strip()
    if "://" in value:
        return urlsplit(value).netloc.lower()
    return value.rstrip("/").lower()


def _split_hosts(raw: Any) -> tuple[str, ...]:
    if not raw:
        return ()
    if isinstance(raw, str):
        raw = raw.split(",")
    return tuple(normalize_host(h) for h in raw if str(h).strip())


def load_settings(path: str | Path = "config/settings.yaml") -> Settings:
    p = Path(path)

    data: Dict[str, Any] = {}
    if p.is_file():
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}

    share_section = data.get("share", {}) or {}
    redis_section = data.get("redis", {}) or {}
    engine_section = data.get("engine", {}) or {}
    api_section = data.get("api", {}) or {}

    # Env overrides (deployment-specific hosts and backends).
    allowed_origin = os.getenv("PLAYGROUND_ALLOWED_ORIGIN") or share_section.get("allowed_origin") or "localhost"
    production_hosts = os.getenv("PLAYGROUND_PRODUCTION_HOSTS") or share_section.get("production_hosts")
    public_base_url = (
        os.getenv("PLAYGROUND_PUBLIC_BASE_URL") or share_section.get("public_base_url") or "http://localhost:8000"
    )
    redis_url = os.getenv("PLAYGROUND_REDIS_URL") or redis_section.get("url")
    engine_handlers = os.getenv("PLAYGROUND_ENGINE_HANDLERS") or engine_section.get("handlers")

    ttl = redis_section.get("ttl_seconds")
    timeout = engine_section.get("call_timeout_seconds")
    return Settings(
        env=data.get("env", "dev"),
        allowed_origin=normalize_host(str(allowed_origin)),
        production_hosts=_split_hosts(production_hosts),
        public_base_url=str(public_base_url).rstrip("/"),
        max_share_bytes=int(share_section.get("max_bytes", DEFAULT_MAX_SHARE_BYTES)),
        key_encoding=str(share_section.get("key_encoding", "hex")),
        short_key_length=int(share_section.get("short_key_length", 16)),
        redis_url=redis_url or None,
        redis_ttl_seconds=int(ttl) if ttl is not None else None,
        engine_handlers=engine_handlers or None,
        engine_call_timeout=float(timeout) if timeout is not None else None,
        api_host=str(api_section.get("host", "0.0.0.0")),
        api_port=int(api_section.get("port", 8000)),
    )
