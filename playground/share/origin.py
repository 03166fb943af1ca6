from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional
from urllib.parse import urlsplit

from playground.core.settings import Settings, normalize_host


@dataclass(frozen=True)
class OriginPolicy:
    """Allow-list of deployment hosts a share request may come from.

    An Origin is allowed when its network location (`host[:port]`) equals the
    primary host or one of the explicit production hosts. Nothing else passes:
    no prefix or suffix matching, and a missing Origin is always refused.
    """

    primary_host: str
    extra_hosts: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, primary: str, extra: Iterable[str] = ()) -> "OriginPolicy":
        return cls(primary_host=normalize_host(primary), extra_hosts=frozenset(normalize_host(h) for h in extra))

    @classmethod
    def from_settings(cls, settings: Settings) -> "OriginPolicy":
        return cls.of(settings.allowed_origin, settings.production_hosts)

    def is_allowed(self, origin: Optional[str]) -> bool:
        if not origin or origin.strip().lower() == "null":
            return False
        try:
            parts = urlsplit(origin.strip())
        except ValueError:
            return False
        if parts.scheme not in ("http", "https") or not parts.netloc:
            return False
        host = parts.netloc.lower()
        return host == self.primary_host or host in self.extra_hosts
