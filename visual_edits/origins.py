# visual_edits/origins.py
"""CORS origin policy for the edit endpoint.

The policy only decides whether CORS response headers are emitted; it never
authorizes a request on its own (that is the API key's job).
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, Optional, Pattern, Tuple

_LOCAL_ORIGIN = re.compile(r"https?://(localhost|127\.0\.0\.1)(:\d+)?")


@lru_cache(maxsize=64)
def _wildcard_pattern(domain: str) -> Pattern[str]:
    return re.compile(r"https://([a-zA-Z0-9-]+\.)*" + re.escape(domain))


class OriginPolicy:
    """Allow-list of browser origins.

    Allowed: localhost / 127.0.0.1 on any port (http or https), the exact
    origins given, and https on any subdomain of the wildcard domains.
    """

    def __init__(
        self,
        exact_origins: Iterable[str] = (),
        wildcard_domains: Iterable[str] = (),
        *,
        allow_localhost: bool = True,
    ) -> None:
        self.exact_origins: Tuple[str, ...] = tuple(o.rstrip("/") for o in exact_origins)
        self.wildcard_domains: Tuple[str, ...] = tuple(d.strip(".").lower() for d in wildcard_domains)
        self.allow_localhost = allow_localhost

    def is_allowed(self, origin: Optional[str]) -> bool:
        if not origin:
            return False
        if self.allow_localhost and _LOCAL_ORIGIN.fullmatch(origin):
            return True
        if origin in self.exact_origins:
            return True
        return any(_wildcard_pattern(d).fullmatch(origin) for d in self.wildcard_domains)

    @classmethod
    def from_config(cls, cfg) -> "OriginPolicy":
        return cls(cfg.exact_origins, cfg.wildcard_domains, allow_localhost=cfg.allow_localhost)


__all__ = ["OriginPolicy"]
