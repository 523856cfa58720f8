"""In-memory sliding-window rate limiting, active in production only.

Limits:
  /auth/*                    10 requests/minute per IP
  /lgpd/submit-reactivation  5 requests/hour per IP
  /lgpd/export-data          3 requests/day per bearer token
  /lgpd/delete-account       1 request/day per bearer token

State lives in process memory, so limits are per instance.
"""

import time
from collections import defaultdict
from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from zona_fiscal.config import settings
from zona_fiscal.core.auth import extract_bearer_token
from zona_fiscal.core.errors import error_response
from zona_fiscal.core.security import client_ip, log_security_event

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR


@dataclass(frozen=True)
class RateRule:
    prefix: str
    max_requests: int
    window: int
    by: str  # "ip" or "token"


RULES: list[RateRule] = [
    RateRule("/auth/", 10, MINUTE, "ip"),
    RateRule("/lgpd/submit-reactivation", 5, HOUR, "ip"),
    RateRule("/lgpd/export-data", 3, DAY, "token"),
    RateRule("/lgpd/delete-account", 1, DAY, "token"),
]


class SlidingWindow:
    def __init__(self) -> None:
        self._hits: dict[str, list[float]] = defaultdict(list)

    def is_allowed(self, key: str, max_requests: int, window: int) -> bool:
        now = time.monotonic()
        cutoff = now - window
        hits = [t for t in self._hits[key] if t > cutoff]
        if len(hits) >= max_requests:
            self._hits[key] = hits
            return False
        hits.append(now)
        self._hits[key] = hits
        return True

    def reset(self) -> None:
        self._hits.clear()


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, enabled: bool | None = None) -> None:
        super().__init__(app)
        self.enabled = enabled
        self.window = SlidingWindow()

    def _is_enabled(self) -> bool:
        return settings.is_production if self.enabled is None else self.enabled

    def _key(self, rule: RateRule, request: Request) -> str | None:
        if rule.by == "ip":
            return f"ip:{client_ip(request) or 'unknown'}:{rule.prefix}"
        token = extract_bearer_token(request)
        # Unauthenticated calls are rejected by the auth gate anyway
        return f"token:{token}:{rule.prefix}" if token else None

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self._is_enabled():
            return await call_next(request)

        path = request.url.path
        for rule in RULES:
            if not path.startswith(rule.prefix):
                continue
            key = self._key(rule, request)
            if key and not self.window.is_allowed(key, rule.max_requests, rule.window):
                log_security_event("Rate limit exceeded", {"path": path, "by": rule.by}, request)
                response = error_response(
                    "Muitas requisições. Tente novamente mais tarde.", 429, request
                )
                response.headers["Retry-After"] = str(rule.window)
                return response

        return await call_next(request)
