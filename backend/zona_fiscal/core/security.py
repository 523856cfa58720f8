"""Security events: operational/forensic log, kept apart from the LGPD audit trail."""

import logging

from starlette.requests import Request

logger = logging.getLogger("zona_fiscal.security")

# Column widths of the ip_address / user_agent columns
MAX_IP_LENGTH = 45
MAX_USER_AGENT_LENGTH = 512


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.headers.get("x-real-ip")
        if not ip and request.client:
            ip = request.client.host
    return ip[:MAX_IP_LENGTH] if ip else None


def client_user_agent(request: Request, default: str | None = None) -> str | None:
    user_agent = request.headers.get("user-agent")
    if not user_agent:
        return default
    return user_agent[:MAX_USER_AGENT_LENGTH]


def log_security_event(event: str, details: dict | None, request: Request) -> None:
    """Best-effort: a logging failure never propagates to the request."""
    try:
        logger.warning(
            "SECURITY EVENT: event=%r request_id=%s ip=%s method=%s url=%s user_agent=%r details=%r",
            event,
            getattr(request.state, "request_id", "-"),
            client_ip(request) or "unknown",
            request.method,
            str(request.url),
            client_user_agent(request, "unknown"),
            details or {},
        )
    except Exception:  # noqa: BLE001
        logger.debug("Failed to record security event %r", event, exc_info=True)
