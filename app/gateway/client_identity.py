"""
Caller identity for rate limiting.

Precedence: leftmost X-Forwarded-For hop → X-Real-IP → socket peer (when
enabled) → "" (one bucket shared by every unidentifiable caller).
"""

from starlette.requests import Request

ANONYMOUS_CLIENT_ID = ""


def resolve_client_id(request: Request, peer_fallback: bool = True) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    for hop in forwarded.split(","):
        hop = hop.strip()
        if hop:
            return hop

    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip

    if peer_fallback and request.client and request.client.host:
        return request.client.host

    return ANONYMOUS_CLIENT_ID
