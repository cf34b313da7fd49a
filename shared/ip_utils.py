"""
Client IP resolution for FastAPI requests.

Used by the request rate limiter and to record the address of the last
successful login.
"""

from __future__ import annotations

from fastapi import Request

# Checked in priority order before falling back to the socket peer
_PROXY_HEADERS: tuple[str, ...] = (
    "CF-Connecting-IP",
    "X-Forwarded-For",
    "X-Real-IP",
)


def get_client_ip(request: Request) -> str:
    """Extract the client IP from proxy headers or the direct connection.

    ``X-Forwarded-For`` may carry a chain; only the first hop is used.

    Returns:
        The resolved client IP string, or ``""`` if none can be found.
    """
    for header in _PROXY_HEADERS:
        value = request.headers.get(header)
        if value:
            first = value.split(",")[0].strip()
            if first:
                return first

    return request.client.host if request.client else ""
