"""
Shared slowapi limiter.

Authenticated callers are limited per API key (first 8 chars, the same
prefix used for lookup), guests per client IP. Routes decorate with
@limiter.limit(...) and must accept a `request: Request` argument.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from fiefdom.config import get_settings


def rate_limit_key(request: Request) -> str:
    api_key = request.headers.get("x-api-key")
    if api_key:
        return f"key:{api_key[:8]}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(key_func=rate_limit_key, enabled=get_settings().rate_limit_enabled)
