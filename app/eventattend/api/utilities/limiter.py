# app/eventattend/api/utilities/limiter.py

from fastapi import Request

from slowapi import Limiter
from slowapi.util import get_remote_address

from ...config.config import settings


def get_limiter_key(request: Request) -> str:
    """
    Rate limit key: the first address in X-Forwarded-For when the app sits
    behind a proxy, otherwise the direct client address.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)

# Redis storage in production; "memory://" keeps a per-process counter.
limiter = Limiter(key_func=get_limiter_key, storage_uri=settings.RATE_LIMITER_REDIS_URL)
